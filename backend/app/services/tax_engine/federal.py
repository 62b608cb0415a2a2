"""Federal telecom taxes: Federal Excise Tax and the Universal Service Fund."""

import logging
import threading
import time
from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.tax_jurisdiction import TaxJurisdiction
from app.models.tax_rate import RateType
from app.repositories.usf_rate_repository import UsfRateRepository
from app.services.tax_engine.computation import TaxComputationEngine
from app.services.tax_engine.errors import TaxDependencyError
from app.services.tax_engine.types import CalculationContext, RateDefinition, TaxLineResult

logger = logging.getLogger(__name__)

FEDERAL_EXCISE_TAX_TYPE = "federal_excise_tax"
FEDERAL_EXCISE_TAX_RATE = Decimal("3.0")
FEDERAL_EXCISE_THRESHOLD = Decimal("0.20")
FEDERAL_EXCISE_SERVICE_TYPES = frozenset({"local", "long_distance", "voip_fixed", "voip_nomadic"})

USF_TAX_TYPE = "universal_service_fund"
USF_SERVICE_TYPES = frozenset(
    {"local", "long_distance", "international", "voip_fixed", "voip_nomadic"}
)

CATALOG_TAX_TYPES = frozenset({FEDERAL_EXCISE_TAX_TYPE, USF_TAX_TYPE})


def quarter_of(day: date) -> int:
    return (day.month - 1) // 3 + 1


class UsfRateProvider:
    """USF contribution factor in effect on a date.

    Looks up the newest active ``UsfRate`` version and falls back to the
    configured default. Results are memoized per (organization, date) and
    expire after ``ttl`` seconds (monotonic clock).
    """

    def __init__(self, default_rate: Decimal | None = None, ttl: int | None = None):
        self.default_rate = settings.USF_DEFAULT_RATE if default_rate is None else default_rate
        self.ttl = settings.USF_RATE_TTL_SECONDS if ttl is None else ttl
        self._memo: dict[tuple[UUID, date], tuple[float, Decimal]] = {}
        self._lock = threading.Lock()

    def rate_for(self, db: Session, organization_id: UUID, as_of: date) -> Decimal:
        key = (organization_id, as_of)
        now = time.monotonic()
        with self._lock:
            entry = self._memo.get(key)
            if entry is not None:
                expires_at, cached = entry
                if expires_at > now:
                    return cached
                del self._memo[key]

        try:
            version = UsfRateRepository(db).get_effective(organization_id, as_of)
        except SQLAlchemyError as exc:
            db.rollback()
            raise TaxDependencyError(f"USF rate lookup failed: {exc}") from exc

        rate = Decimal(str(version.rate)) if version is not None else self.default_rate
        with self._lock:
            self._memo[key] = (now + self.ttl, rate)
        return rate

    def clear(self, organization_id: UUID | None = None) -> None:
        with self._lock:
            if organization_id is None:
                self._memo.clear()
                return
            for key in [k for k in self._memo if k[0] == organization_id]:
                del self._memo[key]


class FederalTaxCatalog:
    """Built-in federal taxes applied to every calculation."""

    def __init__(self, engine: TaxComputationEngine, usf_provider: UsfRateProvider):
        self.engine = engine
        self.usf_provider = usf_provider

    def rates_for(
        self, db: Session, organization_id: UUID, context: CalculationContext
    ) -> list[RateDefinition]:
        rates: list[RateDefinition] = []
        if (
            context.service_type in FEDERAL_EXCISE_SERVICE_TYPES
            and context.amount > FEDERAL_EXCISE_THRESHOLD
        ):
            rates.append(
                RateDefinition(
                    tax_name="Federal Excise Tax",
                    tax_type=FEDERAL_EXCISE_TAX_TYPE,
                    rate_type=RateType.PERCENTAGE.value,
                    percentage_rate=FEDERAL_EXCISE_TAX_RATE,
                    authority_name="Internal Revenue Service",
                    tax_code="FET",
                    priority=0,
                )
            )
        if context.service_type in USF_SERVICE_TYPES:
            usf_rate = self.usf_provider.rate_for(db, organization_id, context.calculation_date)
            rates.append(
                RateDefinition(
                    tax_name="Universal Service Fund",
                    tax_type=USF_TAX_TYPE,
                    rate_type=RateType.PERCENTAGE.value,
                    percentage_rate=usf_rate,
                    authority_name="Federal Communications Commission",
                    tax_code="USF",
                    priority=1,
                )
            )
        return rates

    def compute(
        self,
        db: Session,
        organization_id: UUID,
        context: CalculationContext,
        jurisdictions: Sequence[TaxJurisdiction] = (),
        skipped: list[str] | None = None,
    ) -> list[TaxLineResult]:
        """Catalog tax lines, attributed to the first federal jurisdiction if any."""
        rates = self.rates_for(db, organization_id, context)
        if not rates:
            return []
        jurisdiction = jurisdictions[0] if jurisdictions else None
        lines = self.engine.compute_lines(rates, context, jurisdiction, skipped)
        logger.debug(
            "Federal catalog produced %d line(s) for service type %s",
            len(lines),
            context.service_type,
        )
        return lines

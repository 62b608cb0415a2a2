"""VoIP tax calculation service.

Orchestrates jurisdiction resolution, category classification, exemption
matching, rate resolution and computation into a single
``TaxCalculationResult``, with caching and a flat-rate fallback when tax
data cannot be read.
"""

import logging
import time
from collections.abc import Iterable, Mapping
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.cache import CalculationCache, make_cache_key
from app.core.capabilities import TaxCapabilities
from app.core.config import settings
from app.models.tax_exemption_usage import TaxExemptionUsage
from app.models.tax_jurisdiction import JurisdictionType, TaxJurisdiction
from app.models.tax_rate import RateType
from app.repositories.tax_exemption_usage_repository import TaxExemptionUsageRepository
from app.services.tax_engine.aggregator import aggregate, summarize
from app.services.tax_engine.category_classifier import TaxCategoryClassifier
from app.services.tax_engine.computation import TaxComputationEngine
from app.services.tax_engine.errors import TaxDependencyError, TaxValidationError
from app.services.tax_engine.exemption_matcher import ExemptionMatcher
from app.services.tax_engine.federal import CATALOG_TAX_TYPES, FederalTaxCatalog, UsfRateProvider
from app.services.tax_engine.jurisdiction_resolver import JurisdictionResolver
from app.services.tax_engine.rate_resolver import RateResolver
from app.services.tax_engine.types import (
    AppliedExemption,
    CalculationContext,
    JurisdictionRef,
    RateDefinition,
    TaxCalculationResult,
    TaxLineResult,
)

logger = logging.getLogger(__name__)

FALLBACK_TAX_TYPE = "estimated_tax"


def _to_decimal(value: Any, field: str) -> Decimal:
    if isinstance(value, bool):
        raise TaxValidationError(f"{field} must be numeric")
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise TaxValidationError(f"{field} must be numeric") from exc
    if not result.is_finite():
        raise TaxValidationError(f"{field} must be a finite number")
    return result


class TaxCalculationService:
    """Calculates layered VoIP taxes for one organization at a time.

    The cache, USF provider and capabilities are injected; each defaults to
    a fresh per-instance value.
    """

    def __init__(
        self,
        db: Session,
        cache: CalculationCache | None = None,
        usf_provider: UsfRateProvider | None = None,
        capabilities: TaxCapabilities | None = None,
    ):
        self.db = db
        self.cache = cache
        self.usf_provider = usf_provider or UsfRateProvider()
        self.capabilities = capabilities or TaxCapabilities.from_settings(settings)
        self.engine = TaxComputationEngine()
        self.jurisdiction_resolver = JurisdictionResolver(db)
        self.category_classifier = TaxCategoryClassifier(db)
        self.exemption_matcher = ExemptionMatcher(db, enabled=self.capabilities.exemptions)
        self.rate_resolver = RateResolver(db)
        self.federal_catalog = FederalTaxCatalog(self.engine, self.usf_provider)

    def calculate_tax(
        self,
        organization_id: UUID,
        amount: Decimal | int | float | str,
        service_type: str,
        service_address: Mapping[str, Any] | None = None,
        customer_id: UUID | None = None,
        calculation_date: date | None = None,
        line_count: int = 1,
        minutes: Decimal | int | float = 0,
        quantity: Decimal | int | float | None = None,
    ) -> TaxCalculationResult:
        """Calculate all taxes owed on ``amount`` for ``service_type``.

        Raises:
            TaxValidationError: If the input is malformed.
            TaxDependencyError: If tax data is unavailable and no fallback
                rate is configured.
        """
        context = self._build_context(
            amount, service_type, calculation_date, line_count, minutes, quantity
        )

        cache_key = make_cache_key(
            organization_id,
            context.amount,
            context.service_type,
            service_address,
            customer_id,
            context.calculation_date,
            context.line_count,
            context.minutes,
            context.quantity,
        )
        if self.cache is not None:
            cached = self.cache.get(cache_key)
            if cached is not None:
                logger.debug("Tax calculation cache hit: %s", cache_key)
                return cached

        try:
            result = self._perform_calculation(
                organization_id, context, service_address, customer_id
            )
        except TaxDependencyError as exc:
            if not settings.tax_fallback_enabled:
                raise
            logger.warning(
                "Tax calculation for organization %s fell back to estimated rate: %s",
                organization_id,
                exc,
            )
            return self._fallback_result(context, str(exc))

        if self.cache is not None:
            self.cache.put(cache_key, result, settings.TAX_CACHE_TTL_SECONDS)

        logger.info(
            "Calculated %s tax for organization %s: base=%s total=%s lines=%d",
            context.service_type,
            organization_id,
            context.amount,
            result.total_tax_amount,
            len(result.tax_breakdown),
        )
        return result

    def record_exemption_usage(
        self,
        organization_id: UUID,
        result: TaxCalculationResult,
        customer_id: UUID | None = None,
        invoice_id: UUID | None = None,
        quote_id: UUID | None = None,
        line_reference: str = "1",
    ) -> list[TaxExemptionUsage]:
        """Persist which exemptions reduced which lines of a billing document.

        Idempotent per (exemption, document, line reference, tax type).
        """
        if (invoice_id is None) == (quote_id is None):
            raise TaxValidationError("Exactly one of invoice_id or quote_id is required")
        if not self.capabilities.exemption_usage or not result.exemptions_applied:
            return []

        document_type = "invoice" if invoice_id is not None else "quote"
        document_id = invoice_id if invoice_id is not None else quote_id
        repo = TaxExemptionUsageRepository(self.db)

        usages = []
        for applied in result.exemptions_applied:
            line = self._line_for(result, applied)
            final_amount = (
                line.tax_amount
                if line is not None
                else applied.original_amount - applied.exempted_amount
            )
            usages.append(
                repo.record(
                    organization_id=organization_id,
                    tax_exemption_id=applied.exemption_id,
                    customer_id=customer_id,
                    document_type=document_type,
                    document_id=document_id,  # type: ignore[arg-type]
                    line_reference=line_reference,
                    tax_type=applied.tax_type,
                    original_tax_amount=applied.original_amount,
                    exempted_amount=applied.exempted_amount,
                    final_tax_amount=final_amount,
                    exemption_reason=applied.exemption_name,
                )
            )
        return usages

    def clear_cache(self, organization_id: UUID | None = None) -> int:
        """Drop cached calculations; returns the number of entries removed when known."""
        self.usf_provider.clear(organization_id)
        if self.cache is None:
            return 0
        if organization_id is None:
            self.cache.clear()
            return 0
        return self.cache.invalidate(organization_id)

    def get_calculation_summary(self, results: Iterable[TaxCalculationResult]) -> dict[str, Any]:
        return summarize(results)

    def _build_context(
        self,
        amount: Any,
        service_type: str,
        calculation_date: date | None,
        line_count: int,
        minutes: Any,
        quantity: Any,
    ) -> CalculationContext:
        base_amount = _to_decimal(amount, "amount")
        if base_amount < 0:
            raise TaxValidationError("amount must be non-negative")
        if not isinstance(service_type, str) or not service_type.strip():
            raise TaxValidationError("service_type is required")
        if isinstance(line_count, bool) or not isinstance(line_count, int) or line_count < 1:
            raise TaxValidationError("line_count must be a positive integer")
        minute_count = _to_decimal(minutes, "minutes")
        if minute_count < 0:
            raise TaxValidationError("minutes must be non-negative")
        units = Decimal(line_count) if quantity is None else _to_decimal(quantity, "quantity")
        if units < 0:
            raise TaxValidationError("quantity must be non-negative")

        return CalculationContext(
            amount=base_amount,
            service_type=service_type.strip(),
            calculation_date=calculation_date or date.today(),
            line_count=line_count,
            minutes=minute_count,
            quantity=units,
        )

    def _perform_calculation(
        self,
        organization_id: UUID,
        context: CalculationContext,
        service_address: Mapping[str, Any] | None,
        customer_id: UUID | None,
    ) -> TaxCalculationResult:
        deadline = time.monotonic() + settings.TAX_CALCULATION_TIMEOUT_SECONDS
        try:
            return self._calculate(organization_id, context, service_address, customer_id, deadline)
        except SQLAlchemyError as exc:
            # leave the session usable for the caller's fallback path
            self.db.rollback()
            raise TaxDependencyError(f"Tax data unavailable: {exc}") from exc

    def _calculate(
        self,
        organization_id: UUID,
        context: CalculationContext,
        service_address: Mapping[str, Any] | None,
        customer_id: UUID | None,
        deadline: float,
    ) -> TaxCalculationResult:
        jurisdictions = self.jurisdiction_resolver.resolve(organization_id, service_address)
        refs = [
            JurisdictionRef(
                id=j.id,  # type: ignore[arg-type]
                name=str(j.name),
                jurisdiction_type=str(j.jurisdiction_type),
            )
            for j in jurisdictions
        ]
        self._check_deadline(deadline, "jurisdiction resolution")

        category = self.category_classifier.classify(organization_id, context.service_type)
        if category is None or not category.is_taxable:
            logger.info(
                "Service type %s is not taxable for organization %s (category: %s)",
                context.service_type,
                organization_id,
                category.name if category is not None else None,
            )
            return aggregate(
                context.amount,
                (),
                (),
                (),
                service_type=context.service_type,
                calculation_date=context.calculation_date,
                jurisdictions=refs,
                tax_category=str(category.name) if category is not None else None,
            )

        exemptions = self.exemption_matcher.match(organization_id, customer_id, jurisdictions)
        self._check_deadline(deadline, "exemption matching")

        skipped: list[str] = []
        federal_jurisdictions = [
            j for j in jurisdictions if j.jurisdiction_type == JurisdictionType.FEDERAL.value
        ]
        federal = self.federal_catalog.compute(
            self.db, organization_id, context, federal_jurisdictions, skipped
        )
        state: list[TaxLineResult] = []
        local: list[TaxLineResult] = []

        for jurisdiction in jurisdictions:
            lines = self._jurisdiction_lines(
                organization_id, jurisdiction, category.id, context, skipped  # type: ignore[arg-type]
            )
            if jurisdiction.jurisdiction_type == JurisdictionType.FEDERAL.value:
                federal.extend(lines)
            elif jurisdiction.jurisdiction_type == JurisdictionType.STATE.value:
                state.extend(lines)
            else:
                local.extend(lines)
            self._check_deadline(deadline, "rate resolution")

        applied: list[AppliedExemption] = []
        if exemptions:
            federal, state, local = (
                self._exempt(lines, exemptions, context, applied)
                for lines in (federal, state, local)
            )

        metadata: dict[str, Any] = {}
        if skipped:
            metadata["skipped_rates"] = skipped
        return aggregate(
            context.amount,
            federal,
            state,
            local,
            service_type=context.service_type,
            calculation_date=context.calculation_date,
            jurisdictions=refs,
            exemptions_applied=applied,
            tax_category=str(category.name),
            metadata=metadata,
        )

    def _jurisdiction_lines(
        self,
        organization_id: UUID,
        jurisdiction: TaxJurisdiction,
        category_id: UUID,
        context: CalculationContext,
        skipped: list[str],
    ) -> list[TaxLineResult]:
        rates = self.rate_resolver.resolve(
            organization_id,
            jurisdiction.id,  # type: ignore[arg-type]
            category_id,
            context.service_type,
            context.calculation_date,
        )
        if jurisdiction.jurisdiction_type == JurisdictionType.FEDERAL.value:
            # The built-in catalog already charges these.
            rates = [r for r in rates if r.tax_type not in CATALOG_TAX_TYPES]
        definitions = [RateDefinition.from_model(rate) for rate in rates]
        return self.engine.compute_lines(definitions, context, jurisdiction, skipped)

    def _exempt(
        self,
        lines: list[TaxLineResult],
        exemptions: list[Any],
        context: CalculationContext,
        applied: list[AppliedExemption],
    ) -> list[TaxLineResult]:
        result = []
        for line in lines:
            exempted_line, line_applied = self.engine.apply_exemptions(line, exemptions, context)
            applied.extend(line_applied)
            result.append(exempted_line)
        return result

    def _fallback_result(self, context: CalculationContext, reason: str) -> TaxCalculationResult:
        rate = settings.TAX_FALLBACK_RATE or Decimal("0")
        amount = self.engine.round(context.amount * rate / Decimal(100))
        line = TaxLineResult(
            tax_name="Estimated Tax",
            tax_type=FALLBACK_TAX_TYPE,
            rate_type=RateType.PERCENTAGE.value,
            rate_value=rate,
            base_amount=context.amount,
            computed_tax_amount=amount,
            tax_amount=amount,
            jurisdiction_type=JurisdictionType.FEDERAL.value,
        )
        return aggregate(
            context.amount,
            [line] if amount > 0 else [],
            (),
            (),
            service_type=context.service_type,
            calculation_date=context.calculation_date,
            is_fallback=True,
            fallback_reason=reason,
        )

    @staticmethod
    def _check_deadline(deadline: float, step: str) -> None:
        if time.monotonic() > deadline:
            raise TaxDependencyError(f"Tax calculation timed out during {step}")

    @staticmethod
    def _line_for(result: TaxCalculationResult, applied: AppliedExemption) -> TaxLineResult | None:
        for line in result.tax_breakdown:
            if (
                line.tax_type == applied.tax_type
                and line.tax_name == applied.tax_name
                and line.jurisdiction_id == applied.jurisdiction_id
            ):
                return line
        return None

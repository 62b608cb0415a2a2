"""Customer exemption lookup and per-line applicability."""

import logging
from collections.abc import Sequence
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from app.models.tax_exemption import TaxExemption
from app.models.tax_jurisdiction import TaxJurisdiction
from app.repositories.tax_exemption_repository import TaxExemptionRepository
from app.services.tax_engine.types import CalculationContext, TaxLineResult

logger = logging.getLogger(__name__)

_COMPARATORS = {
    "=": lambda left, right: left == right,
    "==": lambda left, right: left == right,
    "!=": lambda left, right: left != right,
    ">": lambda left, right: left > right,
    ">=": lambda left, right: left >= right,
    "<": lambda left, right: left < right,
    "<=": lambda left, right: left <= right,
}


class ExemptionMatcher:
    """Finds the exemptions a customer holds for a set of jurisdictions."""

    def __init__(self, db: Session, enabled: bool = True):
        self.repo = TaxExemptionRepository(db)
        self.enabled = enabled

    def match(
        self,
        organization_id: UUID,
        customer_id: UUID | None,
        jurisdictions: Sequence[TaxJurisdiction],
        as_of: date | None = None,
    ) -> list[TaxExemption]:
        if not self.enabled or customer_id is None:
            return []
        # Certificate validity is judged against the current date.
        today = as_of or date.today()
        return self.repo.get_valid_for_customer(
            organization_id,
            customer_id,
            [j.id for j in jurisdictions],  # type: ignore[misc]
            today,
        )


def applies_to_line(
    exemption: TaxExemption, line: TaxLineResult, context: CalculationContext
) -> bool:
    """Whether ``exemption`` reduces ``line`` for this calculation."""
    if not conditions_met(exemption.exemption_conditions, context):  # type: ignore[arg-type]
        return False
    if exemption.is_blanket_exemption:
        return True

    tax_types = exemption.applicable_tax_types or []
    if line.tax_type not in tax_types and (line.tax_code is None or line.tax_code not in tax_types):
        return False
    # a non-blanket exemption only reduces lines of its own jurisdiction
    return exemption.tax_jurisdiction_id is not None and (
        exemption.tax_jurisdiction_id == line.jurisdiction_id
    )


def conditions_met(
    conditions: list[dict[str, Any]] | None, context: CalculationContext
) -> bool:
    """All conditions must hold; unknown condition types never match."""
    for condition in conditions or []:
        kind = condition.get("type")
        if kind == "minimum_amount":
            if not _compare_amount(condition, context.amount):
                return False
        elif kind == "service_type":
            allowed = condition.get("value")
            values = allowed if isinstance(allowed, list) else [allowed]
            if context.service_type not in values:
                return False
        elif kind == "date_range":
            if not _within_dates(condition, context.calculation_date):
                return False
        else:
            logger.warning("Unsupported exemption condition type: %s", kind)
            return False
    return True


def _compare_amount(condition: dict[str, Any], amount: Decimal) -> bool:
    comparator = _COMPARATORS.get(condition.get("operator", ">="))
    if comparator is None:
        return False
    try:
        threshold = Decimal(str(condition.get("value")))
    except InvalidOperation:
        return False
    return bool(comparator(amount, threshold))


def _within_dates(condition: dict[str, Any], on: date) -> bool:
    start = condition.get("start_date")
    end = condition.get("end_date")
    if start and on < date.fromisoformat(str(start)):
        return False
    return not (end and on > date.fromisoformat(str(end)))

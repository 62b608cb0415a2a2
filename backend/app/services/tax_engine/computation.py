"""Per-rate tax computation and exemption application."""

import logging
from collections.abc import Iterable, Sequence
from dataclasses import replace
from decimal import ROUND_HALF_UP, Decimal

from app.core.config import settings
from app.models.tax_exemption import TaxExemption
from app.models.tax_jurisdiction import TaxJurisdiction
from app.models.tax_rate import CalculationMethod
from app.services.tax_engine.errors import TaxConfigurationError
from app.services.tax_engine.exemption_matcher import applies_to_line
from app.services.tax_engine.rate_models.factory import get_rate_calculator
from app.services.tax_engine.types import (
    ZERO,
    AppliedExemption,
    CalculationContext,
    RateDefinition,
    TaxLineResult,
)

logger = logging.getLogger(__name__)

HUNDRED = Decimal(100)


class TaxComputationEngine:
    """Applies rate models, thresholds, rounding and exemptions.

    Intermediate line amounts are rounded to ``precision`` places
    (4 by default); money-level rounding happens in the aggregator.
    """

    def __init__(self, precision: int | None = None):
        places = settings.TAX_ROUND_PRECISION if precision is None else precision
        self.quantum = Decimal(1).scaleb(-places)

    def round(self, amount: Decimal) -> Decimal:
        return amount.quantize(self.quantum, rounding=ROUND_HALF_UP)

    def compute(
        self,
        rate: RateDefinition,
        base_amount: Decimal,
        context: CalculationContext,
    ) -> Decimal:
        """Raw tax for one rate, clamped to its threshold/cap and rounded.

        Raises TaxConfigurationError when the rate cannot be evaluated.
        """
        calculator = get_rate_calculator(rate.rate_type)
        if calculator is None:
            msg = f"Unknown rate_type '{rate.rate_type}' on rate '{rate.tax_name}'"
            raise TaxConfigurationError(msg)

        amount = calculator(rate, base_amount, context)
        if amount < 0:
            amount = ZERO

        # A minimum only lifts a tax that is actually owed.
        if amount > 0 and rate.minimum_threshold is not None and amount < rate.minimum_threshold:
            amount = rate.minimum_threshold
        if rate.maximum_amount is not None and amount > rate.maximum_amount:
            amount = rate.maximum_amount

        return self.round(amount)

    def compute_lines(
        self,
        rates: Iterable[RateDefinition],
        context: CalculationContext,
        jurisdiction: TaxJurisdiction | None = None,
        skipped: list[str] | None = None,
    ) -> list[TaxLineResult]:
        """Compute one line per rate for a single jurisdiction.

        Rates are evaluated in the given (priority) order. A compound rate
        uses the base amount plus the taxes already computed for this
        jurisdiction. Misconfigured rates are skipped and their names
        appended to ``skipped``.
        """
        lines: list[TaxLineResult] = []
        prior_taxes = ZERO
        for rate in rates:
            base = context.amount
            if rate.calculation_method == CalculationMethod.COMPOUND.value:
                base = context.amount + prior_taxes
            try:
                amount = self.compute(rate, base, context)
            except TaxConfigurationError as exc:
                logger.warning("Skipping tax rate %s: %s", rate.rate_id or rate.tax_name, exc)
                if skipped is not None:
                    skipped.append(rate.tax_name)
                continue

            if amount <= 0:
                continue
            prior_taxes += amount
            lines.append(
                TaxLineResult(
                    tax_name=rate.tax_name,
                    tax_type=rate.tax_type,
                    rate_type=rate.rate_type,
                    rate_value=rate.display_rate,
                    base_amount=base,
                    computed_tax_amount=amount,
                    tax_amount=amount,
                    authority=rate.authority_name,
                    jurisdiction_id=jurisdiction.id if jurisdiction is not None else None,  # type: ignore[arg-type]
                    jurisdiction_name=str(jurisdiction.name) if jurisdiction is not None else None,
                    jurisdiction_type=(
                        str(jurisdiction.jurisdiction_type) if jurisdiction is not None else None
                    ),
                    tax_rate_id=rate.rate_id,
                    tax_code=rate.tax_code,
                )
            )
        return lines

    def exemption_reduction(self, exemption: TaxExemption, tax_amount: Decimal) -> Decimal:
        """Amount a single exemption removes from ``tax_amount``."""
        percentage = exemption.exemption_percentage
        if percentage is None:
            reduction = tax_amount
        else:
            pct = min(max(Decimal(str(percentage)), ZERO), HUNDRED)
            reduction = tax_amount * (pct / HUNDRED)
        if exemption.maximum_exemption_amount is not None:
            reduction = min(reduction, Decimal(str(exemption.maximum_exemption_amount)))
        return self.round(max(reduction, ZERO))

    def apply_exemptions(
        self,
        line: TaxLineResult,
        exemptions: Sequence[TaxExemption],
        context: CalculationContext,
    ) -> tuple[TaxLineResult, list[AppliedExemption]]:
        """Reduce a line by every applicable exemption.

        Reductions are computed against the raw line amount and accumulate,
        but the exempted total never exceeds it.
        """
        raw = line.computed_tax_amount
        remaining = raw
        applied: list[AppliedExemption] = []
        for exemption in exemptions:
            if remaining <= 0:
                break
            if not applies_to_line(exemption, line, context):
                continue
            reduction = min(self.exemption_reduction(exemption, raw), remaining)
            if reduction <= 0:
                continue
            remaining -= reduction
            applied.append(
                AppliedExemption(
                    exemption_id=exemption.id,  # type: ignore[arg-type]
                    exemption_name=str(exemption.exemption_name),
                    tax_name=line.tax_name,
                    tax_type=line.tax_type,
                    jurisdiction_id=line.jurisdiction_id,
                    original_amount=raw,
                    exempted_amount=reduction,
                )
            )

        if not applied:
            return line, applied

        exempted_line = replace(
            line,
            tax_amount=max(ZERO, remaining),
            exempted_amount=raw - remaining,
        )
        return exempted_line, applied

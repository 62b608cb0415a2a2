"""Sum tax lines into a calculation result."""

from collections import defaultdict
from collections.abc import Iterable, Sequence
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from app.services.tax_engine.types import (
    ZERO,
    AppliedExemption,
    JurisdictionRef,
    TaxCalculationResult,
    TaxLineResult,
)

MONEY = Decimal("0.01")


def round_money(amount: Decimal) -> Decimal:
    return amount.quantize(MONEY, rounding=ROUND_HALF_UP)


def aggregate(
    base_amount: Decimal,
    federal: Sequence[TaxLineResult],
    state: Sequence[TaxLineResult],
    local: Sequence[TaxLineResult],
    *,
    service_type: str,
    calculation_date: date,
    jurisdictions: Sequence[JurisdictionRef] = (),
    exemptions_applied: Sequence[AppliedExemption] = (),
    tax_category: str | None = None,
    is_fallback: bool = False,
    fallback_reason: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> TaxCalculationResult:
    """Build the final result.

    The total is the sum of post-exemption line amounts, rounded to cents
    here and nowhere earlier.
    """
    raw_total = sum((line.tax_amount for line in (*federal, *state, *local)), ZERO)
    total = round_money(max(raw_total, ZERO))
    return TaxCalculationResult(
        base_amount=base_amount,
        service_type=service_type,
        calculation_date=calculation_date,
        federal_taxes=tuple(federal),
        state_taxes=tuple(state),
        local_taxes=tuple(local),
        total_tax_amount=total,
        final_amount=base_amount + total,
        jurisdictions=tuple(jurisdictions),
        exemptions_applied=tuple(exemptions_applied),
        tax_category=tax_category,
        is_fallback=is_fallback,
        fallback_reason=fallback_reason,
        metadata=dict(metadata or {}),
    )


def summarize(results: Iterable[TaxCalculationResult]) -> dict[str, Any]:
    """Totals across many calculations, by level and by tax type."""
    count = 0
    base_total = ZERO
    tax_total = ZERO
    exempted_total = ZERO
    fallbacks = 0
    by_level = {"federal": ZERO, "state": ZERO, "local": ZERO}
    by_type: dict[str, Decimal] = defaultdict(lambda: ZERO)

    for result in results:
        count += 1
        base_total += result.base_amount
        tax_total += result.total_tax_amount
        if result.is_fallback:
            fallbacks += 1
        for level, lines in (
            ("federal", result.federal_taxes),
            ("state", result.state_taxes),
            ("local", result.local_taxes),
        ):
            for line in lines:
                by_level[level] += line.tax_amount
                by_type[line.tax_type] += line.tax_amount
                exempted_total += line.exempted_amount

    effective_rate = ZERO
    if base_total > 0:
        effective_rate = (tax_total / base_total * 100).quantize(Decimal("0.0001"))

    return {
        "calculation_count": count,
        "total_base_amount": round_money(base_total),
        "total_tax_amount": round_money(tax_total),
        "total_exempted_amount": round_money(exempted_total),
        "effective_tax_rate": effective_rate,
        "fallback_count": fallbacks,
        "by_level": {level: round_money(amount) for level, amount in by_level.items()},
        "by_tax_type": {
            tax_type: round_money(amount) for tax_type, amount in sorted(by_type.items())
        },
    }

from collections.abc import Callable
from decimal import Decimal

from app.models.tax_rate import RateType
from app.services.tax_engine.rate_models import (
    fixed,
    per_line,
    per_minute,
    per_unit,
    percentage,
    tiered,
)
from app.services.tax_engine.types import CalculationContext, RateDefinition

# Every calculator receives (rate, base_amount, context) and returns the raw,
# unrounded tax amount.
CalculatorFn = Callable[[RateDefinition, Decimal, CalculationContext], Decimal]

_CALCULATORS: dict[RateType, CalculatorFn] = {
    RateType.PERCENTAGE: percentage.calculate,
    RateType.FIXED: fixed.calculate,
    RateType.PER_LINE: per_line.calculate,
    RateType.PER_MINUTE: per_minute.calculate,
    RateType.PER_UNIT: per_unit.calculate,
    RateType.TIERED: tiered.calculate,
}


def get_rate_calculator(rate_type: str) -> CalculatorFn | None:
    try:
        return _CALCULATORS.get(RateType(rate_type))
    except ValueError:
        return None

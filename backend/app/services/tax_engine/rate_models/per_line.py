from decimal import Decimal

from app.services.tax_engine.rate_models.fixed import require_fixed_amount
from app.services.tax_engine.types import CalculationContext, RateDefinition


def calculate(rate: RateDefinition, base_amount: Decimal, context: CalculationContext) -> Decimal:
    return Decimal(context.line_count) * require_fixed_amount(rate)

from decimal import Decimal

from app.services.tax_engine.errors import TaxConfigurationError
from app.services.tax_engine.types import CalculationContext, RateDefinition


def calculate(rate: RateDefinition, base_amount: Decimal, context: CalculationContext) -> Decimal:
    if rate.percentage_rate is None:
        msg = f"Rate '{rate.tax_name}' is percentage based but has no percentage_rate"
        raise TaxConfigurationError(msg)
    return base_amount * (rate.percentage_rate / Decimal(100))

from decimal import Decimal

from app.services.tax_engine.errors import TaxConfigurationError
from app.services.tax_engine.types import CalculationContext, RateDefinition


def require_fixed_amount(rate: RateDefinition) -> Decimal:
    if rate.fixed_amount is None:
        msg = f"Rate '{rate.tax_name}' of type {rate.rate_type} has no fixed_amount"
        raise TaxConfigurationError(msg)
    return rate.fixed_amount


def calculate(rate: RateDefinition, base_amount: Decimal, context: CalculationContext) -> Decimal:
    return require_fixed_amount(rate)

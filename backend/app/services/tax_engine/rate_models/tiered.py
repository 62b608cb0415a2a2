"""Marginal tiers: each slice of the taxable amount is taxed at its own rate."""

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

from app.services.tax_engine.errors import TaxConfigurationError
from app.services.tax_engine.types import CalculationContext, RateDefinition


@dataclass(frozen=True)
class Tier:
    lower: Decimal
    upper: Decimal | None  # None = no upper bound
    rate: Decimal


def parse_tiers(raw_tiers: Iterable[dict[str, Any]] | None) -> list[Tier]:
    """Parse and validate a tier configuration.

    Tiers must be listed in ascending order, start at zero, be contiguous
    (each ``min`` equals the previous ``max``) and only the last tier may be
    open-ended. Nothing is re-sorted.
    """
    if not raw_tiers:
        raise TaxConfigurationError("Tiered rate requires at least one tier")

    tiers: list[Tier] = []
    for index, raw in enumerate(raw_tiers):
        try:
            lower = Decimal(str(raw.get("min", 0)))
            upper = None if raw.get("max") is None else Decimal(str(raw["max"]))
            rate = Decimal(str(raw["rate"]))
        except (KeyError, InvalidOperation, AttributeError, TypeError) as exc:
            msg = f"Tier {index} is malformed: {raw!r}"
            raise TaxConfigurationError(msg) from exc

        if rate < 0:
            raise TaxConfigurationError(f"Tier {index} has a negative rate")
        if upper is not None and upper <= lower:
            raise TaxConfigurationError(f"Tier {index} max must be greater than min")
        if not tiers:
            if lower != 0:
                raise TaxConfigurationError("First tier must start at 0")
        else:
            previous = tiers[-1]
            if previous.upper is None:
                raise TaxConfigurationError("Only the last tier may be open-ended")
            if lower != previous.upper:
                msg = f"Tier {index} must start at {previous.upper} (tiers must be contiguous)"
                raise TaxConfigurationError(msg)
        tiers.append(Tier(lower=lower, upper=upper, rate=rate))
    return tiers


def calculate(rate: RateDefinition, base_amount: Decimal, context: CalculationContext) -> Decimal:
    total = Decimal(0)
    for tier in parse_tiers(rate.tiers):
        if base_amount <= tier.lower:
            break
        ceiling = base_amount if tier.upper is None else min(base_amount, tier.upper)
        total += (ceiling - tier.lower) * (tier.rate / Decimal(100))
    return total

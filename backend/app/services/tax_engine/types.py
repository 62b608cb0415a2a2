"""Value objects passed between the tax engine components.

Everything here is immutable so a cached calculation can be handed to
several callers without copying.
"""

from dataclasses import asdict, dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from app.models.tax_rate import CalculationMethod, TaxRate

ZERO = Decimal("0")


def _dec(value: Any) -> Decimal | None:
    if value is None:
        return None
    return Decimal(str(value))


def _uuid(value: Any) -> UUID | None:
    if value is None:
        return None
    return value if isinstance(value, UUID) else UUID(str(value))


@dataclass(frozen=True)
class RateDefinition:
    """Engine-side view of a tax rate, detached from the ORM session."""

    tax_name: str
    tax_type: str
    rate_type: str
    percentage_rate: Decimal | None = None
    fixed_amount: Decimal | None = None
    minimum_threshold: Decimal | None = None
    maximum_amount: Decimal | None = None
    calculation_method: str = CalculationMethod.STANDARD.value
    authority_name: str | None = None
    tax_code: str | None = None
    tiers: tuple[dict[str, Any], ...] | None = None
    priority: int = 100
    rate_id: UUID | None = None

    @classmethod
    def from_model(cls, rate: TaxRate) -> "RateDefinition":
        tiers = rate.tiers
        return cls(
            tax_name=str(rate.tax_name),
            tax_type=str(rate.tax_type),
            rate_type=str(rate.rate_type),
            percentage_rate=_dec(rate.percentage_rate),
            fixed_amount=_dec(rate.fixed_amount),
            minimum_threshold=_dec(rate.minimum_threshold),
            maximum_amount=_dec(rate.maximum_amount),
            calculation_method=str(rate.calculation_method or CalculationMethod.STANDARD.value),
            authority_name=rate.authority_name,  # type: ignore[arg-type]
            tax_code=rate.tax_code,  # type: ignore[arg-type]
            tiers=tuple(tiers) if tiers else None,
            priority=int(rate.priority or 0),
            rate_id=rate.id,  # type: ignore[arg-type]
        )

    @property
    def display_rate(self) -> Decimal | None:
        if self.percentage_rate is not None:
            return self.percentage_rate
        return self.fixed_amount


@dataclass(frozen=True)
class CalculationContext:
    """Per-call inputs every rate model may need."""

    amount: Decimal
    service_type: str
    calculation_date: date
    line_count: int = 1
    minutes: Decimal = ZERO
    quantity: Decimal = Decimal("1")


@dataclass(frozen=True)
class JurisdictionRef:
    id: UUID
    name: str
    jurisdiction_type: str


@dataclass(frozen=True)
class TaxLineResult:
    tax_name: str
    tax_type: str
    rate_type: str
    rate_value: Decimal | None
    base_amount: Decimal
    computed_tax_amount: Decimal
    tax_amount: Decimal
    exempted_amount: Decimal = ZERO
    authority: str | None = None
    jurisdiction_id: UUID | None = None
    jurisdiction_name: str | None = None
    jurisdiction_type: str | None = None
    tax_rate_id: UUID | None = None
    tax_code: str | None = None


@dataclass(frozen=True)
class AppliedExemption:
    exemption_id: UUID
    exemption_name: str
    tax_name: str
    tax_type: str
    jurisdiction_id: UUID | None
    original_amount: Decimal
    exempted_amount: Decimal


@dataclass(frozen=True)
class TaxCalculationResult:
    base_amount: Decimal
    service_type: str
    calculation_date: date
    federal_taxes: tuple[TaxLineResult, ...] = ()
    state_taxes: tuple[TaxLineResult, ...] = ()
    local_taxes: tuple[TaxLineResult, ...] = ()
    total_tax_amount: Decimal = ZERO
    final_amount: Decimal = ZERO
    jurisdictions: tuple[JurisdictionRef, ...] = ()
    exemptions_applied: tuple[AppliedExemption, ...] = ()
    tax_category: str | None = None
    is_fallback: bool = False
    fallback_reason: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def tax_breakdown(self) -> list[TaxLineResult]:
        return [*self.federal_taxes, *self.state_taxes, *self.local_taxes]

    @property
    def effective_tax_rate(self) -> Decimal:
        """Total tax as a percentage of the base amount."""
        if self.base_amount == 0:
            return ZERO
        return (self.total_tax_amount / self.base_amount * 100).quantize(Decimal("0.0001"))

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe representation; Decimals become strings."""
        return _jsonable(asdict(self))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TaxCalculationResult":
        def lines(items: list[dict[str, Any]]) -> tuple[TaxLineResult, ...]:
            return tuple(
                TaxLineResult(
                    tax_name=item["tax_name"],
                    tax_type=item["tax_type"],
                    rate_type=item["rate_type"],
                    rate_value=_dec(item.get("rate_value")),
                    base_amount=Decimal(item["base_amount"]),
                    computed_tax_amount=Decimal(item["computed_tax_amount"]),
                    tax_amount=Decimal(item["tax_amount"]),
                    exempted_amount=Decimal(item.get("exempted_amount", "0")),
                    authority=item.get("authority"),
                    jurisdiction_id=_uuid(item.get("jurisdiction_id")),
                    jurisdiction_name=item.get("jurisdiction_name"),
                    jurisdiction_type=item.get("jurisdiction_type"),
                    tax_rate_id=_uuid(item.get("tax_rate_id")),
                    tax_code=item.get("tax_code"),
                )
                for item in items
            )

        return cls(
            base_amount=Decimal(data["base_amount"]),
            service_type=data["service_type"],
            calculation_date=date.fromisoformat(data["calculation_date"]),
            federal_taxes=lines(data.get("federal_taxes", [])),
            state_taxes=lines(data.get("state_taxes", [])),
            local_taxes=lines(data.get("local_taxes", [])),
            total_tax_amount=Decimal(data["total_tax_amount"]),
            final_amount=Decimal(data["final_amount"]),
            jurisdictions=tuple(
                JurisdictionRef(
                    id=UUID(j["id"]), name=j["name"], jurisdiction_type=j["jurisdiction_type"]
                )
                for j in data.get("jurisdictions", [])
            ),
            exemptions_applied=tuple(
                AppliedExemption(
                    exemption_id=UUID(e["exemption_id"]),
                    exemption_name=e["exemption_name"],
                    tax_name=e["tax_name"],
                    tax_type=e["tax_type"],
                    jurisdiction_id=_uuid(e.get("jurisdiction_id")),
                    original_amount=Decimal(e["original_amount"]),
                    exempted_amount=Decimal(e["exempted_amount"]),
                )
                for e in data.get("exemptions_applied", [])
            ),
            tax_category=data.get("tax_category"),
            is_fallback=bool(data.get("is_fallback", False)),
            fallback_reason=data.get("fallback_reason"),
            metadata=dict(data.get("metadata") or {}),
        )


def _jsonable(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, list | tuple):
        return [_jsonable(v) for v in value]
    if isinstance(value, Decimal | UUID):
        return str(value)
    if isinstance(value, date):
        return value.isoformat()
    return value

"""Tax rate, rate history and catalog management schemas."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Self
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.models.tax_rate import CalculationMethod, RateType
from app.services.tax_engine.rate_models.tiered import parse_tiers

FIXED_AMOUNT_RATE_TYPES = (
    RateType.FIXED,
    RateType.PER_LINE,
    RateType.PER_MINUTE,
    RateType.PER_UNIT,
)


class TaxRateTier(BaseModel):
    min: Decimal = Field(default=Decimal("0"), ge=0)
    max: Decimal | None = None
    rate: Decimal = Field(ge=0)


class TaxRateCreate(BaseModel):
    tax_jurisdiction_id: UUID
    tax_category_id: UUID
    tax_type: str = Field(min_length=1, max_length=100)
    tax_name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    rate_type: RateType
    percentage_rate: Decimal | None = Field(default=None, ge=0)
    fixed_amount: Decimal | None = Field(default=None, ge=0)
    minimum_threshold: Decimal | None = Field(default=None, ge=0)
    maximum_amount: Decimal | None = Field(default=None, ge=0)
    calculation_method: CalculationMethod = CalculationMethod.STANDARD
    authority_name: str | None = Field(default=None, max_length=255)
    tax_code: str | None = Field(default=None, max_length=100)
    service_types: list[str] | None = None
    tiers: list[TaxRateTier] | None = None
    effective_date: date
    expiry_date: date | None = None
    is_active: bool = True
    priority: int = 100
    metadata: dict[str, Any] | None = None

    @model_validator(mode="after")
    def validate_rate_type_fields(self) -> Self:
        """Each rate type needs the field its calculator reads."""
        if self.rate_type == RateType.PERCENTAGE and self.percentage_rate is None:
            raise ValueError("percentage_rate is required for rate_type 'percentage'")
        if self.rate_type in FIXED_AMOUNT_RATE_TYPES and self.fixed_amount is None:
            msg = f"fixed_amount is required for rate_type '{self.rate_type.value}'"
            raise ValueError(msg)
        if self.rate_type == RateType.TIERED:
            parse_tiers([tier.model_dump() for tier in self.tiers or []])
        return self

    @model_validator(mode="after")
    def validate_dates(self) -> Self:
        if self.expiry_date is not None and self.expiry_date < self.effective_date:
            raise ValueError("expiry_date must not be before effective_date")
        return self

    @model_validator(mode="after")
    def validate_bounds(self) -> Self:
        if (
            self.minimum_threshold is not None
            and self.maximum_amount is not None
            and self.minimum_threshold > self.maximum_amount
        ):
            raise ValueError("minimum_threshold must not exceed maximum_amount")
        return self

    def to_model_values(self) -> dict[str, Any]:
        """Column values for a TaxRate row."""
        values = self.model_dump(exclude={"metadata", "tiers"})
        values["rate_type"] = self.rate_type.value
        values["calculation_method"] = self.calculation_method.value
        values["tiers"] = (
            [tier.model_dump(mode="json") for tier in self.tiers] if self.tiers else None
        )
        values["metadata_"] = self.metadata
        return values


class TaxRateUpdate(BaseModel):
    tax_type: str | None = Field(default=None, min_length=1, max_length=100)
    tax_name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    rate_type: RateType | None = None
    percentage_rate: Decimal | None = Field(default=None, ge=0)
    fixed_amount: Decimal | None = Field(default=None, ge=0)
    minimum_threshold: Decimal | None = Field(default=None, ge=0)
    maximum_amount: Decimal | None = Field(default=None, ge=0)
    calculation_method: CalculationMethod | None = None
    authority_name: str | None = Field(default=None, max_length=255)
    tax_code: str | None = Field(default=None, max_length=100)
    service_types: list[str] | None = None
    tiers: list[TaxRateTier] | None = None
    effective_date: date | None = None
    expiry_date: date | None = None
    is_active: bool | None = None
    priority: int | None = None


class TaxRateResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tax_jurisdiction_id: UUID
    tax_category_id: UUID
    tax_type: str
    tax_name: str
    description: str | None = None
    rate_type: str
    percentage_rate: Decimal | None = None
    fixed_amount: Decimal | None = None
    minimum_threshold: Decimal | None = None
    maximum_amount: Decimal | None = None
    calculation_method: str
    authority_name: str | None = None
    tax_code: str | None = None
    service_types: list[str] | None = None
    tiers: list[dict[str, Any]] | None = None
    effective_date: date
    expiry_date: date | None = None
    is_active: bool
    priority: int
    created_at: datetime
    updated_at: datetime


class TaxRateHistoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tax_rate_id: UUID
    old_values: dict[str, Any]
    new_values: dict[str, Any]
    change_reason: str | None = None
    changed_by: str | None = None
    source: str
    batch_id: str | None = None
    created_at: datetime


class ScheduleRateChangeRequest(BaseModel):
    effective_date: date
    changes: TaxRateUpdate


class ExpireRateRequest(BaseModel):
    expiry_date: date


class BulkImportRequest(BaseModel):
    rates: list[dict[str, Any]]
    source: str = Field(default="import", max_length=50)


class BulkImportError(BaseModel):
    index: int
    error: str


class BulkImportResult(BaseModel):
    batch_id: str
    created: int = 0
    updated: int = 0
    errors: list[BulkImportError] = Field(default_factory=list)


class RestoreResult(BaseModel):
    batch_id: str
    restored: int = 0
    deactivated: int = 0
    errors: list[BulkImportError] = Field(default_factory=list)


class TaxRateBackupResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    batch_id: str
    rates_count: int
    created_at: datetime


class InitializeDefaultsResult(BaseModel):
    jurisdiction_id: UUID
    categories_created: int
    usf_rate_created: bool

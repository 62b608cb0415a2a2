from datetime import date, datetime
from decimal import Decimal
from typing import Any, Literal, Self
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.models.tax_exemption import ExemptionStatus, ExemptionType


class ExemptionCondition(BaseModel):
    type: Literal["minimum_amount", "service_type", "date_range"]
    operator: Literal["=", "==", ">", ">=", "<", "<=", "!="] = ">="
    value: Any = None
    start_date: date | None = None
    end_date: date | None = None


class TaxExemptionCreate(BaseModel):
    customer_id: UUID
    tax_jurisdiction_id: UUID | None = None
    exemption_type: ExemptionType = ExemptionType.CUSTOM
    exemption_name: str = Field(min_length=1, max_length=255)
    certificate_number: str | None = Field(default=None, max_length=255)
    issuing_authority: str | None = Field(default=None, max_length=255)
    issue_date: date | None = None
    expiry_date: date | None = None
    is_blanket_exemption: bool = False
    applicable_tax_types: list[str] | None = None
    exemption_conditions: list[ExemptionCondition] | None = None
    exemption_percentage: Decimal | None = Field(default=None, ge=0, le=100)
    maximum_exemption_amount: Decimal | None = Field(default=None, ge=0)
    status: ExemptionStatus = ExemptionStatus.ACTIVE
    priority: int = 100

    @model_validator(mode="after")
    def validate_scope(self) -> Self:
        """A non-blanket exemption must name its jurisdiction and tax types."""
        if self.is_blanket_exemption:
            return self
        if self.tax_jurisdiction_id is None:
            raise ValueError("tax_jurisdiction_id is required unless is_blanket_exemption")
        if not self.applicable_tax_types:
            raise ValueError("applicable_tax_types is required unless is_blanket_exemption")
        return self


class TaxExemptionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    customer_id: UUID
    tax_jurisdiction_id: UUID | None = None
    exemption_type: str
    exemption_name: str
    certificate_number: str | None = None
    issuing_authority: str | None = None
    issue_date: date | None = None
    expiry_date: date | None = None
    is_blanket_exemption: bool
    applicable_tax_types: list[str] | None = None
    exemption_conditions: list[dict[str, Any]] | None = None
    exemption_percentage: Decimal | None = None
    maximum_exemption_amount: Decimal | None = None
    status: str
    priority: int
    created_at: datetime
    updated_at: datetime


class TaxExemptionUsageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tax_exemption_id: UUID
    customer_id: UUID | None = None
    document_type: str
    document_id: UUID
    line_reference: str
    tax_type: str
    original_tax_amount: Decimal
    exempted_amount: Decimal
    final_tax_amount: Decimal
    exemption_reason: str | None = None
    used_at: datetime

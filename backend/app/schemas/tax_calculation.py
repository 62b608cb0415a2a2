"""Request/response schemas for the tax calculation endpoint."""

from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from app.services.tax_engine.types import TaxCalculationResult

SERVICE_TYPES: dict[str, str] = {
    "local": "Local Service",
    "long_distance": "Long Distance",
    "international": "International",
    "voip_fixed": "VoIP Fixed",
    "voip_nomadic": "VoIP Nomadic",
    "data": "Data Services",
    "equipment": "Equipment",
}


class ServiceAddress(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    line1: str | None = Field(default=None, validation_alias=AliasChoices("line1", "address"))
    city: str | None = None
    state: str | None = None
    zip: str | None = Field(default=None, validation_alias=AliasChoices("zip", "zip_code"))
    county: str | None = None
    country: str | None = None


class TaxCalculationRequest(BaseModel):
    amount: Decimal = Field(ge=0)
    service_type: str = Field(min_length=1, max_length=50)
    service_address: ServiceAddress | None = None
    customer_id: UUID | None = None
    calculation_date: date | None = None
    line_count: int = Field(default=1, ge=1)
    minutes: Decimal = Field(default=Decimal("0"), ge=0)
    quantity: Decimal | None = Field(default=None, ge=0)


class TaxLineResponse(BaseModel):
    tax_name: str
    tax_type: str
    rate_type: str
    rate_value: Decimal | None = None
    base_amount: Decimal
    computed_tax_amount: Decimal
    tax_amount: Decimal
    exempted_amount: Decimal
    authority: str | None = None
    jurisdiction_id: UUID | None = None
    jurisdiction_name: str | None = None
    jurisdiction_type: str | None = None
    tax_rate_id: UUID | None = None
    tax_code: str | None = None


class JurisdictionRefResponse(BaseModel):
    id: UUID
    name: str
    jurisdiction_type: str


class AppliedExemptionResponse(BaseModel):
    exemption_id: UUID
    exemption_name: str
    tax_name: str
    tax_type: str
    jurisdiction_id: UUID | None = None
    original_amount: Decimal
    exempted_amount: Decimal


class TaxCalculationResponse(BaseModel):
    base_amount: Decimal
    service_type: str
    calculation_date: date
    federal_taxes: list[TaxLineResponse]
    state_taxes: list[TaxLineResponse]
    local_taxes: list[TaxLineResponse]
    total_tax_amount: Decimal
    final_amount: Decimal
    effective_tax_rate: Decimal
    jurisdictions: list[JurisdictionRefResponse]
    exemptions_applied: list[AppliedExemptionResponse]
    tax_category: str | None = None
    is_fallback: bool = False
    fallback_reason: str | None = None

    @classmethod
    def from_result(cls, result: TaxCalculationResult) -> "TaxCalculationResponse":
        data: dict[str, Any] = result.to_dict()
        data.pop("metadata", None)
        data["effective_tax_rate"] = result.effective_tax_rate
        return cls.model_validate(data)


class ServiceTypeResponse(BaseModel):
    value: str
    label: str


class ClearCacheResponse(BaseModel):
    cleared: int

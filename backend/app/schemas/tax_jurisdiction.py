from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.models.tax_jurisdiction import JurisdictionType


class TaxJurisdictionCreate(BaseModel):
    jurisdiction_type: JurisdictionType
    name: str = Field(max_length=255)
    code: str | None = Field(default=None, max_length=50)
    authority_name: str | None = Field(default=None, max_length=255)
    state_code: str | None = Field(default=None, min_length=2, max_length=2)
    county_name: str | None = Field(default=None, max_length=255)
    city_name: str | None = Field(default=None, max_length=255)
    zip_codes: list[str] | None = None
    is_active: bool = True
    priority: int = 100


class TaxJurisdictionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    jurisdiction_type: str
    name: str
    code: str | None = None
    authority_name: str | None = None
    state_code: str | None = None
    county_name: str | None = None
    city_name: str | None = None
    zip_codes: list[str] | None = None
    is_active: bool
    priority: int
    created_at: datetime
    updated_at: datetime

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class TaxCategoryCreate(BaseModel):
    name: str = Field(max_length=255)
    code: str | None = Field(default=None, max_length=50)
    description: str | None = None
    service_types: list[str] | None = None
    is_taxable: bool = True
    is_active: bool = True
    priority: int = 100


class TaxCategoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    code: str | None = None
    description: str | None = None
    service_types: list[str] | None = None
    is_taxable: bool
    is_active: bool
    priority: int
    created_at: datetime
    updated_at: datetime

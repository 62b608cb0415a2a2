from datetime import date, datetime
from decimal import Decimal
from typing import Self
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator


class UsfRateCreate(BaseModel):
    rate: Decimal = Field(ge=0, le=100)
    effective_date: date
    expiry_date: date | None = None
    quarter_label: str | None = Field(default=None, max_length=10)
    is_active: bool = True

    @model_validator(mode="after")
    def validate_dates(self) -> Self:
        if self.expiry_date is not None and self.expiry_date < self.effective_date:
            raise ValueError("expiry_date must not be before effective_date")
        return self


class UsfRateResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    rate: Decimal
    effective_date: date
    expiry_date: date | None = None
    quarter_label: str | None = None
    is_active: bool
    created_at: datetime

"""Tax rate definition scoped to a jurisdiction, category and tax type."""

from enum import Enum

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    func,
)

from app.core.database import Base
from app.models.shared import DEFAULT_ORGANIZATION_ID, UUIDType, generate_uuid


class RateType(str, Enum):
    PERCENTAGE = "percentage"  # % of the taxable amount
    FIXED = "fixed"  # flat amount per calculation
    PER_LINE = "per_line"  # flat amount per line (E911 style)
    PER_MINUTE = "per_minute"  # flat amount per minute of usage
    PER_UNIT = "per_unit"  # flat amount per unit of quantity
    TIERED = "tiered"  # marginal % per slice of the taxable amount


class CalculationMethod(str, Enum):
    STANDARD = "standard"
    COMPOUND = "compound"  # base includes prior taxes of the same jurisdiction


class TaxRate(Base):
    __tablename__ = "tax_rates"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    organization_id = Column(
        UUIDType,
        ForeignKey("organizations.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
        default=DEFAULT_ORGANIZATION_ID,
    )
    tax_jurisdiction_id = Column(
        UUIDType,
        ForeignKey("tax_jurisdictions.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    tax_category_id = Column(
        UUIDType,
        ForeignKey("tax_categories.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    tax_type = Column(String(100), nullable=False, index=True)
    tax_name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    rate_type = Column(String(30), nullable=False)
    percentage_rate = Column(Numeric(10, 6), nullable=True)
    fixed_amount = Column(Numeric(12, 4), nullable=True)
    minimum_threshold = Column(Numeric(12, 4), nullable=True)
    maximum_amount = Column(Numeric(12, 4), nullable=True)
    calculation_method = Column(
        String(30), nullable=False, default=CalculationMethod.STANDARD.value
    )
    authority_name = Column(String(255), nullable=True)
    tax_code = Column(String(100), nullable=True)
    # NULL matches every service type
    service_types = Column(JSON, nullable=True)
    tiers = Column(JSON, nullable=True)
    effective_date = Column(Date, nullable=False)
    expiry_date = Column(Date, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    priority = Column(Integer, nullable=False, default=100)
    metadata_ = Column("metadata", JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

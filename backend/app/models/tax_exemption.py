"""Customer tax exemptions and certificates."""

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
    func,
)

from app.core.database import Base
from app.models.shared import DEFAULT_ORGANIZATION_ID, UUIDType, generate_uuid


class ExemptionStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    PENDING_VERIFICATION = "pending_verification"
    SUSPENDED = "suspended"
    REVOKED = "revoked"


class ExemptionType(str, Enum):
    RESALE = "resale"
    NON_PROFIT = "non_profit"
    GOVERNMENT = "government"
    EDUCATIONAL = "educational"
    RELIGIOUS = "religious"
    WHOLESALE = "wholesale"
    INTERSTATE = "interstate"
    INTERNATIONAL = "international"
    CARRIER_ACCESS = "carrier_access"
    CUSTOM = "custom"


class TaxExemption(Base):
    __tablename__ = "tax_exemptions"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    organization_id = Column(
        UUIDType,
        ForeignKey("organizations.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
        default=DEFAULT_ORGANIZATION_ID,
    )
    customer_id = Column(
        UUIDType, ForeignKey("customers.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    tax_jurisdiction_id = Column(
        UUIDType,
        ForeignKey("tax_jurisdictions.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )
    exemption_type = Column(String(50), nullable=False, default=ExemptionType.CUSTOM.value)
    exemption_name = Column(String(255), nullable=False)
    certificate_number = Column(String(255), nullable=True)
    issuing_authority = Column(String(255), nullable=True)
    issue_date = Column(Date, nullable=True)
    expiry_date = Column(Date, nullable=True)
    is_blanket_exemption = Column(Boolean, nullable=False, default=False)
    applicable_tax_types = Column(JSON, nullable=True)
    exemption_conditions = Column(JSON, nullable=True)
    # NULL means a full exemption
    exemption_percentage = Column(Numeric(5, 2), nullable=True)
    maximum_exemption_amount = Column(Numeric(12, 4), nullable=True)
    status = Column(String(30), nullable=False, default=ExemptionStatus.ACTIVE.value)
    priority = Column(Integer, nullable=False, default=100)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

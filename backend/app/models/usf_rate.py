"""Versioned Universal Service Fund contribution factor."""

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Numeric, String, func

from app.core.database import Base
from app.models.shared import DEFAULT_ORGANIZATION_ID, UUIDType, generate_uuid


class UsfRate(Base):
    __tablename__ = "usf_rates"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    organization_id = Column(
        UUIDType,
        ForeignKey("organizations.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
        default=DEFAULT_ORGANIZATION_ID,
    )
    rate = Column(Numeric(8, 4), nullable=False)
    quarter_label = Column(String(10), nullable=True)
    effective_date = Column(Date, nullable=False, index=True)
    expiry_date = Column(Date, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

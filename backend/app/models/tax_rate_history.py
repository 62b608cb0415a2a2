"""Append-only change log for tax rates."""

from sqlalchemy import JSON, Column, DateTime, ForeignKey, String, Text, func

from app.core.database import Base
from app.models.shared import DEFAULT_ORGANIZATION_ID, UUIDType, generate_uuid


class TaxRateHistory(Base):
    __tablename__ = "tax_rate_history"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    organization_id = Column(
        UUIDType,
        ForeignKey("organizations.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
        default=DEFAULT_ORGANIZATION_ID,
    )
    tax_rate_id = Column(
        UUIDType, ForeignKey("tax_rates.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    old_values = Column(JSON, nullable=False, default=dict)
    new_values = Column(JSON, nullable=False, default=dict)
    change_reason = Column(Text, nullable=True)
    changed_by = Column(String(255), nullable=True)
    source = Column(String(50), nullable=False, default="manual")
    batch_id = Column(String(64), nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

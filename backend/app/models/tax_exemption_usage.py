"""Append-only record of an exemption reducing a billing document's tax line."""

from sqlalchemy import Column, DateTime, ForeignKey, Numeric, String, UniqueConstraint, func

from app.core.database import Base
from app.models.shared import DEFAULT_ORGANIZATION_ID, UUIDType, generate_uuid


class TaxExemptionUsage(Base):
    __tablename__ = "tax_exemption_usages"
    __table_args__ = (
        UniqueConstraint(
            "tax_exemption_id",
            "document_type",
            "document_id",
            "line_reference",
            "tax_type",
            name="uq_tax_exemption_usages_line",
        ),
    )

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    organization_id = Column(
        UUIDType,
        ForeignKey("organizations.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
        default=DEFAULT_ORGANIZATION_ID,
    )
    tax_exemption_id = Column(
        UUIDType,
        ForeignKey("tax_exemptions.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    customer_id = Column(UUIDType, nullable=True, index=True)
    document_type = Column(String(20), nullable=False)
    document_id = Column(UUIDType, nullable=False, index=True)
    line_reference = Column(String(100), nullable=False, default="1")
    tax_type = Column(String(100), nullable=False)
    original_tax_amount = Column(Numeric(12, 4), nullable=False)
    exempted_amount = Column(Numeric(12, 4), nullable=False)
    final_tax_amount = Column(Numeric(12, 4), nullable=False)
    exemption_reason = Column(String(255), nullable=True)
    used_at = Column(DateTime(timezone=True), server_default=func.now())

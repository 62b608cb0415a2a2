"""TaxExemptionUsage repository: append-only exemption audit log."""

from decimal import Decimal
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.tax_exemption_usage import TaxExemptionUsage


class TaxExemptionUsageRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_line_usage(
        self,
        tax_exemption_id: UUID,
        document_type: str,
        document_id: UUID,
        line_reference: str,
        tax_type: str,
    ) -> TaxExemptionUsage | None:
        return (
            self.db.query(TaxExemptionUsage)
            .filter(
                TaxExemptionUsage.tax_exemption_id == tax_exemption_id,
                TaxExemptionUsage.document_type == document_type,
                TaxExemptionUsage.document_id == document_id,
                TaxExemptionUsage.line_reference == line_reference,
                TaxExemptionUsage.tax_type == tax_type,
            )
            .first()
        )

    def get_by_exemption(
        self, tax_exemption_id: UUID, skip: int = 0, limit: int = 100
    ) -> list[TaxExemptionUsage]:
        return (
            self.db.query(TaxExemptionUsage)
            .filter(TaxExemptionUsage.tax_exemption_id == tax_exemption_id)
            .order_by(TaxExemptionUsage.used_at.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )

    def record(
        self,
        *,
        organization_id: UUID,
        tax_exemption_id: UUID,
        customer_id: UUID | None,
        document_type: str,
        document_id: UUID,
        line_reference: str,
        tax_type: str,
        original_tax_amount: Decimal,
        exempted_amount: Decimal,
        final_tax_amount: Decimal,
        exemption_reason: str | None = None,
    ) -> TaxExemptionUsage:
        """Record one usage; returns the existing row when already recorded."""
        existing = self.get_line_usage(
            tax_exemption_id, document_type, document_id, line_reference, tax_type
        )
        if existing is not None:
            return existing

        usage = TaxExemptionUsage(
            organization_id=organization_id,
            tax_exemption_id=tax_exemption_id,
            customer_id=customer_id,
            document_type=document_type,
            document_id=document_id,
            line_reference=line_reference,
            tax_type=tax_type,
            original_tax_amount=original_tax_amount,
            exempted_amount=exempted_amount,
            final_tax_amount=final_tax_amount,
            exemption_reason=exemption_reason,
        )
        self.db.add(usage)
        try:
            self.db.commit()
        except IntegrityError:
            # Concurrent writer recorded the same line first.
            self.db.rollback()
            existing = self.get_line_usage(
                tax_exemption_id, document_type, document_id, line_reference, tax_type
            )
            if existing is None:
                raise
            return existing
        self.db.refresh(usage)
        return usage

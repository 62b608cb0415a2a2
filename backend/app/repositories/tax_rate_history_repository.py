"""TaxRateHistory repository: append-only rate change log."""

from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from app.models.tax_rate_history import TaxRateHistory


class TaxRateHistoryRepository:
    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        *,
        organization_id: UUID,
        tax_rate_id: UUID,
        old_values: dict[str, Any],
        new_values: dict[str, Any],
        change_reason: str | None,
        changed_by: str | None = None,
        source: str = "manual",
        batch_id: str | None = None,
        commit: bool = True,
    ) -> TaxRateHistory:
        history = TaxRateHistory(
            organization_id=organization_id,
            tax_rate_id=tax_rate_id,
            old_values=old_values,
            new_values=new_values,
            change_reason=change_reason,
            changed_by=changed_by,
            source=source,
            batch_id=batch_id,
        )
        self.db.add(history)
        if commit:
            self.db.commit()
            self.db.refresh(history)
        else:
            self.db.flush()
        return history

    def get_by_rate(self, tax_rate_id: UUID, limit: int = 50) -> list[TaxRateHistory]:
        return (
            self.db.query(TaxRateHistory)
            .filter(TaxRateHistory.tax_rate_id == tax_rate_id)
            .order_by(TaxRateHistory.created_at.desc(), TaxRateHistory.id)
            .limit(limit)
            .all()
        )

"""TaxRateBackup repository for catalog snapshots."""

from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from app.models.tax_rate_backup import TaxRateBackup


class TaxRateBackupRepository:
    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        organization_id: UUID,
        batch_id: str,
        rates: list[dict[str, Any]],
    ) -> TaxRateBackup:
        backup = TaxRateBackup(
            organization_id=organization_id,
            batch_id=batch_id,
            rates=rates,
            rates_count=len(rates),
        )
        self.db.add(backup)
        self.db.commit()
        self.db.refresh(backup)
        return backup

    def get_by_batch_id(self, batch_id: str, organization_id: UUID) -> TaxRateBackup | None:
        return (
            self.db.query(TaxRateBackup)
            .filter(
                TaxRateBackup.batch_id == batch_id,
                TaxRateBackup.organization_id == organization_id,
            )
            .first()
        )

    def get_all(self, organization_id: UUID, limit: int = 50) -> list[TaxRateBackup]:
        return (
            self.db.query(TaxRateBackup)
            .filter(TaxRateBackup.organization_id == organization_id)
            .order_by(TaxRateBackup.created_at.desc())
            .limit(limit)
            .all()
        )

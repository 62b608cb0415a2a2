"""UsfRate repository for data access."""

from datetime import date
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.models.usf_rate import UsfRate
from app.schemas.usf_rate import UsfRateCreate


class UsfRateRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_all(self, organization_id: UUID, skip: int = 0, limit: int = 100) -> list[UsfRate]:
        return (
            self.db.query(UsfRate)
            .filter(UsfRate.organization_id == organization_id)
            .order_by(UsfRate.effective_date.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )

    def get_effective(self, organization_id: UUID, as_of: date) -> UsfRate | None:
        """Newest active version whose effective window contains ``as_of``."""
        return (
            self.db.query(UsfRate)
            .filter(
                UsfRate.organization_id == organization_id,
                UsfRate.is_active.is_(True),
                UsfRate.effective_date <= as_of,
                or_(UsfRate.expiry_date.is_(None), UsfRate.expiry_date >= as_of),
            )
            .order_by(UsfRate.effective_date.desc())
            .first()
        )

    def exists(self, organization_id: UUID) -> bool:
        return (
            self.db.query(UsfRate.id).filter(UsfRate.organization_id == organization_id).first()
            is not None
        )

    def create(
        self, data: UsfRateCreate, organization_id: UUID, commit: bool = True
    ) -> UsfRate:
        usf_rate = UsfRate(**data.model_dump(), organization_id=organization_id)
        self.db.add(usf_rate)
        if commit:
            self.db.commit()
            self.db.refresh(usf_rate)
        else:
            self.db.flush()
        return usf_rate

"""TaxCategory repository for data access."""

from uuid import UUID

from sqlalchemy.orm import Session

from app.core.sorting import apply_order_by
from app.models.tax_category import TaxCategory
from app.schemas.tax_category import TaxCategoryCreate


class TaxCategoryRepository:
    """Repository for TaxCategory model."""

    def __init__(self, db: Session):
        self.db = db

    def get_all(
        self,
        organization_id: UUID,
        skip: int = 0,
        limit: int = 100,
        order_by: str | None = None,
    ) -> list[TaxCategory]:
        query = self.db.query(TaxCategory).filter(TaxCategory.organization_id == organization_id)
        query = apply_order_by(query, TaxCategory, order_by)
        return query.offset(skip).limit(limit).all()

    def get_by_id(
        self, category_id: UUID, organization_id: UUID | None = None
    ) -> TaxCategory | None:
        query = self.db.query(TaxCategory).filter(TaxCategory.id == category_id)
        if organization_id is not None:
            query = query.filter(TaxCategory.organization_id == organization_id)
        return query.first()

    def get_by_code(self, code: str, organization_id: UUID) -> TaxCategory | None:
        return (
            self.db.query(TaxCategory)
            .filter(TaxCategory.code == code, TaxCategory.organization_id == organization_id)
            .first()
        )

    def get_active_by_priority(self, organization_id: UUID) -> list[TaxCategory]:
        """Active categories, lowest priority number first."""
        return (
            self.db.query(TaxCategory)
            .filter(
                TaxCategory.organization_id == organization_id,
                TaxCategory.is_active.is_(True),
            )
            .order_by(TaxCategory.priority, TaxCategory.name)
            .all()
        )

    def create(
        self, data: TaxCategoryCreate, organization_id: UUID, commit: bool = True
    ) -> TaxCategory:
        category = TaxCategory(**data.model_dump(), organization_id=organization_id)
        self.db.add(category)
        if commit:
            self.db.commit()
            self.db.refresh(category)
        else:
            self.db.flush()
        return category

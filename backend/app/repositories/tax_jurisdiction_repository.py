"""TaxJurisdiction repository for data access."""

from uuid import UUID

from sqlalchemy.orm import Session

from app.core.sorting import apply_order_by
from app.models.tax_jurisdiction import JurisdictionType, TaxJurisdiction
from app.schemas.tax_jurisdiction import TaxJurisdictionCreate


class TaxJurisdictionRepository:
    """Repository for TaxJurisdiction model."""

    def __init__(self, db: Session):
        self.db = db

    def get_all(
        self,
        organization_id: UUID,
        skip: int = 0,
        limit: int = 100,
        jurisdiction_type: str | None = None,
        order_by: str | None = None,
    ) -> list[TaxJurisdiction]:
        query = self.db.query(TaxJurisdiction).filter(
            TaxJurisdiction.organization_id == organization_id
        )
        if jurisdiction_type is not None:
            query = query.filter(TaxJurisdiction.jurisdiction_type == jurisdiction_type)
        query = apply_order_by(query, TaxJurisdiction, order_by)
        return query.offset(skip).limit(limit).all()

    def get_by_id(
        self, jurisdiction_id: UUID, organization_id: UUID | None = None
    ) -> TaxJurisdiction | None:
        query = self.db.query(TaxJurisdiction).filter(TaxJurisdiction.id == jurisdiction_id)
        if organization_id is not None:
            query = query.filter(TaxJurisdiction.organization_id == organization_id)
        return query.first()

    def get_by_code(self, code: str, organization_id: UUID) -> TaxJurisdiction | None:
        return (
            self.db.query(TaxJurisdiction)
            .filter(
                TaxJurisdiction.code == code,
                TaxJurisdiction.organization_id == organization_id,
            )
            .first()
        )

    def get_active(self, organization_id: UUID) -> list[TaxJurisdiction]:
        """All active jurisdictions of an organization."""
        return (
            self.db.query(TaxJurisdiction)
            .filter(
                TaxJurisdiction.organization_id == organization_id,
                TaxJurisdiction.is_active.is_(True),
            )
            .order_by(TaxJurisdiction.priority, TaxJurisdiction.name)
            .all()
        )

    def get_active_federal(self, organization_id: UUID) -> list[TaxJurisdiction]:
        return (
            self.db.query(TaxJurisdiction)
            .filter(
                TaxJurisdiction.organization_id == organization_id,
                TaxJurisdiction.jurisdiction_type == JurisdictionType.FEDERAL.value,
                TaxJurisdiction.is_active.is_(True),
            )
            .order_by(TaxJurisdiction.priority, TaxJurisdiction.name)
            .all()
        )

    def create(self, data: TaxJurisdictionCreate, organization_id: UUID) -> TaxJurisdiction:
        values = data.model_dump()
        values["jurisdiction_type"] = data.jurisdiction_type.value
        if data.state_code:
            values["state_code"] = data.state_code.upper()
        jurisdiction = TaxJurisdiction(**values, organization_id=organization_id)
        self.db.add(jurisdiction)
        self.db.commit()
        self.db.refresh(jurisdiction)
        return jurisdiction

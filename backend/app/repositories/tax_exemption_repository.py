"""TaxExemption repository for data access."""

from collections.abc import Iterable
from datetime import date
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.models.tax_exemption import ExemptionStatus, TaxExemption
from app.schemas.tax_exemption import TaxExemptionCreate


class TaxExemptionRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_all(
        self,
        organization_id: UUID,
        skip: int = 0,
        limit: int = 100,
        customer_id: UUID | None = None,
        status: str | None = None,
    ) -> list[TaxExemption]:
        query = self.db.query(TaxExemption).filter(TaxExemption.organization_id == organization_id)
        if customer_id is not None:
            query = query.filter(TaxExemption.customer_id == customer_id)
        if status is not None:
            query = query.filter(TaxExemption.status == status)
        return (
            query.order_by(TaxExemption.priority, TaxExemption.created_at)
            .offset(skip)
            .limit(limit)
            .all()
        )

    def get_by_id(
        self, exemption_id: UUID, organization_id: UUID | None = None
    ) -> TaxExemption | None:
        query = self.db.query(TaxExemption).filter(TaxExemption.id == exemption_id)
        if organization_id is not None:
            query = query.filter(TaxExemption.organization_id == organization_id)
        return query.first()

    def get_valid_for_customer(
        self,
        organization_id: UUID,
        customer_id: UUID,
        jurisdiction_ids: Iterable[UUID],
        as_of: date,
    ) -> list[TaxExemption]:
        """Active, unexpired exemptions that are blanket or scoped to one of the jurisdictions."""
        scope = [TaxExemption.is_blanket_exemption.is_(True)]
        ids = list(jurisdiction_ids)
        if ids:
            scope.append(TaxExemption.tax_jurisdiction_id.in_(ids))
        return (
            self.db.query(TaxExemption)
            .filter(
                TaxExemption.organization_id == organization_id,
                TaxExemption.customer_id == customer_id,
                TaxExemption.status == ExemptionStatus.ACTIVE.value,
                or_(TaxExemption.expiry_date.is_(None), TaxExemption.expiry_date >= as_of),
                or_(*scope),
            )
            .order_by(TaxExemption.priority, TaxExemption.created_at)
            .all()
        )

    def create(self, data: TaxExemptionCreate, organization_id: UUID) -> TaxExemption:
        values = data.model_dump(exclude={"exemption_conditions"})
        values["exemption_type"] = data.exemption_type.value
        values["status"] = data.status.value
        values["exemption_conditions"] = (
            [c.model_dump(mode="json", exclude_none=True) for c in data.exemption_conditions]
            if data.exemption_conditions
            else None
        )
        exemption = TaxExemption(**values, organization_id=organization_id)
        self.db.add(exemption)
        self.db.commit()
        self.db.refresh(exemption)
        return exemption

"""TaxRate repository for data access."""

from datetime import date
from typing import Any
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.models.tax_rate import TaxRate


class TaxRateRepository:
    """Repository for TaxRate model.

    Write methods accept ``commit=False`` so the management service can
    group a rate change and its history record in one transaction.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_all(
        self,
        organization_id: UUID,
        skip: int = 0,
        limit: int = 100,
        jurisdiction_id: UUID | None = None,
        category_id: UUID | None = None,
        tax_type: str | None = None,
        is_active: bool | None = None,
    ) -> list[TaxRate]:
        query = self._filtered(organization_id, jurisdiction_id, category_id, tax_type, is_active)
        return (
            query.order_by(TaxRate.priority, TaxRate.effective_date.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )

    def get_all_unpaginated(
        self,
        organization_id: UUID,
        jurisdiction_id: UUID | None = None,
        category_id: UUID | None = None,
        tax_type: str | None = None,
        is_active: bool | None = None,
    ) -> list[TaxRate]:
        query = self._filtered(organization_id, jurisdiction_id, category_id, tax_type, is_active)
        return query.order_by(TaxRate.priority, TaxRate.effective_date.desc()).all()

    def count(self, organization_id: UUID) -> int:
        return self.db.query(TaxRate).filter(TaxRate.organization_id == organization_id).count()

    def get_by_id(self, rate_id: UUID, organization_id: UUID | None = None) -> TaxRate | None:
        query = self.db.query(TaxRate).filter(TaxRate.id == rate_id)
        if organization_id is not None:
            query = query.filter(TaxRate.organization_id == organization_id)
        return query.first()

    def get_applicable(
        self,
        organization_id: UUID,
        jurisdiction_id: UUID,
        category_id: UUID,
        as_of: date,
    ) -> list[TaxRate]:
        """Active rates whose effective window contains ``as_of``."""
        return (
            self.db.query(TaxRate)
            .filter(
                TaxRate.organization_id == organization_id,
                TaxRate.tax_jurisdiction_id == jurisdiction_id,
                TaxRate.tax_category_id == category_id,
                TaxRate.is_active.is_(True),
                TaxRate.effective_date <= as_of,
                or_(TaxRate.expiry_date.is_(None), TaxRate.expiry_date >= as_of),
            )
            .order_by(TaxRate.priority, TaxRate.effective_date.desc())
            .all()
        )

    def find_existing(
        self,
        organization_id: UUID,
        jurisdiction_id: UUID,
        category_id: UUID,
        tax_type: str,
        tax_name: str,
        effective_date: date,
    ) -> TaxRate | None:
        """Natural-key lookup used by bulk imports."""
        return (
            self.db.query(TaxRate)
            .filter(
                TaxRate.organization_id == organization_id,
                TaxRate.tax_jurisdiction_id == jurisdiction_id,
                TaxRate.tax_category_id == category_id,
                TaxRate.tax_type == tax_type,
                TaxRate.tax_name == tax_name,
                TaxRate.effective_date == effective_date,
            )
            .first()
        )

    def get_expired_active(self, as_of: date, organization_id: UUID | None = None) -> list[TaxRate]:
        """Rates still flagged active although their expiry date has passed."""
        query = self.db.query(TaxRate).filter(
            TaxRate.is_active.is_(True),
            TaxRate.expiry_date.isnot(None),
            TaxRate.expiry_date < as_of,
        )
        if organization_id is not None:
            query = query.filter(TaxRate.organization_id == organization_id)
        return query.all()

    def create(
        self, values: dict[str, Any], organization_id: UUID, commit: bool = True
    ) -> TaxRate:
        rate = TaxRate(**values, organization_id=organization_id)
        self.db.add(rate)
        if commit:
            self.db.commit()
            self.db.refresh(rate)
        else:
            self.db.flush()
        return rate

    def update(self, rate: TaxRate, values: dict[str, Any], commit: bool = True) -> TaxRate:
        for key, value in values.items():
            setattr(rate, key, value)
        if commit:
            self.db.commit()
            self.db.refresh(rate)
        else:
            self.db.flush()
        return rate

    def _filtered(
        self,
        organization_id: UUID,
        jurisdiction_id: UUID | None,
        category_id: UUID | None,
        tax_type: str | None,
        is_active: bool | None,
    ):  # type: ignore[no-untyped-def]
        query = self.db.query(TaxRate).filter(TaxRate.organization_id == organization_id)
        if jurisdiction_id is not None:
            query = query.filter(TaxRate.tax_jurisdiction_id == jurisdiction_id)
        if category_id is not None:
            query = query.filter(TaxRate.tax_category_id == category_id)
        if tax_type is not None:
            query = query.filter(TaxRate.tax_type == tax_type)
        if is_active is not None:
            query = query.filter(TaxRate.is_active.is_(is_active))
        return query

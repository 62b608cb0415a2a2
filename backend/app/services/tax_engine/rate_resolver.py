from datetime import date
from uuid import UUID

from sqlalchemy.orm import Session

from app.models.tax_rate import TaxRate
from app.repositories.tax_rate_repository import TaxRateRepository


class RateResolver:
    def __init__(self, db: Session):
        self.repo = TaxRateRepository(db)

    def resolve(
        self,
        organization_id: UUID,
        jurisdiction_id: UUID,
        category_id: UUID,
        service_type: str,
        as_of: date,
    ) -> list[TaxRate]:
        """Rates in effect on ``as_of`` for the service type, in application order.

        Ordered by priority ascending, newest effective date first on ties.
        An empty result means no tax of this kind applies.
        """
        rates = self.repo.get_applicable(organization_id, jurisdiction_id, category_id, as_of)
        return [
            rate
            for rate in rates
            if not rate.service_types or service_type in rate.service_types
        ]

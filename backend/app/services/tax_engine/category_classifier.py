from uuid import UUID

from sqlalchemy.orm import Session

from app.models.tax_category import TaxCategory
from app.repositories.tax_category_repository import TaxCategoryRepository


class TaxCategoryClassifier:
    """First active category, by priority, listing the service type.

    A category without service types matches everything.
    """

    def __init__(self, db: Session):
        self.repo = TaxCategoryRepository(db)

    def classify(self, organization_id: UUID, service_type: str) -> TaxCategory | None:
        for category in self.repo.get_active_by_priority(organization_id):
            if not category.service_types or service_type in category.service_types:
                return category
        return None

from sqlalchemy.orm import Session

from app.models.organization import Organization


class OrganizationRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_all(self) -> list[Organization]:
        """Every tenant, oldest first; the worker syncs catalogs in this order."""
        return self.db.query(Organization).order_by(Organization.created_at).all()

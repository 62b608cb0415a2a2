from uuid import UUID

from sqlalchemy.orm import Session

from app.models.customer import Customer
from app.schemas.customer import CustomerCreate


class CustomerRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, customer_id: UUID, organization_id: UUID | None = None) -> Customer | None:
        query = self.db.query(Customer).filter(Customer.id == customer_id)
        if organization_id is not None:
            query = query.filter(Customer.organization_id == organization_id)
        return query.first()

    def create(self, data: CustomerCreate, organization_id: UUID) -> Customer:
        customer = Customer(**data.model_dump(), organization_id=organization_id)
        self.db.add(customer)
        self.db.commit()
        self.db.refresh(customer)
        return customer

    def get_by_external_id(self, external_id: str, organization_id: UUID) -> Customer | None:
        return (
            self.db.query(Customer)
            .filter(
                Customer.external_id == external_id,
                Customer.organization_id == organization_id,
            )
            .first()
        )

"""Billing client endpoints needed to attach tax exemptions and service addresses."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.core.auth import get_current_organization
from app.core.database import get_db
from app.models.customer import Customer
from app.repositories.customer_repository import CustomerRepository
from app.schemas.customer import CustomerCreate, CustomerResponse

router = APIRouter()


@router.post(
    "/",
    response_model=CustomerResponse,
    status_code=201,
    summary="Create customer",
    responses={
        401: {"description": "Unauthorized"},
        409: {"description": "Customer with this external_id already exists"},
        422: {"description": "Validation error"},
    },
)
async def create_customer(
    data: CustomerCreate,
    db: Session = Depends(get_db),
    organization_id: UUID = Depends(get_current_organization),
) -> Customer:
    repo = CustomerRepository(db)
    if repo.get_by_external_id(data.external_id, organization_id):
        raise HTTPException(
            status_code=409, detail="Customer with this external_id already exists"
        )
    return repo.create(data, organization_id)


@router.get(
    "/{customer_id}",
    response_model=CustomerResponse,
    summary="Get customer",
    responses={
        401: {"description": "Unauthorized"},
        404: {"description": "Customer not found"},
    },
)
async def get_customer(
    customer_id: UUID,
    db: Session = Depends(get_db),
    organization_id: UUID = Depends(get_current_organization),
) -> Customer:
    customer = CustomerRepository(db).get_by_id(customer_id, organization_id)
    if not customer:
        raise HTTPException(status_code=404, detail="Customer not found")
    return customer

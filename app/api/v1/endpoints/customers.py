from datetime import datetime, timezone

from fastapi import APIRouter, status

from app.api.deps import DB, Actor
from app.schemas.base import DataResponse, DeletedResponse, ListResponse
from app.schemas.customer import CustomerCreate, CustomerResponse
from app.services.catalog_service import CatalogService
from app.services.deletion_service import DeletionService

router = APIRouter()


@router.post("", response_model=DataResponse[CustomerResponse], status_code=status.HTTP_201_CREATED)
async def create_customer(data: CustomerCreate, db: DB, actor: Actor):
    customer = await CatalogService(db).create_customer(
        actor, data.name, data.phone, data.email, data.address,
    )
    return DataResponse[CustomerResponse](
        message="Customer added.",
        data=CustomerResponse.model_validate(customer),
    )


@router.get("", response_model=ListResponse[CustomerResponse])
async def list_customers(db: DB, actor: Actor):
    customers = await CatalogService(db).list_customers(actor)
    return ListResponse[CustomerResponse](
        items=[CustomerResponse.model_validate(customer) for customer in customers],
        total=len(customers),
    )


@router.delete("/{customer_id}", response_model=DeletedResponse)
async def delete_customer(customer_id: int, db: DB, actor: Actor):
    await DeletionService(db).delete_customer(actor, customer_id)
    return DeletedResponse(message="Customer deleted.", id=customer_id, deleted_at=datetime.now(timezone.utc))

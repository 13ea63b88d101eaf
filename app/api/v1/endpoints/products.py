from datetime import datetime, timezone

from fastapi import APIRouter, status

from app.api.deps import DB, Actor
from app.schemas.base import DataResponse, DeletedResponse, ListResponse
from app.schemas.product import ProductCreate, ProductResponse
from app.services.catalog_service import CatalogService
from app.services.deletion_service import DeletionService

router = APIRouter()


@router.post("", response_model=DataResponse[ProductResponse], status_code=status.HTTP_201_CREATED)
async def create_product(data: ProductCreate, db: DB, actor: Actor):
    product = await CatalogService(db).create_product(
        actor, data.name, data.sku, data.unit_price, data.description,
    )
    return DataResponse[ProductResponse](
        message="Product added.",
        data=ProductResponse.model_validate(product),
    )


@router.get("", response_model=ListResponse[ProductResponse])
async def list_products(db: DB, actor: Actor):
    products = await CatalogService(db).list_products()
    return ListResponse[ProductResponse](
        items=[ProductResponse.model_validate(product) for product in products],
        total=len(products),
    )


@router.delete("/{product_id}", response_model=DeletedResponse)
async def delete_product(product_id: int, db: DB, actor: Actor):
    await DeletionService(db).delete_product(actor, product_id)
    return DeletedResponse(message="Product deleted.", id=product_id, deleted_at=datetime.now(timezone.utc))

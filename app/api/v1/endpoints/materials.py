from datetime import datetime, timezone

from fastapi import APIRouter, status

from app.api.deps import DB, Actor
from app.schemas.base import DataResponse, DeletedResponse, ListResponse
from app.schemas.product import MaterialCreate, MaterialResponse
from app.services.catalog_service import CatalogService
from app.services.deletion_service import DeletionService

router = APIRouter()


@router.post("", response_model=DataResponse[MaterialResponse], status_code=status.HTTP_201_CREATED)
async def create_material(data: MaterialCreate, db: DB, actor: Actor):
    """Register a raw material. Stock is added through purchases."""
    material = await CatalogService(db).create_material(actor, data.name, data.unit, data.min_stock_level)
    return DataResponse[MaterialResponse](
        message="Raw material added.",
        data=MaterialResponse.model_validate(material),
    )


@router.get("", response_model=ListResponse[MaterialResponse])
async def list_materials(db: DB, actor: Actor, low_stock: bool = False):
    materials = await CatalogService(db).list_materials(low_stock_only=low_stock)
    return ListResponse[MaterialResponse](
        items=[MaterialResponse.model_validate(material) for material in materials],
        total=len(materials),
    )


@router.delete("/{material_id}", response_model=DeletedResponse)
async def delete_material(material_id: int, db: DB, actor: Actor):
    await DeletionService(db).delete_material(actor, material_id)
    return DeletedResponse(message="Raw material deleted.", id=material_id, deleted_at=datetime.now(timezone.utc))

"""Finished goods stock endpoints."""
from typing import Optional

from fastapi import APIRouter

from app.api.deps import DB, Actor
from app.models.inventory import Location
from app.models.user import UserRole
from app.schemas.base import ListResponse
from app.schemas.inventory import FinishedGoodsResponse
from app.services.finished_goods_service import FinishedGoodsService

router = APIRouter()


@router.get("", response_model=ListResponse[FinishedGoodsResponse])
async def list_finished_goods(
    db: DB,
    actor: Actor,
    product_id: Optional[int] = None,
    location: Optional[Location] = None,
    shopkeeper_id: Optional[int] = None,
):
    """
    Finished goods by product and location.

    Distributors only see the entries they hold plus the shared wholesale pool.
    """
    entries = await FinishedGoodsService(db).list_entries(product_id, location, shopkeeper_id)
    if actor.role == UserRole.DISTRIBUTOR:
        entries = [
            entry for entry in entries
            if entry.shopkeeper_id in (None, actor.user_id) and entry.location != Location.MANUFACTURING.value
        ]
    return ListResponse[FinishedGoodsResponse](
        items=[FinishedGoodsResponse.model_validate(entry) for entry in entries],
        total=len(entries),
    )

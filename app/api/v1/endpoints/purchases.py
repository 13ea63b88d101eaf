"""Raw material purchase endpoints."""
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Query, status

from app.api.deps import DB, Actor, IdempotencyKey
from app.schemas.base import DataResponse, DeletedResponse, ListResponse
from app.schemas.purchase import PurchaseCreate, PurchaseResponse
from app.services.deletion_service import DeletionService
from app.services.idempotency_service import IdempotencyService
from app.services.purchase_service import PurchaseService

router = APIRouter()


def _save(db, actor, data: PurchaseCreate, purchase_id: Optional[int] = None):
    async def handler():
        purchase = await PurchaseService(db).save_purchase(
            actor,
            material_id=data.material_id,
            quantity=data.quantity,
            unit_price=data.unit_price,
            total_amount=data.total_amount,
            purchase_date=data.purchase_date,
            fund_id=data.fund_id,
            supplier=data.supplier,
            notes=data.notes,
            purchase_id=purchase_id,
        )
        verb = "recorded" if purchase_id is None else "updated"
        return DataResponse[PurchaseResponse](
            message=f"Purchase {verb}.",
            data=PurchaseResponse.model_validate(purchase),
        )

    return handler


@router.post("", response_model=DataResponse[PurchaseResponse], status_code=status.HTTP_201_CREATED)
async def create_purchase(
    data: PurchaseCreate,
    db: DB,
    actor: Actor,
    idempotency_key: IdempotencyKey = None,
):
    """Record a purchase: credit material stock and, if a fund is named, debit it."""
    return await IdempotencyService(db).run(
        idempotency_key, actor, "purchases.create", _save(db, actor, data),
    )


@router.put("/{purchase_id}", response_model=DataResponse[PurchaseResponse])
async def update_purchase(
    purchase_id: int,
    data: PurchaseCreate,
    db: DB,
    actor: Actor,
    idempotency_key: IdempotencyKey = None,
):
    """Edit a purchase by reverting its stock and fund effects and applying the new ones."""
    return await IdempotencyService(db).run(
        idempotency_key, actor, f"purchases.update:{purchase_id}", _save(db, actor, data, purchase_id),
    )


@router.get("", response_model=ListResponse[PurchaseResponse])
async def list_purchases(
    db: DB,
    actor: Actor,
    material_id: Optional[int] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
):
    purchases = await PurchaseService(db).list_purchases(material_id, skip, limit)
    return ListResponse[PurchaseResponse](
        items=[PurchaseResponse.model_validate(purchase) for purchase in purchases],
        total=len(purchases),
    )


@router.delete("/{purchase_id}", response_model=DeletedResponse)
async def delete_purchase(
    purchase_id: int,
    db: DB,
    actor: Actor,
    reason: str = Query(..., min_length=1),
):
    await DeletionService(db).delete_purchase(actor, purchase_id, reason)
    return DeletedResponse(
        message="Purchase deleted. Stock and fund restored.",
        id=purchase_id,
        deleted_at=datetime.now(timezone.utc),
    )

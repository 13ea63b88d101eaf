"""Sales, payments against them and reminder contact notes."""
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Query, status

from app.api.deps import DB, Actor, IdempotencyKey
from app.core.permissions import PermissionChecker
from app.models.sales import Sale
from app.schemas.base import DataResponse, DeletedResponse, ListResponse
from app.schemas.sales import (
    PaymentCreate,
    PaymentRecorded,
    PaymentResponse,
    ReminderContacted,
    SaleCreate,
    SaleDetailResponse,
    SaleItemResponse,
    SaleResponse,
)
from app.services.deletion_service import DeletionService
from app.services.idempotency_service import IdempotencyService
from app.services.payment_service import PaymentService
from app.services.sale_service import SaleService

router = APIRouter()


async def _detail(service: SaleService, sale: Sale) -> SaleDetailResponse:
    detail = SaleDetailResponse.model_validate(sale)
    detail.items = [SaleItemResponse.model_validate(item) for item in await service.get_items(sale.id)]
    detail.amount_paid = float(await service.get_paid_total(sale.id))
    return detail


def _save(db, actor, data: SaleCreate, sale_id: Optional[int] = None):
    async def handler():
        service = SaleService(db)
        sale = await service.save_sale(
            actor,
            customer_id=data.customer_id,
            sale_date=data.sale_date,
            items=[item.model_dump() for item in data.items],
            discount_amount=data.discount_amount,
            tax_amount=data.tax_amount,
            shipping_cost=data.shipping_cost,
            payment_due_date=data.payment_due_date,
            notes=data.notes,
            sale_id=sale_id,
        )
        verb = "created" if sale_id is None else "updated"
        return DataResponse[SaleDetailResponse](
            message=f"Sale {sale.invoice_number} {verb}.",
            data=await _detail(service, sale),
        )

    return handler


@router.post("", response_model=DataResponse[SaleDetailResponse], status_code=status.HTTP_201_CREATED)
async def create_sale(
    data: SaleCreate,
    db: DB,
    actor: Actor,
    idempotency_key: IdempotencyKey = None,
):
    """Record a sale. Every item is taken out of wholesale stock."""
    return await IdempotencyService(db).run(idempotency_key, actor, "sales.create", _save(db, actor, data))


@router.put("/{sale_id}", response_model=DataResponse[SaleDetailResponse])
async def update_sale(
    sale_id: int,
    data: SaleCreate,
    db: DB,
    actor: Actor,
    idempotency_key: IdempotencyKey = None,
):
    """Replace the items of a sale that has no payments yet."""
    return await IdempotencyService(db).run(
        idempotency_key, actor, f"sales.update:{sale_id}", _save(db, actor, data, sale_id),
    )


@router.get("", response_model=ListResponse[SaleResponse])
async def list_sales(
    db: DB,
    actor: Actor,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
):
    sales, total = await SaleService(db).list_sales(actor, skip, limit)
    return ListResponse[SaleResponse](
        items=[SaleResponse.model_validate(sale) for sale in sales],
        total=total,
    )


@router.get("/{sale_id}", response_model=DataResponse[SaleDetailResponse])
async def get_sale(sale_id: int, db: DB, actor: Actor):
    service = SaleService(db)
    sale = await service.get_sale(sale_id)
    PermissionChecker(actor).require_owner_or_creator(sale.created_by, action="view sales")
    return DataResponse[SaleDetailResponse](data=await _detail(service, sale))


@router.delete("/{sale_id}", response_model=DeletedResponse)
async def delete_sale(
    sale_id: int,
    db: DB,
    actor: Actor,
    reason: str = Query(..., min_length=1),
):
    await DeletionService(db).delete_sale(actor, sale_id, reason)
    return DeletedResponse(
        message="Sale deleted. Items returned to wholesale.",
        id=sale_id,
        deleted_at=datetime.now(timezone.utc),
    )


@router.post(
    "/{sale_id}/payments",
    response_model=DataResponse[PaymentRecorded],
    status_code=status.HTTP_201_CREATED,
)
async def record_payment(
    sale_id: int,
    data: PaymentCreate,
    db: DB,
    actor: Actor,
    idempotency_key: IdempotencyKey = None,
):
    async def handler():
        payment, payment_status, remaining = await PaymentService(db).record_payment(
            actor,
            sale_id,
            amount=data.amount,
            payment_method=data.payment_method,
            payment_date=data.payment_date,
            reference_number=data.reference_number,
            notes=data.notes,
        )
        return DataResponse[PaymentRecorded](
            message="Payment recorded.",
            data=PaymentRecorded(
                payment=PaymentResponse.model_validate(payment),
                payment_status=payment_status.value,
                remaining_amount=float(remaining),
            ),
        )

    return await IdempotencyService(db).run(idempotency_key, actor, f"sales.payment:{sale_id}", handler)


@router.post("/{sale_id}/contacted", response_model=DataResponse[SaleResponse])
async def mark_reminder_contacted(
    sale_id: int,
    data: ReminderContacted,
    db: DB,
    actor: Actor,
):
    """Note that the customer of an outstanding sale was contacted."""
    sale = await SaleService(db).mark_reminder_contacted(actor, sale_id, data.notes)
    return DataResponse[SaleResponse](
        message="Reminder marked as contacted.",
        data=SaleResponse.model_validate(sale),
    )

"""Payment reminders and voiding."""
from fastapi import APIRouter, Query

from app.api.deps import DB, Actor
from app.schemas.base import DataResponse, ListResponse
from app.schemas.sales import PaymentReminder, PaymentVoided
from app.services.payment_service import PaymentService
from app.services.sale_service import SaleService

router = APIRouter()


@router.get("/reminders", response_model=ListResponse[PaymentReminder])
async def get_payment_reminders(db: DB, actor: Actor):
    """Outstanding sales of the calling distributor, earliest due first."""
    reminders = await SaleService(db).get_payment_reminders(actor)
    return ListResponse[PaymentReminder](
        items=[PaymentReminder(**reminder) for reminder in reminders],
        total=len(reminders),
    )


@router.delete("/{payment_id}", response_model=DataResponse[PaymentVoided])
async def void_payment(
    payment_id: int,
    db: DB,
    actor: Actor,
    reason: str = Query(..., min_length=1),
):
    """Remove a payment and re-derive its sale's payment status."""
    sale, payment_status = await PaymentService(db).void_payment(actor, payment_id, reason)
    return DataResponse[PaymentVoided](
        message="Payment voided.",
        data=PaymentVoided(sale_id=sale.id, payment_status=payment_status.value),
    )

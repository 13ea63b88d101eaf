"""Two-phase inventory transfer endpoints."""
from fastapi import APIRouter, status

from app.api.deps import DB, Actor, IdempotencyKey
from app.schemas.base import DataResponse, ListResponse
from app.schemas.inventory import TransferCreate, TransferResponse
from app.services.idempotency_service import IdempotencyService
from app.services.transfer_service import TransferService

router = APIRouter()


@router.post("", response_model=DataResponse[TransferResponse], status_code=status.HTTP_201_CREATED)
async def initiate_transfer(
    data: TransferCreate,
    db: DB,
    actor: Actor,
    idempotency_key: IdempotencyKey = None,
):
    """
    Move finished goods out of a location.

    The source is debited now; the destination only once the receiver confirms.
    """
    async def handler():
        transfer = await TransferService(db).initiate_transfer(
            actor,
            product_id=data.product_id,
            quantity=data.quantity,
            from_location=data.from_location,
            to_location=data.to_location,
            shopkeeper_id=data.shopkeeper_id,
            notes=data.notes,
        )
        return DataResponse[TransferResponse](
            message="Transfer initiated. Awaiting confirmation.",
            data=TransferResponse.model_validate(transfer),
        )

    return await IdempotencyService(db).run(idempotency_key, actor, "transfers.create", handler)


@router.get("/pending", response_model=ListResponse[TransferResponse])
async def list_pending_transfers(db: DB, actor: Actor):
    transfers = await TransferService(db).list_pending_transfers(actor)
    return ListResponse[TransferResponse](
        items=[TransferResponse.model_validate(transfer) for transfer in transfers],
        total=len(transfers),
    )


@router.post("/{transfer_id}/confirm", response_model=DataResponse[TransferResponse])
async def confirm_transfer(
    transfer_id: int,
    db: DB,
    actor: Actor,
    idempotency_key: IdempotencyKey = None,
):
    """Confirm receipt and credit the destination."""
    async def handler():
        transfer = await TransferService(db).confirm_transfer(actor, transfer_id)
        return DataResponse[TransferResponse](
            message="Transfer confirmed. Inventory updated.",
            data=TransferResponse.model_validate(transfer),
        )

    return await IdempotencyService(db).run(idempotency_key, actor, f"transfers.confirm:{transfer_id}", handler)

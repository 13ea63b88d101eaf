"""Manufacturing batch API endpoints."""
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Query, status

from app.api.deps import DB, Actor, IdempotencyKey
from app.models.manufacturing import BatchStatus, ManufacturingBatch
from app.schemas.base import DataResponse, DeletedResponse, ListResponse
from app.schemas.manufacturing import (
    AdjustmentCreate,
    AdjustmentResponse,
    BatchCostingResponse,
    BatchCreate,
    BatchDetailResponse,
    BatchResponse,
    BatchStatusResult,
    BatchStatusUpdate,
    CostCreate,
    CostResponse,
    MaterialUsageResponse,
    QualityCheckCreate,
    QualityCheckResponse,
)
from app.services.batch_service import BatchService
from app.services.deletion_service import DeletionService
from app.services.idempotency_service import IdempotencyService

router = APIRouter()


async def _detail(service: BatchService, batch: ManufacturingBatch) -> BatchDetailResponse:
    detail = BatchDetailResponse.model_validate(batch)
    detail.materials = [
        MaterialUsageResponse.model_validate(usage)
        for usage in await service.get_material_usage(batch.id)
    ]
    return detail


@router.post("", response_model=DataResponse[BatchDetailResponse], status_code=status.HTTP_201_CREATED)
async def create_batch(
    data: BatchCreate,
    db: DB,
    actor: Actor,
    idempotency_key: IdempotencyKey = None,
):
    """
    Start a manufacturing batch.

    Every listed material is debited from stock at once; the batch is
    rejected whole if any material is short.
    """
    service = BatchService(db)

    async def handler():
        batch = await service.create_batch(
            actor,
            product_id=data.product_id,
            quantity_produced=data.quantity_produced,
            start_date=data.start_date,
            expected_completion_date=data.expected_completion_date,
            materials=[line.model_dump() for line in data.materials],
            notes=data.notes,
        )
        return DataResponse[BatchDetailResponse](
            message=f"Batch {batch.batch_number} created.",
            data=await _detail(service, batch),
        )

    return await IdempotencyService(db).run(idempotency_key, actor, "batches.create", handler)


@router.get("", response_model=ListResponse[BatchResponse])
async def list_batches(
    db: DB,
    actor: Actor,
    batch_status: Optional[BatchStatus] = Query(None, alias="status"),
    product_id: Optional[int] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
):
    """List batches, newest first."""
    batches, total = await BatchService(db).list_batches(batch_status, product_id, skip, limit)
    return ListResponse[BatchResponse](
        items=[BatchResponse.model_validate(batch) for batch in batches],
        total=total,
    )


@router.get("/{batch_id}", response_model=DataResponse[BatchDetailResponse])
async def get_batch(batch_id: int, db: DB, actor: Actor):
    service = BatchService(db)
    batch = await service.get_batch(batch_id)
    return DataResponse[BatchDetailResponse](data=await _detail(service, batch))


@router.post("/{batch_id}/status", response_model=DataResponse[BatchStatusResult])
async def advance_status(
    batch_id: int,
    data: BatchStatusUpdate,
    db: DB,
    actor: Actor,
    idempotency_key: IdempotencyKey = None,
):
    """
    Move a batch to its next status.

    Completing a batch creates a pending transfer of its output to wholesale.
    """
    service = BatchService(db)

    async def handler():
        batch, transfer_id = await service.advance_status(actor, batch_id, data.status, data.notes)
        message = f"Batch {batch.batch_number} is now {batch.status}."
        if transfer_id:
            message += " Output awaits confirmation at wholesale."
        return DataResponse[BatchStatusResult](
            message=message,
            data=BatchStatusResult(batch=BatchResponse.model_validate(batch), transfer_id=transfer_id),
        )

    return await IdempotencyService(db).run(idempotency_key, actor, f"batches.status:{batch_id}", handler)


@router.post("/{batch_id}/costs", response_model=DataResponse[CostResponse], status_code=status.HTTP_201_CREATED)
async def record_cost(
    batch_id: int,
    data: CostCreate,
    db: DB,
    actor: Actor,
    idempotency_key: IdempotencyKey = None,
):
    async def handler():
        cost = await BatchService(db).record_cost(
            actor, batch_id, data.cost_type, data.amount, data.description, data.cost_date,
        )
        return DataResponse[CostResponse](message="Cost recorded.", data=CostResponse.model_validate(cost))

    return await IdempotencyService(db).run(idempotency_key, actor, f"batches.cost:{batch_id}", handler)


@router.post(
    "/{batch_id}/quality-checks",
    response_model=DataResponse[QualityCheckResponse],
    status_code=status.HTTP_201_CREATED,
)
async def record_quality_check(batch_id: int, data: QualityCheckCreate, db: DB, actor: Actor):
    check = await BatchService(db).record_quality_check(
        actor, batch_id, data.status, data.defects_found, data.notes, data.check_date,
    )
    return DataResponse[QualityCheckResponse](
        message="Quality check recorded.",
        data=QualityCheckResponse.model_validate(check),
    )


@router.post("/{batch_id}/adjustments", response_model=DataResponse[Optional[AdjustmentResponse]])
async def adjust_final_quantity(batch_id: int, data: AdjustmentCreate, db: DB, actor: Actor):
    """Correct the output quantity of a completed batch."""
    adjustment = await BatchService(db).adjust_final_quantity(
        actor, batch_id, data.product_id, data.original_quantity, data.adjusted_quantity, data.reason,
    )
    if adjustment is None:
        return DataResponse[Optional[AdjustmentResponse]](message="Quantity unchanged.", data=None)
    return DataResponse[Optional[AdjustmentResponse]](
        message=f"Output adjusted from {data.original_quantity} to {data.adjusted_quantity}.",
        data=AdjustmentResponse.model_validate(adjustment),
    )


@router.get("/{batch_id}/costing", response_model=DataResponse[BatchCostingResponse])
async def get_batch_costing(batch_id: int, db: DB, actor: Actor):
    """Manufacturing plus material cost of a batch, and the per-unit cost."""
    costing = await BatchService(db).get_batch_costing(actor, batch_id)
    return DataResponse[BatchCostingResponse](data=BatchCostingResponse(**costing))


@router.delete("/{batch_id}", response_model=DeletedResponse)
async def delete_batch(
    batch_id: int,
    db: DB,
    actor: Actor,
    reason: str = Query(..., min_length=1),
):
    """Delete a batch, returning its materials to stock and its output from finished goods."""
    await DeletionService(db).delete_batch(actor, batch_id, reason)
    return DeletedResponse(
        message="Batch deleted and stock restored.",
        id=batch_id,
        deleted_at=datetime.now(timezone.utc),
    )

"""Fund ledger endpoints."""
from fastapi import APIRouter, status

from app.api.deps import DB, Actor, IdempotencyKey
from app.schemas.base import DataResponse, ListResponse
from app.schemas.fund import (
    CapitalReturnCreate,
    FundAllocate,
    FundResponse,
    FundSummaryResponse,
    FundUsageCreate,
    FundUsageResponse,
)
from app.services.fund_service import FundService
from app.services.idempotency_service import IdempotencyService

router = APIRouter()


@router.post("", response_model=DataResponse[FundResponse], status_code=status.HTTP_201_CREATED)
async def allocate_fund(
    data: FundAllocate,
    db: DB,
    actor: Actor,
    idempotency_key: IdempotencyKey = None,
):
    """Inject capital as a new investment fund."""
    async def handler():
        fund = await FundService(db).allocate(
            actor, data.from_user_id, data.to_user_id, data.amount, data.description,
        )
        return DataResponse[FundResponse](
            message="Funds transferred successfully.",
            data=FundResponse.model_validate(fund),
        )

    return await IdempotencyService(db).run(idempotency_key, actor, "funds.allocate", handler)


@router.get("", response_model=ListResponse[FundResponse])
async def list_funds(db: DB, actor: Actor):
    funds = await FundService(db).list_funds(actor)
    return ListResponse[FundResponse](
        items=[FundResponse.model_validate(fund) for fund in funds],
        total=len(funds),
    )


@router.get("/{fund_id}", response_model=DataResponse[FundSummaryResponse])
async def get_fund_summary(fund_id: int, db: DB, actor: Actor):
    summary = await FundService(db).get_fund_summary(actor, fund_id)
    return DataResponse[FundSummaryResponse](data=FundSummaryResponse(**summary))


@router.post(
    "/{fund_id}/usage",
    response_model=DataResponse[FundUsageResponse],
    status_code=status.HTTP_201_CREATED,
)
async def record_fund_usage(
    fund_id: int,
    data: FundUsageCreate,
    db: DB,
    actor: Actor,
    idempotency_key: IdempotencyKey = None,
):
    async def handler():
        usage = await FundService(db).record_usage(
            actor, fund_id, data.amount, data.usage_type, data.reference_id, data.description,
        )
        return DataResponse[FundUsageResponse](
            message="Fund usage recorded.",
            data=FundUsageResponse.model_validate(usage),
        )

    return await IdempotencyService(db).run(idempotency_key, actor, f"funds.usage:{fund_id}", handler)


@router.get("/{fund_id}/usage", response_model=ListResponse[FundUsageResponse])
async def list_fund_usage(fund_id: int, db: DB, actor: Actor):
    service = FundService(db)
    await service.get_fund_summary(actor, fund_id)
    usage = await service.get_usage(fund_id)
    return ListResponse[FundUsageResponse](
        items=[FundUsageResponse.model_validate(row) for row in usage],
        total=len(usage),
    )


@router.post(
    "/{fund_id}/returns",
    response_model=DataResponse[FundResponse],
    status_code=status.HTTP_201_CREATED,
)
async def return_funds(
    fund_id: int,
    data: CapitalReturnCreate,
    db: DB,
    actor: Actor,
    idempotency_key: IdempotencyKey = None,
):
    """Record capital handed back to the investor of a fund."""
    async def handler():
        returned = await FundService(db).return_funds(actor, fund_id, data.amount, data.notes)
        return DataResponse[FundResponse](
            message="Fund return recorded.",
            data=FundResponse.model_validate(returned),
        )

    return await IdempotencyService(db).run(idempotency_key, actor, f"funds.return:{fund_id}", handler)

"""Distributor revenue returns and their approval."""
from fastapi import APIRouter, status

from app.api.deps import DB, Actor, IdempotencyKey
from app.schemas.base import DataResponse
from app.schemas.fund import FundReturnApprove, FundReturnCreate, FundReturnResponse
from app.services.fund_service import FundService
from app.services.idempotency_service import IdempotencyService

router = APIRouter()


@router.post("", response_model=DataResponse[FundReturnResponse], status_code=status.HTTP_201_CREATED)
async def request_fund_return(
    data: FundReturnCreate,
    db: DB,
    actor: Actor,
    idempotency_key: IdempotencyKey = None,
):
    async def handler():
        fund_return = await FundService(db).request_fund_return(actor, data.sale_id, data.amount, data.notes)
        return DataResponse[FundReturnResponse](
            message="Fund return submitted for approval.",
            data=FundReturnResponse.model_validate(fund_return),
        )

    return await IdempotencyService(db).run(idempotency_key, actor, "fund_returns.create", handler)


@router.post("/{fund_return_id}/approve", response_model=DataResponse[FundReturnResponse])
async def approve_fund_return(
    fund_return_id: int,
    data: FundReturnApprove,
    db: DB,
    actor: Actor,
):
    fund_return = await FundService(db).approve_fund_return(actor, fund_return_id, data.notes)
    return DataResponse[FundReturnResponse](
        message="Fund return approved.",
        data=FundReturnResponse.model_validate(fund_return),
    )

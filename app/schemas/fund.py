"""Fund ledger schemas."""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from app.models.fund import FundUsageType
from app.schemas.base import BaseCreateSchema, BaseResponseSchema


# ==================== FUNDS ====================

class FundAllocate(BaseCreateSchema):
    from_user_id: int
    to_user_id: int
    amount: Decimal = Field(..., gt=0)
    description: Optional[str] = None


class FundResponse(BaseResponseSchema):
    id: int
    type: str
    amount: float
    balance: float
    status: str
    from_user_id: int
    to_user_id: int
    reference_id: Optional[int] = None
    description: Optional[str] = None
    created_at: datetime


class FundSummaryResponse(BaseModel):
    fund_id: int
    type: str
    amount: float
    balance: float
    total_used: float
    status: str


# ==================== USAGE ====================

class FundUsageCreate(BaseCreateSchema):
    amount: Decimal = Field(..., gt=0)
    usage_type: FundUsageType
    reference_id: int = Field(..., ge=1)
    description: Optional[str] = None


class FundUsageResponse(BaseResponseSchema):
    id: int
    fund_id: int
    amount: float
    type: str
    reference_id: int
    description: Optional[str] = None
    used_by: Optional[int] = None
    created_at: datetime


# ==================== RETURNS ====================

class CapitalReturnCreate(BaseCreateSchema):
    """Capital handed back against an investment fund."""
    amount: Decimal = Field(..., gt=0)
    notes: Optional[str] = None


class FundReturnCreate(BaseCreateSchema):
    """Sale revenue handed back by a distributor."""
    sale_id: int
    amount: Decimal = Field(..., gt=0)
    notes: Optional[str] = None


class FundReturnApprove(BaseCreateSchema):
    notes: Optional[str] = None


class FundReturnResponse(BaseResponseSchema):
    id: int
    sale_id: int
    amount: float
    status: str
    notes: Optional[str] = None
    requested_by: Optional[int] = None
    approved_by: Optional[int] = None
    approved_at: Optional[datetime] = None
    created_at: datetime

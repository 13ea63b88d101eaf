"""Raw material purchase schemas."""
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import Field

from app.schemas.base import BaseCreateSchema, BaseResponseSchema


class PurchaseCreate(BaseCreateSchema):
    """Used for both create and edit; an edit replaces every field."""
    material_id: int
    quantity: Decimal = Field(..., gt=0)
    unit_price: Decimal = Field(..., gt=0)
    total_amount: Decimal = Field(..., gt=0)
    purchase_date: date
    fund_id: Optional[int] = None
    supplier: Optional[str] = Field(None, max_length=200)
    notes: Optional[str] = None


class PurchaseResponse(BaseResponseSchema):
    id: int
    material_id: int
    fund_id: Optional[int] = None
    quantity: float
    unit_price: float
    total_amount: float
    supplier: Optional[str] = None
    purchase_date: date
    notes: Optional[str] = None
    created_by: Optional[int] = None
    created_at: datetime

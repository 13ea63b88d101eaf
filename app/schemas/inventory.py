"""Finished goods and inventory transfer schemas."""
from datetime import datetime
from typing import Optional

from pydantic import Field

from app.models.inventory import Location
from app.schemas.base import BaseCreateSchema, BaseResponseSchema


class FinishedGoodsResponse(BaseResponseSchema):
    id: int
    product_id: int
    location: str
    shopkeeper_id: Optional[int] = None
    quantity: int
    updated_at: datetime


class TransferCreate(BaseCreateSchema):
    """Inventory transfer request. Wholesale transfers need a receiving distributor."""
    product_id: int
    quantity: int = Field(..., ge=1)
    from_location: Location
    to_location: Location
    shopkeeper_id: Optional[int] = None
    notes: Optional[str] = None


class TransferResponse(BaseResponseSchema):
    id: int
    product_id: int
    quantity: int
    from_location: str
    to_location: str
    shopkeeper_id: Optional[int] = None
    batch_id: Optional[int] = None
    status: str
    notes: Optional[str] = None
    initiated_by: Optional[int] = None
    confirmed_by: Optional[int] = None
    transfer_date: datetime
    confirmation_date: Optional[datetime] = None

"""Product and raw material schemas."""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import Field

from app.schemas.base import BaseCreateSchema, BaseResponseSchema


# ==================== PRODUCTS ====================

class ProductCreate(BaseCreateSchema):
    name: str = Field(..., min_length=1, max_length=200)
    sku: str = Field(..., min_length=1, max_length=50)
    unit_price: Decimal = Field(Decimal("0"), ge=0)
    description: Optional[str] = None


class ProductResponse(BaseResponseSchema):
    id: int
    name: str
    sku: str
    description: Optional[str] = None
    unit_price: float
    created_at: datetime


# ==================== RAW MATERIALS ====================

class MaterialCreate(BaseCreateSchema):
    name: str = Field(..., min_length=1, max_length=200)
    unit: str = Field(..., min_length=1, max_length=20)
    min_stock_level: Decimal = Field(Decimal("0"), ge=0)


class MaterialResponse(BaseResponseSchema):
    id: int
    name: str
    unit: str
    stock_quantity: float
    min_stock_level: float
    is_low_stock: bool
    updated_at: datetime

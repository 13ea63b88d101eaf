"""Sale, payment and reminder schemas."""
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List

from pydantic import BaseModel, Field

from app.models.sales import PaymentMethod
from app.schemas.base import BaseCreateSchema, BaseResponseSchema


# ==================== SALES ====================

class SaleItemCreate(BaseModel):
    product_id: int
    quantity: int = Field(..., ge=1)
    unit_price: Decimal = Field(..., gt=0)


class SaleCreate(BaseCreateSchema):
    """Used for both create and edit; an edit replaces every item."""
    customer_id: int
    sale_date: date
    items: List[SaleItemCreate] = Field(..., min_length=1)
    discount_amount: Decimal = Field(Decimal("0"), ge=0)
    tax_amount: Decimal = Field(Decimal("0"), ge=0)
    shipping_cost: Decimal = Field(Decimal("0"), ge=0)
    payment_due_date: Optional[date] = None
    notes: Optional[str] = None


class SaleItemResponse(BaseResponseSchema):
    id: int
    product_id: int
    quantity: int
    unit_price: float
    total_price: float


class SaleResponse(BaseResponseSchema):
    id: int
    invoice_number: str
    customer_id: int
    sale_date: date
    total_amount: float
    discount_amount: float
    tax_amount: float
    shipping_cost: float
    net_amount: float
    payment_status: str
    payment_due_date: Optional[date] = None
    notes: Optional[str] = None
    created_by: Optional[int] = None
    created_at: datetime


class SaleDetailResponse(SaleResponse):
    items: List[SaleItemResponse] = Field(default_factory=list)
    amount_paid: float = 0


# ==================== PAYMENTS ====================

class PaymentCreate(BaseCreateSchema):
    amount: Decimal = Field(..., gt=0)
    payment_method: PaymentMethod
    payment_date: Optional[date] = None
    reference_number: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None


class PaymentResponse(BaseResponseSchema):
    id: int
    sale_id: int
    amount: float
    payment_method: str
    reference_number: Optional[str] = None
    payment_date: date
    notes: Optional[str] = None
    recorded_by: Optional[int] = None


class PaymentRecorded(BaseModel):
    payment: PaymentResponse
    payment_status: str
    remaining_amount: float


class PaymentVoided(BaseModel):
    sale_id: int
    payment_status: str


# ==================== REMINDERS ====================

class PaymentReminder(BaseModel):
    sale_id: int
    invoice_number: str
    customer_name: str
    net_amount: float
    amount_paid: float
    amount_due: float
    payment_due_date: Optional[date] = None
    payment_status: str


class ReminderContacted(BaseCreateSchema):
    notes: Optional[str] = None

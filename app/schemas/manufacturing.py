"""Manufacturing batch schemas for API requests/responses."""
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List

from pydantic import BaseModel, Field, model_validator

from app.models.manufacturing import BatchStatus, CostType, QualityStatus
from app.schemas.base import BaseCreateSchema, BaseResponseSchema


# ==================== BATCH SCHEMAS ====================

class BatchMaterialLine(BaseModel):
    material_id: int
    quantity: Decimal = Field(..., gt=0)


class BatchCreate(BaseCreateSchema):
    """Batch creation schema. Materials are consumed immediately."""
    product_id: int
    quantity_produced: int = Field(..., ge=1)
    start_date: date
    expected_completion_date: date
    materials: List[BatchMaterialLine] = Field(default_factory=list)
    notes: Optional[str] = None

    @model_validator(mode="after")
    def check_dates(self):
        if self.expected_completion_date < self.start_date:
            raise ValueError("expected_completion_date cannot be before start_date")
        return self


class MaterialUsageResponse(BaseResponseSchema):
    id: int
    material_id: int
    quantity_used: float


class BatchResponse(BaseResponseSchema):
    id: int
    batch_number: str
    product_id: int
    quantity_produced: int
    status: str
    start_date: date
    expected_completion_date: date
    completion_date: Optional[date] = None
    notes: Optional[str] = None
    status_change_notes: Optional[str] = None
    status_changed_by: Optional[int] = None
    status_changed_at: Optional[datetime] = None
    created_by: Optional[int] = None
    created_at: datetime


class BatchDetailResponse(BatchResponse):
    materials: List[MaterialUsageResponse] = Field(default_factory=list)


class BatchStatusUpdate(BaseCreateSchema):
    status: BatchStatus
    notes: Optional[str] = None


class BatchStatusResult(BaseModel):
    batch: BatchResponse
    transfer_id: Optional[int] = None


# ==================== COSTS & QC ====================

class CostCreate(BaseCreateSchema):
    cost_type: CostType
    amount: Decimal = Field(..., gt=0)
    description: Optional[str] = None
    cost_date: Optional[date] = None


class CostResponse(BaseResponseSchema):
    id: int
    batch_id: int
    cost_type: str
    amount: float
    description: Optional[str] = None
    cost_date: date
    recorded_by: Optional[int] = None


class QualityCheckCreate(BaseCreateSchema):
    status: QualityStatus
    defects_found: int = Field(0, ge=0)
    notes: Optional[str] = None
    check_date: Optional[date] = None


class QualityCheckResponse(BaseResponseSchema):
    id: int
    batch_id: int
    status: str
    defects_found: int
    notes: Optional[str] = None
    check_date: date
    checked_by: Optional[int] = None


# ==================== ADJUSTMENTS & COSTING ====================

class AdjustmentCreate(BaseCreateSchema):
    product_id: int
    original_quantity: int = Field(..., ge=0)
    adjusted_quantity: int = Field(..., ge=0)
    reason: str = Field(..., min_length=1)


class AdjustmentResponse(BaseResponseSchema):
    id: int
    batch_id: int
    product_id: int
    original_quantity: int
    adjusted_quantity: int
    reason: str
    adjusted_by: Optional[int] = None
    created_at: datetime


class BatchCostingResponse(BaseModel):
    batch_id: int
    batch_number: str
    quantity_produced: int
    total_manufacturing_cost: float
    total_material_cost: float
    total_batch_cost: float
    cost_per_unit: float

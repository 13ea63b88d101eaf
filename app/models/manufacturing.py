"""Manufacturing batch models: batches, material consumption, costs, QC and adjustments."""
from datetime import datetime, date, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import Integer, String, Text, Date, DateTime, Numeric, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class BatchStatus(str, Enum):
    """Production pipeline stages, in order."""
    PENDING = "pending"
    CUTTING = "cutting"
    STITCHING = "stitching"
    IRONING = "ironing"
    PACKAGING = "packaging"
    COMPLETED = "completed"


# Exhaustive: every status maps to the statuses it may move to.
BATCH_TRANSITIONS: dict[BatchStatus, tuple[BatchStatus, ...]] = {
    BatchStatus.PENDING: (BatchStatus.CUTTING,),
    BatchStatus.CUTTING: (BatchStatus.STITCHING,),
    BatchStatus.STITCHING: (BatchStatus.IRONING,),
    BatchStatus.IRONING: (BatchStatus.PACKAGING,),
    BatchStatus.PACKAGING: (BatchStatus.COMPLETED,),
    BatchStatus.COMPLETED: (),
}


class CostType(str, Enum):
    LABOR = "labor"
    MATERIAL = "material"
    PACKAGING = "packaging"
    ZIPPER = "zipper"
    STICKER = "sticker"
    LOGO = "logo"
    TAG = "tag"
    MISC = "misc"
    OVERHEAD = "overhead"
    ELECTRICITY = "electricity"
    MAINTENANCE = "maintenance"
    OTHER = "other"


class QualityStatus(str, Enum):
    PASSED = "passed"
    FAILED = "failed"
    PENDING_REWORK = "pending_rework"


class ManufacturingBatch(Base):
    """One production run of a product."""
    __tablename__ = "manufacturing_batches"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    batch_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id"), nullable=False, index=True)
    quantity_produced: Mapped[int] = mapped_column(Integer, nullable=False)

    status: Mapped[str] = mapped_column(
        String(50), default=BatchStatus.PENDING.value, nullable=False, index=True,
        comment="pending, cutting, stitching, ironing, packaging, completed"
    )

    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    expected_completion_date: Mapped[date] = mapped_column(Date, nullable=False)
    completion_date: Mapped[Optional[date]] = mapped_column(Date)
    notes: Mapped[Optional[str]] = mapped_column(Text)

    # Status history is appended, never rewritten
    status_change_notes: Mapped[Optional[str]] = mapped_column(Text)
    status_changed_by: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"))
    status_changed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    created_by: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<ManufacturingBatch {self.batch_number} ({self.status})>"


class MaterialUsage(Base):
    """Raw material consumed by a batch."""
    __tablename__ = "material_usage"
    __table_args__ = (
        UniqueConstraint("batch_id", "material_id", name="uq_material_usage_batch_material"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    batch_id: Mapped[int] = mapped_column(ForeignKey("manufacturing_batches.id"), nullable=False, index=True)
    material_id: Mapped[int] = mapped_column(ForeignKey("raw_materials.id"), nullable=False, index=True)
    quantity_used: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    created_by: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )


class ManufacturingCost(Base):
    __tablename__ = "manufacturing_costs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    batch_id: Mapped[int] = mapped_column(ForeignKey("manufacturing_batches.id"), nullable=False, index=True)
    cost_type: Mapped[str] = mapped_column(String(50), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    cost_date: Mapped[date] = mapped_column(Date, nullable=False)

    recorded_by: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )


class QualityCheck(Base):
    __tablename__ = "quality_control"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    batch_id: Mapped[int] = mapped_column(ForeignKey("manufacturing_batches.id"), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False, comment="passed, failed, pending_rework")
    defects_found: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    check_date: Mapped[date] = mapped_column(Date, nullable=False)

    checked_by: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )


class ProductAdjustment(Base):
    """Correction to the output quantity of a completed batch."""
    __tablename__ = "product_adjustments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    batch_id: Mapped[int] = mapped_column(ForeignKey("manufacturing_batches.id"), nullable=False, index=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id"), nullable=False, index=True)
    original_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    adjusted_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)

    adjusted_by: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

"""Manufacturing batch lifecycle."""
import logging
import secrets
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional, List

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.actor import ActorContext
from app.core.exceptions import (
    InsufficientStock,
    NotFoundError,
    StateError,
    ValidationError,
)
from app.core.money import round_money, to_decimal, format_money
from app.core.permissions import PermissionChecker
from app.models.audit_log import AuditAction
from app.models.inventory import Location
from app.models.manufacturing import (
    BATCH_TRANSITIONS,
    BatchStatus,
    CostType,
    ManufacturingBatch,
    ManufacturingCost,
    MaterialUsage,
    ProductAdjustment,
    QualityCheck,
    QualityStatus,
)
from app.models.product import Product
from app.models.purchase import Purchase
from app.models.user import UserRole
from app.services.audit_service import AuditService
from app.services.finished_goods_service import FinishedGoodsService
from app.services.stock_service import StockService
from app.services.transfer_service import TransferService


logger = logging.getLogger(__name__)

MODULE = "batches"


def generate_batch_number(on: Optional[date] = None) -> str:
    on = on or datetime.now(timezone.utc).date()
    return f"BATCH-{on:%Y%m%d}-{secrets.token_hex(2).upper()}"


class BatchService:
    """Batch creation, status pipeline, costs, QC and output adjustments."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.stock = StockService(db)
        self.goods = FinishedGoodsService(db)
        self.transfers = TransferService(db)
        self.audit = AuditService(db)

    async def get_batch(self, batch_id: int, lock: bool = False) -> ManufacturingBatch:
        query = select(ManufacturingBatch).where(ManufacturingBatch.id == batch_id)
        if lock:
            query = query.with_for_update().execution_options(populate_existing=True)
        batch = (await self.db.execute(query)).scalar_one_or_none()
        if batch is None:
            raise NotFoundError(f"Manufacturing batch #{batch_id} not found.")
        return batch

    async def get_material_usage(self, batch_id: int) -> List[MaterialUsage]:
        result = await self.db.execute(
            select(MaterialUsage).where(MaterialUsage.batch_id == batch_id).order_by(MaterialUsage.material_id)
        )
        return list(result.scalars().all())

    async def list_batches(
        self,
        status: Optional[BatchStatus] = None,
        product_id: Optional[int] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> tuple[List[ManufacturingBatch], int]:
        query = select(ManufacturingBatch)
        if status:
            query = query.where(ManufacturingBatch.status == status.value)
        if product_id:
            query = query.where(ManufacturingBatch.product_id == product_id)

        total = await self.db.scalar(select(func.count()).select_from(query.subquery()))
        result = await self.db.execute(
            query.order_by(ManufacturingBatch.created_at.desc(), ManufacturingBatch.id.desc()).offset(skip).limit(limit)
        )
        return list(result.scalars().all()), total or 0

    # ==================== CREATE ====================

    async def create_batch(
        self,
        actor: ActorContext,
        product_id: int,
        quantity_produced: int,
        start_date: date,
        expected_completion_date: date,
        materials: List[dict],
        notes: Optional[str] = None,
    ) -> ManufacturingBatch:
        """
        Start a batch and consume its raw materials.

        Args:
            materials: [{"material_id": int, "quantity": Decimal}, ...]
        """
        PermissionChecker(actor).require_role(UserRole.PRODUCTION_MANAGER, action="create batches")

        if quantity_produced <= 0:
            raise ValidationError("Quantity to produce must be greater than zero.")
        if expected_completion_date < start_date:
            raise ValidationError("Expected completion date cannot be before the start date.")

        # Merge duplicate lines; validate before any lock is taken
        consumption: dict[int, Decimal] = {}
        for line in materials:
            material_id = line.get("material_id")
            quantity = to_decimal(line.get("quantity") or 0)
            if not material_id or quantity <= 0:
                raise ValidationError("Each material line needs a material and a quantity greater than zero.")
            consumption[material_id] = consumption.get(material_id, Decimal("0")) + quantity

        product = await self.db.get(Product, product_id)
        if product is None:
            raise NotFoundError(f"Product #{product_id} not found.")

        batch = ManufacturingBatch(
            batch_number=generate_batch_number(),
            product_id=product_id,
            quantity_produced=quantity_produced,
            status=BatchStatus.PENDING.value,
            start_date=start_date,
            expected_completion_date=expected_completion_date,
            notes=notes,
            created_by=actor.user_id,
        )
        self.db.add(batch)
        await self.db.flush()

        # Lock in ascending id order
        for material_id in sorted(consumption):
            material = await self.stock.get_material(material_id, lock=True)
            await self.stock.debit(material, consumption[material_id], reason=f"batch {batch.batch_number}")
            self.db.add(MaterialUsage(
                batch_id=batch.id,
                material_id=material_id,
                quantity_used=consumption[material_id],
                created_by=actor.user_id,
            ))
        await self.db.flush()

        await self.audit.log(
            AuditAction.CREATE, MODULE,
            f"Created batch {batch.batch_number} for {quantity_produced} units of {product.name}.",
            entity_id=batch.id, actor=actor,
        )
        if not consumption:
            await self.audit.log(
                AuditAction.WARNING, MODULE,
                f"Batch {batch.batch_number} was created without any raw materials.",
                entity_id=batch.id, actor=actor,
            )
        logger.info(f"Batch {batch.batch_number} created with {len(consumption)} material lines")
        return batch

    # ==================== COSTS & QC ====================

    async def record_cost(
        self,
        actor: ActorContext,
        batch_id: int,
        cost_type: CostType,
        amount: Decimal,
        description: Optional[str] = None,
        cost_date: Optional[date] = None,
    ) -> ManufacturingCost:
        PermissionChecker(actor).require_role(
            UserRole.PRODUCTION_MANAGER, UserRole.OWNER, action="record manufacturing costs"
        )
        amount = round_money(amount)
        if amount <= 0:
            raise ValidationError("Amount must be greater than zero.")

        batch = await self.get_batch(batch_id, lock=True)
        if batch.status == BatchStatus.COMPLETED.value:
            raise StateError("Cannot add costs to a completed batch.")

        cost = ManufacturingCost(
            batch_id=batch.id,
            cost_type=cost_type.value,
            amount=amount,
            description=description,
            cost_date=cost_date or datetime.now(timezone.utc).date(),
            recorded_by=actor.user_id,
        )
        self.db.add(cost)
        await self.db.flush()

        await self.audit.log(
            AuditAction.CREATE, MODULE,
            f"Added {cost_type.value} cost of {format_money(amount)} to batch {batch.batch_number}.",
            entity_id=batch.id, actor=actor,
        )
        return cost

    async def record_quality_check(
        self,
        actor: ActorContext,
        batch_id: int,
        status: QualityStatus,
        defects_found: int = 0,
        notes: Optional[str] = None,
        check_date: Optional[date] = None,
    ) -> QualityCheck:
        PermissionChecker(actor).require_role(
            UserRole.PRODUCTION_MANAGER, UserRole.OWNER, action="record quality checks"
        )
        if defects_found < 0:
            raise ValidationError("Defects found cannot be negative.")

        batch = await self.get_batch(batch_id)
        check = QualityCheck(
            batch_id=batch.id,
            status=status.value,
            defects_found=defects_found,
            notes=notes,
            check_date=check_date or datetime.now(timezone.utc).date(),
            checked_by=actor.user_id,
        )
        self.db.add(check)
        await self.db.flush()

        await self.audit.log(
            AuditAction.CREATE, MODULE,
            f"Quality check on batch {batch.batch_number}: {status.value}, {defects_found} defects.",
            entity_id=batch.id, actor=actor,
        )
        return check

    # ==================== STATUS PIPELINE ====================

    @staticmethod
    def can_transition(current: BatchStatus, new: BatchStatus) -> bool:
        return new in BATCH_TRANSITIONS[current]

    async def advance_status(
        self,
        actor: ActorContext,
        batch_id: int,
        new_status: BatchStatus,
        notes: Optional[str] = None,
    ) -> tuple[ManufacturingBatch, Optional[int]]:
        """
        Move a batch along the pipeline.

        Owners may jump to any status. Moving into COMPLETED hands the output
        to a pending manufacturing->wholesale transfer; an owner moving the
        batch back out of COMPLETED withdraws that transfer again.

        Returns:
            (batch, transfer_id) where transfer_id is set only on completion
        """
        PermissionChecker(actor).require_role(
            UserRole.PRODUCTION_MANAGER, UserRole.OWNER, action="update batch status"
        )

        batch = await self.get_batch(batch_id, lock=True)
        current = BatchStatus(batch.status)

        if current == new_status:
            return batch, None

        if not actor.is_owner and not self.can_transition(current, new_status):
            allowed = ", ".join(s.value for s in BATCH_TRANSITIONS[current]) or "none"
            raise StateError(
                f"Invalid status transition from {current.value} to {new_status.value}. "
                f"Allowed: {allowed}."
            )

        transfer_id = None
        withdrawn = None
        if current == BatchStatus.COMPLETED:
            withdrawn = await self.transfers.withdraw_completion_transfer(batch.id)
            batch.completion_date = None

        if new_status == BatchStatus.COMPLETED:
            if batch.quantity_produced <= 0:
                raise ValidationError("Cannot complete a batch with no quantity produced.")
            if await self.transfers.has_batch_transfer(batch.id):
                raise StateError(f"Batch {batch.batch_number} already has a completion transfer.")
            product = await self.db.get(Product, batch.product_id)
            transfer = await self.transfers.create_completion_transfer(
                actor, product, batch.quantity_produced, batch.id, batch.batch_number,
            )
            transfer_id = transfer.id
            batch.completion_date = datetime.now(timezone.utc).date()

        entry = f"[Status change by {actor.display_name}] From {current.value} to {new_status.value}."
        if notes:
            entry += f" Notes: {notes}"
        batch.status_change_notes = (
            f"{batch.status_change_notes}\n{entry}" if batch.status_change_notes else entry
        )
        batch.status = new_status.value
        batch.status_changed_by = actor.user_id
        batch.status_changed_at = datetime.now(timezone.utc)
        await self.db.flush()

        description = f"Batch {batch.batch_number} moved from {current.value} to {new_status.value}."
        if withdrawn is not None:
            description += f" Pending transfer #{withdrawn.id} of {withdrawn.quantity} units withdrawn."
        if transfer_id:
            description += f" Pending transfer #{transfer_id} created for {batch.quantity_produced} units."
        await self.audit.log(AuditAction.UPDATE, MODULE, description, entity_id=batch.id, actor=actor)
        return batch, transfer_id

    # ==================== OUTPUT ADJUSTMENT ====================

    async def adjust_final_quantity(
        self,
        actor: ActorContext,
        batch_id: int,
        product_id: int,
        original_quantity: int,
        adjusted_quantity: int,
        reason: str,
    ) -> Optional[ProductAdjustment]:
        """
        Correct the output of a completed batch.

        The difference follows the goods: into the still-pending completion
        transfer, or onto the entry currently holding the product.
        Returns None when nothing changes.
        """
        PermissionChecker(actor).require_role(
            UserRole.PRODUCTION_MANAGER, UserRole.OWNER, action="adjust batch output"
        )
        if not reason or not reason.strip():
            raise ValidationError("A reason is required for quantity adjustments.")
        if adjusted_quantity < 0:
            raise ValidationError("Adjusted quantity cannot be negative.")
        if adjusted_quantity == original_quantity:
            return None

        batch = await self.get_batch(batch_id, lock=True)
        if batch.status != BatchStatus.COMPLETED.value:
            raise StateError("Only completed batches can have their output adjusted.")
        if batch.product_id != product_id:
            raise ValidationError("Product does not belong to this batch.")
        if batch.quantity_produced != original_quantity:
            raise StateError(
                f"Original quantity mismatch: batch shows {batch.quantity_produced}, "
                f"request says {original_quantity}. Reload and try again."
            )

        delta = adjusted_quantity - original_quantity
        pending = await self.transfers.get_pending_batch_transfer(batch.id)
        if pending is not None:
            if pending.quantity + delta <= 0:
                raise InsufficientStock(
                    f"Pending transfer #{pending.id} holds {pending.quantity} units; cannot reduce it by {-delta}."
                )
            pending.quantity = pending.quantity + delta
            where = f"pending transfer #{pending.id}"
        else:
            entry = await self.goods.get_entry(product_id, Location.WHOLESALE, lock=True)
            if entry is None or entry.quantity == 0:
                transit = await self.goods.get_entry(product_id, Location.TRANSIT, lock=True)
                if transit is not None and transit.quantity > 0:
                    entry = transit
            if entry is None:
                entry = await self.goods.get_or_create(product_id, Location.WHOLESALE)
            if entry.quantity + delta < 0:
                raise InsufficientStock(
                    f"Adjustment would make {entry.location} stock negative "
                    f"(current {entry.quantity}, change {delta})."
                )
            entry.quantity = entry.quantity + delta
            where = entry.location

        batch.quantity_produced = adjusted_quantity
        adjustment = ProductAdjustment(
            batch_id=batch.id,
            product_id=product_id,
            original_quantity=original_quantity,
            adjusted_quantity=adjusted_quantity,
            reason=reason.strip(),
            adjusted_by=actor.user_id,
        )
        self.db.add(adjustment)
        await self.db.flush()

        await self.audit.log(
            AuditAction.UPDATE, MODULE,
            f"Adjusted output of batch {batch.batch_number} from {original_quantity} to "
            f"{adjusted_quantity} ({where}). Reason: {reason.strip()}",
            entity_id=batch.id, actor=actor,
        )
        return adjustment

    # ==================== COSTING ====================

    async def average_recent_unit_price(self, material_id: int) -> Decimal:
        """
        Average unit price over the most recent purchases of a material.

        This is the business's costing heuristic, not FIFO or LIFO.
        """
        recent = (
            select(Purchase.unit_price)
            .where(Purchase.material_id == material_id)
            .order_by(Purchase.purchase_date.desc(), Purchase.id.desc())
            .limit(settings.COSTING_PURCHASE_WINDOW)
            .subquery()
        )
        average = await self.db.scalar(select(func.avg(recent.c.unit_price)))
        return to_decimal(average or 0)

    async def get_batch_costing(self, actor: ActorContext, batch_id: int) -> dict:
        PermissionChecker(actor).require_role(
            UserRole.PRODUCTION_MANAGER, UserRole.OWNER, action="view batch costing"
        )
        batch = await self.get_batch(batch_id)

        manufacturing_cost = to_decimal(await self.db.scalar(
            select(func.coalesce(func.sum(ManufacturingCost.amount), 0))
            .where(ManufacturingCost.batch_id == batch.id)
        ) or 0)

        material_cost = Decimal("0")
        for usage in await self.get_material_usage(batch.id):
            material_cost += usage.quantity_used * await self.average_recent_unit_price(usage.material_id)

        total = manufacturing_cost + material_cost
        per_unit = total / batch.quantity_produced if batch.quantity_produced > 0 else Decimal("0")

        await self.audit.log(
            AuditAction.READ, MODULE,
            f"Viewed costing for batch {batch.batch_number}.",
            entity_id=batch.id, actor=actor,
        )
        return {
            "batch_id": batch.id,
            "batch_number": batch.batch_number,
            "quantity_produced": batch.quantity_produced,
            "total_manufacturing_cost": round_money(manufacturing_cost),
            "total_material_cost": round_money(material_cost),
            "total_batch_cost": round_money(total),
            "cost_per_unit": round_money(per_unit),
        }

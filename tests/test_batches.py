"""Manufacturing batches: material consumption, status pipeline, completion, adjustments and costing."""
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from app.core.exceptions import (
    InsufficientStock,
    PermissionDeniedError,
    StateError,
    ValidationError,
)
from app.models.audit_log import AuditAction, AuditLog
from app.models.inventory import InventoryTransfer, Location, TransferStatus
from app.models.manufacturing import BatchStatus, CostType, ManufacturingBatch
from app.models.notifications import Notification
from app.services.batch_service import BatchService
from app.services.finished_goods_service import FinishedGoodsService
from app.services.purchase_service import PurchaseService
from app.services.transfer_service import TransferService
from tests.conftest import TODAY


async def start_batch(db, actor, product, material, quantity=100, material_quantity="50"):
    return await BatchService(db).create_batch(
        actor,
        product_id=product.id,
        quantity_produced=quantity,
        start_date=TODAY,
        expected_completion_date=TODAY + timedelta(days=10),
        materials=[{"material_id": material.id, "quantity": Decimal(material_quantity)}],
    )


async def wholesale_quantity(db, product_id) -> int:
    entry = await FinishedGoodsService(db).get_entry(product_id, Location.WHOLESALE, lock=True)
    return entry.quantity if entry else 0


class TestCreateBatch:

    async def test_consumes_raw_materials(self, db, manager, product, fabric):
        batch = await start_batch(db, manager, product, fabric)

        assert batch.status == BatchStatus.PENDING.value
        assert batch.batch_number.startswith("BATCH-")
        await db.refresh(fabric)
        assert fabric.stock_quantity == Decimal("150")

        usage = await BatchService(db).get_material_usage(batch.id)
        assert [(u.material_id, u.quantity_used) for u in usage] == [(fabric.id, Decimal("50"))]

    async def test_duplicate_material_lines_are_merged(self, db, manager, product, fabric):
        batch = await BatchService(db).create_batch(
            manager, product.id, 40, TODAY, TODAY,
            materials=[
                {"material_id": fabric.id, "quantity": Decimal("10")},
                {"material_id": fabric.id, "quantity": Decimal("15")},
            ],
        )

        usage = await BatchService(db).get_material_usage(batch.id)
        assert len(usage) == 1
        assert usage[0].quantity_used == Decimal("25")

    async def test_insufficient_material_leaves_everything_untouched(self, db, manager, product, fabric, buttons):
        with pytest.raises(InsufficientStock):
            await BatchService(db).create_batch(
                manager, product.id, 100, TODAY, TODAY,
                materials=[
                    {"material_id": fabric.id, "quantity": Decimal("50")},
                    {"material_id": buttons.id, "quantity": Decimal("600")},
                ],
            )
        await db.rollback()

        await db.refresh(fabric)
        await db.refresh(buttons)
        assert fabric.stock_quantity == Decimal("200")
        assert buttons.stock_quantity == Decimal("500")
        assert await db.scalar(select(func.count(ManufacturingBatch.id))) == 0

    async def test_only_production_manager_may_create(self, db, owner, product, fabric):
        with pytest.raises(PermissionDeniedError):
            await start_batch(db, owner, product, fabric)

    async def test_rejects_completion_before_start(self, db, manager, product, fabric):
        with pytest.raises(ValidationError):
            await BatchService(db).create_batch(
                manager, product.id, 10, TODAY, TODAY - timedelta(days=1),
                materials=[{"material_id": fabric.id, "quantity": Decimal("5")}],
            )

    async def test_batch_without_materials_is_flagged(self, db, manager, product):
        batch = await BatchService(db).create_batch(manager, product.id, 10, TODAY, TODAY, materials=[])

        warnings = (await db.execute(
            select(AuditLog).where(AuditLog.action == AuditAction.WARNING.value, AuditLog.entity_id == batch.id)
        )).scalars().all()
        assert len(warnings) == 1


class TestStatusPipeline:

    async def test_manager_moves_one_step_at_a_time(self, db, manager, product, fabric):
        batch = await start_batch(db, manager, product, fabric)
        service = BatchService(db)

        batch, transfer_id = await service.advance_status(manager, batch.id, BatchStatus.CUTTING, notes="Cutting started")
        assert batch.status == BatchStatus.CUTTING.value
        assert transfer_id is None
        assert "Cutting started" in batch.status_change_notes

        with pytest.raises(StateError):
            await service.advance_status(manager, batch.id, BatchStatus.PACKAGING)

    async def test_owner_may_jump_to_any_status(self, db, manager, owner, product, fabric):
        batch = await start_batch(db, manager, product, fabric)

        batch, _ = await BatchService(db).advance_status(owner, batch.id, BatchStatus.IRONING)

        assert batch.status == BatchStatus.IRONING.value

    async def test_same_status_is_a_no_op(self, db, manager, product, fabric):
        batch = await start_batch(db, manager, product, fabric)

        same, transfer_id = await BatchService(db).advance_status(manager, batch.id, BatchStatus.PENDING)

        assert same.status == BatchStatus.PENDING.value
        assert transfer_id is None
        assert same.status_change_notes is None


class TestCompletion:

    async def test_output_waits_in_transit_until_confirmed(self, db, manager, owner, distributor, users, product, fabric):
        batch = await start_batch(db, manager, product, fabric)

        batch, transfer_id = await BatchService(db).advance_status(owner, batch.id, BatchStatus.COMPLETED)

        assert batch.completion_date is not None
        transfer = await db.get(InventoryTransfer, transfer_id)
        assert transfer.status == TransferStatus.PENDING.value
        assert transfer.quantity == 100
        assert transfer.from_location == Location.MANUFACTURING.value
        assert transfer.to_location == Location.WHOLESALE.value
        assert transfer.shopkeeper_id == users.distributor.id
        assert transfer.batch_id == batch.id
        assert await wholesale_quantity(db, product.id) == 0

        notice = (await db.execute(
            select(Notification).where(Notification.user_id == users.distributor.id)
        )).scalar_one()
        assert notice.related_id == transfer_id

        await TransferService(db).confirm_transfer(distributor, transfer_id)
        assert await wholesale_quantity(db, product.id) == 100
        manufacturing = await FinishedGoodsService(db).get_entry(product.id, Location.MANUFACTURING)
        assert manufacturing.quantity == 0

    async def test_without_active_distributor_owner_confirms(self, db, manager, owner, distributor, users, product, fabric):
        for user in (users.distributor, users.other_distributor):
            user.is_active = False
        await db.flush()
        batch = await start_batch(db, manager, product, fabric)

        _, transfer_id = await BatchService(db).advance_status(owner, batch.id, BatchStatus.COMPLETED)

        transfer = await db.get(InventoryTransfer, transfer_id)
        assert transfer.shopkeeper_id is None
        with pytest.raises(PermissionDeniedError):
            await TransferService(db).confirm_transfer(distributor, transfer_id)
        await TransferService(db).confirm_transfer(owner, transfer_id)
        assert await wholesale_quantity(db, product.id) == 100

    async def test_reopening_withdraws_pending_output(self, db, manager, owner, product, fabric):
        batch = await start_batch(db, manager, product, fabric)
        service = BatchService(db)
        await service.advance_status(owner, batch.id, BatchStatus.COMPLETED)

        reopened, _ = await service.advance_status(owner, batch.id, BatchStatus.PACKAGING)

        assert reopened.completion_date is None
        assert await db.scalar(select(func.count(InventoryTransfer.id))) == 0
        assert await FinishedGoodsService(db).get_total_quantity(product.id) == 0

        _, transfer_id = await service.advance_status(owner, batch.id, BatchStatus.COMPLETED)

        transfers = (await db.execute(select(InventoryTransfer))).scalars().all()
        assert [(t.id, t.quantity, t.status) for t in transfers] == [(transfer_id, 100, TransferStatus.PENDING.value)]
        pending = await TransferService(db).get_pending_batch_transfer(batch.id)
        assert pending.id == transfer_id

    async def test_received_output_blocks_reopening(self, db, manager, owner, distributor, product, fabric):
        batch = await start_batch(db, manager, product, fabric)
        service = BatchService(db)
        _, transfer_id = await service.advance_status(owner, batch.id, BatchStatus.COMPLETED)
        await TransferService(db).confirm_transfer(distributor, transfer_id)

        with pytest.raises(StateError, match="already been received"):
            await service.advance_status(owner, batch.id, BatchStatus.PACKAGING)

        assert await wholesale_quantity(db, product.id) == 100

    async def test_no_costs_after_completion(self, db, manager, owner, product, fabric):
        batch = await start_batch(db, manager, product, fabric)
        await BatchService(db).advance_status(owner, batch.id, BatchStatus.COMPLETED)

        with pytest.raises(StateError):
            await BatchService(db).record_cost(manager, batch.id, CostType.LABOR, Decimal("500"))


class TestAdjustFinalQuantity:

    async def completed_batch(self, db, manager, owner, product, fabric):
        batch = await start_batch(db, manager, product, fabric)
        _, transfer_id = await BatchService(db).advance_status(owner, batch.id, BatchStatus.COMPLETED)
        return batch, transfer_id

    async def test_adjusts_pending_transfer(self, db, manager, owner, distributor, product, fabric):
        batch, transfer_id = await self.completed_batch(db, manager, owner, product, fabric)

        adjustment = await BatchService(db).adjust_final_quantity(
            manager, batch.id, product.id, 100, 90, reason="10 pieces failed QC",
        )

        assert adjustment.adjusted_quantity == 90
        transfer = await db.get(InventoryTransfer, transfer_id)
        assert transfer.quantity == 90
        await TransferService(db).confirm_transfer(distributor, transfer_id)
        assert await wholesale_quantity(db, product.id) == 90

    async def test_adjusts_wholesale_after_confirmation(self, db, manager, owner, distributor, product, fabric):
        batch, transfer_id = await self.completed_batch(db, manager, owner, product, fabric)
        await TransferService(db).confirm_transfer(distributor, transfer_id)

        await BatchService(db).adjust_final_quantity(manager, batch.id, product.id, 100, 104, reason="Recount")

        assert await wholesale_quantity(db, product.id) == 104
        refreshed = await BatchService(db).get_batch(batch.id, lock=True)
        assert refreshed.quantity_produced == 104

    async def test_stale_original_quantity_is_rejected(self, db, manager, owner, product, fabric):
        batch, _ = await self.completed_batch(db, manager, owner, product, fabric)

        with pytest.raises(StateError):
            await BatchService(db).adjust_final_quantity(manager, batch.id, product.id, 95, 90, reason="Recount")

    async def test_requires_reason(self, db, manager, owner, product, fabric):
        batch, _ = await self.completed_batch(db, manager, owner, product, fabric)

        with pytest.raises(ValidationError):
            await BatchService(db).adjust_final_quantity(manager, batch.id, product.id, 100, 90, reason="  ")

    async def test_unchanged_quantity_writes_nothing(self, db, manager, owner, product, fabric):
        batch, _ = await self.completed_batch(db, manager, owner, product, fabric)

        assert await BatchService(db).adjust_final_quantity(manager, batch.id, product.id, 100, 100, reason="x") is None


class TestCosting:

    async def test_material_cost_uses_recent_purchase_prices(self, db, manager, product, fabric):
        purchases = PurchaseService(db)
        await purchases.save_purchase(manager, fabric.id, Decimal("10"), Decimal("100"), Decimal("1000"), TODAY)
        await purchases.save_purchase(manager, fabric.id, Decimal("10"), Decimal("120"), Decimal("1200"), TODAY)
        batch = await start_batch(db, manager, product, fabric)
        await BatchService(db).record_cost(manager, batch.id, CostType.LABOR, Decimal("2000"))

        costing = await BatchService(db).get_batch_costing(manager, batch.id)

        assert costing["total_material_cost"] == Decimal("5500.00")
        assert costing["total_manufacturing_cost"] == Decimal("2000.00")
        assert costing["total_batch_cost"] == Decimal("7500.00")
        assert costing["cost_per_unit"] == Decimal("75.00")

    async def test_material_without_purchases_costs_nothing(self, db, manager, product, fabric):
        batch = await start_batch(db, manager, product, fabric)

        costing = await BatchService(db).get_batch_costing(manager, batch.id)

        assert costing["total_material_cost"] == Decimal("0.00")

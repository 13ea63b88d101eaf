"""Compensating deletes and reference checks on master data."""
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from app.core.exceptions import InsufficientStock, PermissionDeniedError, StateError
from app.models.audit_log import AuditAction, AuditLog
from app.models.inventory import InventoryTransfer, Location
from app.models.manufacturing import BatchStatus, CostType, ManufacturingBatch, ManufacturingCost
from app.models.product import Product, RawMaterial
from app.models.user import User, UserRole
from app.services.batch_service import BatchService
from app.services.deletion_service import DeletionService
from app.services.finished_goods_service import FinishedGoodsService
from app.services.sale_service import SaleService
from app.services.transfer_service import TransferService
from tests.conftest import TODAY, create_user


async def make_batch(db, manager, product, fabric):
    return await BatchService(db).create_batch(
        manager, product.id, 100, TODAY, TODAY + timedelta(days=7),
        materials=[{"material_id": fabric.id, "quantity": Decimal("50")}],
    )


async def wholesale_quantity(db, product_id) -> int:
    entry = await FinishedGoodsService(db).get_entry(product_id, Location.WHOLESALE, lock=True)
    return entry.quantity if entry else 0


class TestDeleteBatch:

    async def test_in_progress_batch_returns_materials(self, db, owner, manager, product, fabric):
        batch = await make_batch(db, manager, product, fabric)
        await BatchService(db).record_cost(manager, batch.id, CostType.LABOR, Decimal("800"))

        await DeletionService(db).delete_batch(owner, batch.id, reason="Order cancelled")

        await db.refresh(fabric)
        assert fabric.stock_quantity == Decimal("200")
        assert await db.scalar(select(func.count(ManufacturingBatch.id))) == 0
        assert await db.scalar(select(func.count(ManufacturingCost.id))) == 0
        log = (await db.execute(
            select(AuditLog).where(AuditLog.action == AuditAction.DELETE.value, AuditLog.module == "batches")
        )).scalar_one()
        assert "Order cancelled" in log.description

    async def test_completed_batch_drops_pending_transfer(self, db, owner, manager, product, fabric):
        batch = await make_batch(db, manager, product, fabric)
        await BatchService(db).advance_status(owner, batch.id, BatchStatus.COMPLETED)

        await DeletionService(db).delete_batch(owner, batch.id, reason="Duplicate entry")

        assert await db.scalar(select(func.count(InventoryTransfer.id))) == 0
        assert await wholesale_quantity(db, product.id) == 0
        assert await FinishedGoodsService(db).get_total_quantity(product.id) == 0

    async def test_reopened_then_recompleted_batch_deletes_cleanly(self, db, owner, manager, product, fabric):
        batch = await make_batch(db, manager, product, fabric)
        service = BatchService(db)
        await service.advance_status(owner, batch.id, BatchStatus.COMPLETED)
        await service.advance_status(owner, batch.id, BatchStatus.PACKAGING)
        await service.advance_status(owner, batch.id, BatchStatus.COMPLETED)

        await DeletionService(db).delete_batch(owner, batch.id, reason="Duplicate entry")

        assert await db.scalar(select(func.count(InventoryTransfer.id))) == 0
        assert await FinishedGoodsService(db).get_total_quantity(product.id) == 0

    async def test_reopened_batch_leaves_no_transfer_behind(self, db, owner, manager, product, fabric):
        batch = await make_batch(db, manager, product, fabric)
        service = BatchService(db)
        await service.advance_status(owner, batch.id, BatchStatus.COMPLETED)
        await service.advance_status(owner, batch.id, BatchStatus.PACKAGING)

        await DeletionService(db).delete_batch(owner, batch.id, reason="Order cancelled")

        assert await db.scalar(select(func.count(InventoryTransfer.id))) == 0
        assert await db.scalar(select(func.count(ManufacturingBatch.id))) == 0
        await db.refresh(fabric)
        assert fabric.stock_quantity == Decimal("200")

    async def test_confirmed_output_is_taken_back_from_wholesale(self, db, owner, manager, distributor, product, fabric):
        batch = await make_batch(db, manager, product, fabric)
        _, transfer_id = await BatchService(db).advance_status(owner, batch.id, BatchStatus.COMPLETED)
        await TransferService(db).confirm_transfer(distributor, transfer_id)

        await DeletionService(db).delete_batch(owner, batch.id, reason="Duplicate entry")

        assert await wholesale_quantity(db, product.id) == 0
        transfer = await db.get(InventoryTransfer, transfer_id)
        assert transfer.batch_id is None

    async def test_sold_output_cannot_be_taken_back(self, db, owner, manager, distributor, product, fabric, customer):
        batch = await make_batch(db, manager, product, fabric)
        _, transfer_id = await BatchService(db).advance_status(owner, batch.id, BatchStatus.COMPLETED)
        await TransferService(db).confirm_transfer(distributor, transfer_id)
        await SaleService(db).save_sale(
            distributor, customer.id, TODAY,
            items=[{"product_id": product.id, "quantity": 30, "unit_price": Decimal("1000")}],
        )

        with pytest.raises(InsufficientStock):
            await DeletionService(db).delete_batch(owner, batch.id, reason="Duplicate entry")

    async def test_only_owner_deletes_batches(self, db, manager, product, fabric):
        batch = await make_batch(db, manager, product, fabric)

        with pytest.raises(PermissionDeniedError):
            await DeletionService(db).delete_batch(manager, batch.id, reason="No")


class TestDeleteMasterData:

    async def test_material_with_stock_is_kept(self, db, owner, fabric):
        with pytest.raises(StateError):
            await DeletionService(db).delete_material(owner, fabric.id)

    async def test_unused_material_is_deleted(self, db, owner):
        material = RawMaterial(name="Velcro", unit="roll", stock_quantity=Decimal("0"))
        db.add(material)
        await db.flush()

        await DeletionService(db).delete_material(owner, material.id)

        assert await db.get(RawMaterial, material.id) is None

    async def test_product_with_batches_is_kept(self, db, owner, manager, product, fabric):
        await make_batch(db, manager, product, fabric)

        with pytest.raises(StateError):
            await DeletionService(db).delete_product(owner, product.id)

    async def test_unused_product_is_deleted(self, db, owner, product):
        await DeletionService(db).delete_product(owner, product.id)

        assert await db.get(Product, product.id) is None

    async def test_customer_with_sales_is_kept(self, db, distributor, product, customer):
        await FinishedGoodsService(db).credit(product.id, Location.WHOLESALE, 5)
        await SaleService(db).save_sale(
            distributor, customer.id, TODAY,
            items=[{"product_id": product.id, "quantity": 1, "unit_price": Decimal("100")}],
        )

        with pytest.raises(StateError):
            await DeletionService(db).delete_customer(distributor, customer.id)

    async def test_customer_of_another_distributor_is_protected(self, db, other_distributor, customer):
        with pytest.raises(PermissionDeniedError):
            await DeletionService(db).delete_customer(other_distributor, customer.id)


class TestDeleteUser:

    async def test_unreferenced_user_is_deleted(self, db, owner):
        temp = await create_user(db, "temp_staff", UserRole.DISTRIBUTOR)

        await DeletionService(db).delete_user(owner, temp.id)

        assert await db.get(User, temp.id) is None

    async def test_referenced_user_must_be_deactivated_instead(self, db, owner, users, manager, product, fabric):
        await make_batch(db, manager, product, fabric)

        with pytest.raises(StateError, match="Deactivate the account instead"):
            await DeletionService(db).delete_user(owner, users.manager.id)

    async def test_cannot_delete_self(self, db, owner, users):
        with pytest.raises(StateError):
            await DeletionService(db).delete_user(owner, users.owner.id)

    async def test_last_active_owner_is_kept(self, db, owner, users):
        second = await create_user(db, "second_owner", UserRole.OWNER)
        users.owner.is_active = False
        await db.flush()

        with pytest.raises(StateError, match="last active owner"):
            await DeletionService(db).delete_user(owner, second.id)

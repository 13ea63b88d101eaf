"""
Compensating deletion.

Each delete runs an explicit, ordered cascade: reverse every ledger effect
the record caused, remove its dependent rows, then remove the record. Master
data (materials, products, customers, users) is never reversed; it is only
deleted once nothing in the ledger references it.
"""
import logging
from typing import Any, Optional

from sqlalchemy import select, func, delete, update, or_
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.actor import ActorContext
from app.core.exceptions import NotFoundError, StateError, ValidationError
from app.core.permissions import PermissionChecker
from app.models.audit_log import AuditAction, AuditLog
from app.models.customer import Customer
from app.models.fund import Fund, FundReturn, FundUsage
from app.models.inventory import FinishedGoodsEntry, InventoryTransfer, Location
from app.models.manufacturing import (
    BatchStatus,
    ManufacturingBatch,
    ManufacturingCost,
    MaterialUsage,
    ProductAdjustment,
    QualityCheck,
)
from app.models.notifications import Notification
from app.models.product import Product
from app.models.purchase import Purchase
from app.models.sales import Payment, Sale, SaleItem
from app.models.user import User, UserRole
from app.services.audit_service import AuditService
from app.services.batch_service import BatchService
from app.services.finished_goods_service import FinishedGoodsService
from app.services.purchase_service import PurchaseService
from app.services.sale_service import SaleService
from app.services.stock_service import StockService
from app.services.transfer_service import TransferService


logger = logging.getLogger(__name__)


def _require_reason(reason: Optional[str]) -> str:
    if not reason or not reason.strip():
        raise ValidationError("A reason is required for deletion.")
    return reason.strip()


class DeletionService:

    def __init__(self, db: AsyncSession):
        self.db = db
        self.stock = StockService(db)
        self.goods = FinishedGoodsService(db)
        self.audit = AuditService(db)

    async def _count(self, column: Any, *conditions) -> int:
        return int(await self.db.scalar(select(func.count(column)).where(*conditions)) or 0)

    # ==================== LEDGER RECORDS ====================

    async def delete_batch(self, actor: ActorContext, batch_id: int, reason: str) -> None:
        """
        1. credit every consumed material back
        2. withdraw its output: a pending transfer is dropped, received goods are debited
        3. drop costs, usage, QC and adjustments
        4. drop the batch
        """
        PermissionChecker(actor).require_role(UserRole.OWNER, action="delete batches")
        reason = _require_reason(reason)

        batches = BatchService(self.db)
        batch = await batches.get_batch(batch_id, lock=True)

        usages = await batches.get_material_usage(batch.id)
        for usage in usages:
            material = await self.stock.get_material(usage.material_id, lock=True)
            await self.stock.credit(material, usage.quantity_used, reason=f"delete batch {batch.batch_number}")

        transfers = TransferService(self.db)
        pending = await transfers.get_pending_batch_transfer(batch.id)
        if pending is not None:
            # Output never arrived anywhere; dropping the transfer removes it
            await self.db.delete(pending)
        elif batch.status == BatchStatus.COMPLETED.value and batch.quantity_produced > 0:
            await self.goods.debit_across(
                batch.product_id,
                batch.quantity_produced,
                (Location.MANUFACTURING, Location.WHOLESALE, Location.TRANSIT),
            )
        await self.db.execute(
            update(InventoryTransfer)
            .where(InventoryTransfer.batch_id == batch.id)
            .values(batch_id=None)
        )

        for model in (ManufacturingCost, MaterialUsage, QualityCheck, ProductAdjustment):
            await self.db.execute(delete(model).where(model.batch_id == batch.id))
        await self.db.delete(batch)
        await self.db.flush()

        await self.audit.log(
            AuditAction.DELETE, "batches",
            f"Deleted batch {batch.batch_number} ({batch.status}); returned {len(usages)} materials to stock. "
            f"Reason: {reason}",
            entity_id=batch_id, actor=actor,
        )
        logger.info(f"Batch {batch.batch_number} deleted by user {actor.user_id}")

    async def delete_purchase(self, actor: ActorContext, purchase_id: int, reason: str) -> None:
        """
        1. debit the purchased stock (refused if already consumed)
        2. drop the fund usage, crediting the fund
        3. drop the purchase
        """
        PermissionChecker(actor).require_role(
            UserRole.PRODUCTION_MANAGER, UserRole.OWNER, action="delete purchases"
        )
        reason = _require_reason(reason)

        purchases = PurchaseService(self.db)
        purchase = await purchases.get_purchase(purchase_id, lock=True)
        await purchases.revert_effects(purchase)
        await self.db.delete(purchase)
        await self.db.flush()

        await self.audit.log(
            AuditAction.DELETE, "purchases",
            f"Deleted purchase #{purchase_id} of {purchase.quantity} units"
            + (f", credited {purchase.total_amount} back to fund #{purchase.fund_id}" if purchase.fund_id else "")
            + f". Reason: {reason}",
            entity_id=purchase_id, actor=actor,
        )

    async def delete_sale(self, actor: ActorContext, sale_id: int, reason: str) -> None:
        """
        1. refuse if money has moved against the sale
        2. credit wholesale for every item
        3. drop the items, then the sale
        """
        checker = PermissionChecker(actor)
        checker.require_role(UserRole.OWNER, UserRole.DISTRIBUTOR, action="delete sales")
        reason = _require_reason(reason)

        sales = SaleService(self.db)
        sale = await sales.get_sale(sale_id, lock=True)
        checker.require_owner_or_creator(sale.created_by, action="delete sales")

        if await self._count(Payment.id, Payment.sale_id == sale.id):
            raise StateError("Cannot delete a sale with recorded payments. Void the payments first.")
        if await self._count(FundReturn.id, FundReturn.sale_id == sale.id):
            raise StateError("Cannot delete a sale with fund returns recorded against it.")

        items = await sales.get_items(sale.id)
        for item in items:
            await self.goods.credit(item.product_id, Location.WHOLESALE, item.quantity)

        await self.db.execute(delete(SaleItem).where(SaleItem.sale_id == sale.id))
        await self.db.delete(sale)
        await self.db.flush()

        await self.audit.log(
            AuditAction.DELETE, "sales",
            f"Deleted sale {sale.invoice_number}; returned {len(items)} items to wholesale. Reason: {reason}",
            entity_id=sale_id, actor=actor,
        )

    # ==================== MASTER DATA ====================

    async def delete_material(self, actor: ActorContext, material_id: int) -> None:
        PermissionChecker(actor).require_role(
            UserRole.OWNER, UserRole.PRODUCTION_MANAGER, action="delete raw materials"
        )
        material = await self.stock.get_material(material_id, lock=True)

        if await self._count(Purchase.id, Purchase.material_id == material.id):
            raise StateError(f"Cannot delete {material.name}: it has purchase records.")
        if await self._count(MaterialUsage.id, MaterialUsage.material_id == material.id):
            raise StateError(f"Cannot delete {material.name}: it has been used in batches.")
        if material.stock_quantity > 0:
            raise StateError(f"Cannot delete {material.name}: {material.stock_quantity} {material.unit} still in stock.")

        await self.db.delete(material)
        await self.db.flush()
        await self.audit.log(
            AuditAction.DELETE, "materials", f"Deleted raw material {material.name}.",
            entity_id=material_id, actor=actor,
        )

    async def delete_product(self, actor: ActorContext, product_id: int) -> None:
        PermissionChecker(actor).require_role(UserRole.OWNER, action="delete products")
        product = await self.db.get(Product, product_id)
        if product is None:
            raise NotFoundError(f"Product #{product_id} not found.")

        if await self._count(SaleItem.id, SaleItem.product_id == product.id):
            raise StateError(f"Cannot delete {product.name}: it appears on sales.")
        if await self._count(ManufacturingBatch.id, ManufacturingBatch.product_id == product.id):
            raise StateError(f"Cannot delete {product.name}: it has manufacturing batches.")
        if await self._count(InventoryTransfer.id, InventoryTransfer.product_id == product.id):
            raise StateError(f"Cannot delete {product.name}: it has inventory transfers.")
        if await self.goods.get_total_quantity(product.id) > 0:
            raise StateError(f"Cannot delete {product.name}: finished goods are still in stock.")

        await self.db.execute(delete(ProductAdjustment).where(ProductAdjustment.product_id == product.id))
        await self.db.execute(delete(FinishedGoodsEntry).where(FinishedGoodsEntry.product_id == product.id))
        await self.db.delete(product)
        await self.db.flush()
        await self.audit.log(
            AuditAction.DELETE, "products", f"Deleted product {product.name} ({product.sku}).",
            entity_id=product_id, actor=actor,
        )

    async def delete_customer(self, actor: ActorContext, customer_id: int) -> None:
        checker = PermissionChecker(actor)
        checker.require_role(UserRole.OWNER, UserRole.DISTRIBUTOR, action="delete customers")
        customer = await self.db.get(Customer, customer_id)
        if customer is None:
            raise NotFoundError(f"Customer #{customer_id} not found.")
        checker.require_owner_or_creator(customer.created_by, action="delete customers")

        if await self._count(Sale.id, Sale.customer_id == customer.id):
            raise StateError(f"Cannot delete {customer.name}: the customer has sales.")

        await self.db.delete(customer)
        await self.db.flush()
        await self.audit.log(
            AuditAction.DELETE, "customers", f"Deleted customer {customer.name}.",
            entity_id=customer_id, actor=actor,
        )

    async def delete_user(self, actor: ActorContext, user_id: int) -> None:
        PermissionChecker(actor).require_role(UserRole.OWNER, action="delete users")
        if user_id == actor.user_id:
            raise StateError("You cannot delete your own account.")

        user = await self.db.get(User, user_id)
        if user is None:
            raise NotFoundError(f"User #{user_id} not found.")

        if user.role == UserRole.OWNER.value and user.is_active:
            active_owners = await self._count(
                User.id, User.role == UserRole.OWNER.value, User.is_active.is_(True)
            )
            if active_owners <= 1:
                raise StateError("Cannot delete the last active owner.")

        references = [
            ("activity logs", AuditLog.id, AuditLog.user_id == user_id),
            ("customers", Customer.id, Customer.created_by == user_id),
            ("funds", Fund.id, or_(Fund.from_user_id == user_id, Fund.to_user_id == user_id)),
            ("fund returns", FundReturn.id, or_(FundReturn.requested_by == user_id, FundReturn.approved_by == user_id)),
            ("fund usage", FundUsage.id, FundUsage.used_by == user_id),
            ("inventory", FinishedGoodsEntry.id, FinishedGoodsEntry.shopkeeper_id == user_id),
            ("inventory transfers", InventoryTransfer.id, or_(
                InventoryTransfer.initiated_by == user_id,
                InventoryTransfer.confirmed_by == user_id,
                InventoryTransfer.shopkeeper_id == user_id,
            )),
            ("manufacturing batches", ManufacturingBatch.id, or_(
                ManufacturingBatch.created_by == user_id,
                ManufacturingBatch.status_changed_by == user_id,
            )),
            ("manufacturing costs", ManufacturingCost.id, ManufacturingCost.recorded_by == user_id),
            ("material usage", MaterialUsage.id, MaterialUsage.created_by == user_id),
            ("payments", Payment.id, Payment.recorded_by == user_id),
            ("product adjustments", ProductAdjustment.id, ProductAdjustment.adjusted_by == user_id),
            ("purchases", Purchase.id, Purchase.created_by == user_id),
            ("quality checks", QualityCheck.id, QualityCheck.checked_by == user_id),
            ("sales", Sale.id, Sale.created_by == user_id),
        ]
        blocking = [label for label, column, condition in references if await self._count(column, condition)]
        if blocking:
            raise StateError(
                f"Cannot delete {user.username}: referenced by {', '.join(blocking)}. "
                f"Deactivate the account instead."
            )

        await self.db.execute(delete(Notification).where(Notification.user_id == user_id))
        await self.db.delete(user)
        await self.db.flush()
        await self.audit.log(
            AuditAction.DELETE, "users", f"Deleted user {user.username}.",
            entity_id=user_id, actor=actor,
        )

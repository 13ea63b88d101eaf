"""Raw material purchases: stock in, fund out."""
import logging
from datetime import date
from decimal import Decimal
from typing import Optional, List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.actor import ActorContext
from app.core.exceptions import InsufficientStock, NotFoundError, ValidationError
from app.core.money import to_decimal, round_money, money_tolerance, format_money
from app.core.permissions import PermissionChecker
from app.models.audit_log import AuditAction
from app.models.fund import FundUsageType
from app.models.purchase import Purchase
from app.models.user import UserRole
from app.services.audit_service import AuditService
from app.services.fund_service import FundService
from app.services.stock_service import StockService


logger = logging.getLogger(__name__)

MODULE = "purchases"


class PurchaseService:

    def __init__(self, db: AsyncSession):
        self.db = db
        self.stock = StockService(db)
        self.funds = FundService(db)
        self.audit = AuditService(db)

    async def get_purchase(self, purchase_id: int, lock: bool = False) -> Purchase:
        query = select(Purchase).where(Purchase.id == purchase_id)
        if lock:
            query = query.with_for_update().execution_options(populate_existing=True)
        purchase = (await self.db.execute(query)).scalar_one_or_none()
        if purchase is None:
            raise NotFoundError(f"Purchase #{purchase_id} not found.")
        return purchase

    async def save_purchase(
        self,
        actor: ActorContext,
        material_id: int,
        quantity: Decimal,
        unit_price: Decimal,
        total_amount: Decimal,
        purchase_date: date,
        fund_id: Optional[int] = None,
        supplier: Optional[str] = None,
        notes: Optional[str] = None,
        purchase_id: Optional[int] = None,
    ) -> Purchase:
        """
        Create a purchase, or edit one by reverting its effects and re-applying.
        """
        PermissionChecker(actor).require_role(
            UserRole.PRODUCTION_MANAGER, UserRole.OWNER, action="record purchases"
        )

        quantity = to_decimal(quantity)
        unit_price = round_money(unit_price)
        total_amount = round_money(total_amount)
        if quantity <= 0 or unit_price <= 0 or total_amount <= 0:
            raise ValidationError("Quantity, unit price and total amount must be greater than zero.")
        if abs(quantity * unit_price - total_amount) > money_tolerance():
            raise ValidationError(
                f"Total amount {format_money(total_amount)} does not match "
                f"quantity x unit price ({format_money(quantity * unit_price)})."
            )

        if purchase_id is None:
            purchase = Purchase(created_by=actor.user_id)
            action = AuditAction.CREATE
        else:
            purchase = await self.get_purchase(purchase_id, lock=True)
            await self.revert_effects(purchase)
            action = AuditAction.UPDATE

        material = await self.stock.get_material(material_id, lock=True)

        purchase.material_id = material_id
        purchase.quantity = quantity
        purchase.unit_price = unit_price
        purchase.total_amount = total_amount
        purchase.purchase_date = purchase_date
        purchase.fund_id = fund_id
        purchase.supplier = supplier
        purchase.notes = notes
        if purchase_id is None:
            self.db.add(purchase)
        await self.db.flush()

        await self.stock.credit(material, quantity, reason=f"purchase #{purchase.id}")
        if fund_id is not None:
            fund = await self.funds.get_fund(fund_id, lock=True)
            await self.funds.apply_usage(
                fund, total_amount, FundUsageType.PURCHASE, purchase.id, actor,
                description=f"Purchase of {quantity} {material.unit} {material.name}",
            )

        verb = "Recorded" if action == AuditAction.CREATE else "Updated"
        await self.audit.log(
            action, MODULE,
            f"{verb} purchase of {quantity} {material.unit} {material.name} "
            f"for {format_money(total_amount)}" + (f" from fund #{fund_id}." if fund_id else "."),
            entity_id=purchase.id, actor=actor,
        )
        return purchase

    async def revert_effects(self, purchase: Purchase) -> None:
        """
        Undo a locked purchase's stock and fund effects.

        Stock goes first: if part of the purchase has been consumed the
        reversal is unsafe and nothing is touched.
        """
        material = await self.stock.get_material(purchase.material_id, lock=True)
        if material.stock_quantity < purchase.quantity:
            raise InsufficientStock(
                f"Cannot reverse purchase #{purchase.id}: only {material.stock_quantity} {material.unit} "
                f"of {material.name} remain, {purchase.quantity} were purchased."
            )
        await self.stock.debit(material, purchase.quantity, reason=f"reverse purchase #{purchase.id}")

        if purchase.fund_id is not None:
            await self.funds.reverse_usage(purchase.fund_id, FundUsageType.PURCHASE, purchase.id)
        logger.info(f"Reverted effects of purchase {purchase.id}")

    async def list_purchases(
        self,
        material_id: Optional[int] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> List[Purchase]:
        query = select(Purchase).order_by(Purchase.purchase_date.desc(), Purchase.id.desc())
        if material_id:
            query = query.where(Purchase.material_id == material_id)
        result = await self.db.execute(query.offset(skip).limit(limit))
        return list(result.scalars().all())

"""Sales: creation, editing and finished-goods settlement."""
import logging
import secrets
from collections import defaultdict
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional, List

from sqlalchemy import select, func, delete
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.actor import ActorContext
from app.core.exceptions import (
    InsufficientStock,
    NotFoundError,
    StateError,
    ValidationError,
)
from app.core.money import round_money, format_money
from app.core.permissions import PermissionChecker
from app.models.audit_log import AuditAction
from app.models.customer import Customer
from app.models.inventory import Location
from app.models.product import Product
from app.models.sales import Sale, SaleItem, Payment, PaymentStatus
from app.models.user import UserRole
from app.services.audit_service import AuditService
from app.services.finished_goods_service import FinishedGoodsService
from app.services.payment_service import derive_payment_status


logger = logging.getLogger(__name__)

MODULE = "sales"


def generate_invoice_number(on: Optional[date] = None) -> str:
    on = on or datetime.now(timezone.utc).date()
    return f"INV-{on:%Y%m%d}-{secrets.token_hex(2).upper()}"


class SaleService:
    """
    Sales draw from the unscoped wholesale entry of each product.

    Every item debits wholesale on creation; editing credits the original
    items back before debiting the new ones, in the same transaction.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.goods = FinishedGoodsService(db)
        self.audit = AuditService(db)

    async def get_sale(self, sale_id: int, lock: bool = False) -> Sale:
        query = select(Sale).where(Sale.id == sale_id)
        if lock:
            query = query.with_for_update().execution_options(populate_existing=True)
        sale = (await self.db.execute(query)).scalar_one_or_none()
        if sale is None:
            raise NotFoundError(f"Sale #{sale_id} not found.")
        return sale

    async def get_items(self, sale_id: int) -> List[SaleItem]:
        result = await self.db.execute(
            select(SaleItem).where(SaleItem.sale_id == sale_id).order_by(SaleItem.id)
        )
        return list(result.scalars().all())

    async def get_paid_total(self, sale_id: int) -> Decimal:
        total = await self.db.scalar(
            select(func.coalesce(func.sum(Payment.amount), 0)).where(Payment.sale_id == sale_id)
        )
        return round_money(total or 0)

    async def save_sale(
        self,
        actor: ActorContext,
        customer_id: int,
        sale_date: date,
        items: List[dict],
        discount_amount: Decimal = Decimal("0"),
        tax_amount: Decimal = Decimal("0"),
        shipping_cost: Decimal = Decimal("0"),
        payment_due_date: Optional[date] = None,
        notes: Optional[str] = None,
        sale_id: Optional[int] = None,
    ) -> Sale:
        """
        Create a sale, or edit an unpaid one.

        Args:
            items: [{"product_id": int, "quantity": int, "unit_price": Decimal}, ...]
        """
        checker = PermissionChecker(actor)
        checker.require_role(UserRole.DISTRIBUTOR, UserRole.OWNER, action="record sales")

        discount_amount = round_money(discount_amount)
        tax_amount = round_money(tax_amount)
        shipping_cost = round_money(shipping_cost)
        if discount_amount < 0 or tax_amount < 0 or shipping_cost < 0:
            raise ValidationError("Discount, tax and shipping cannot be negative.")
        if not items:
            raise ValidationError("A sale needs at least one item.")

        new_quantities: dict[int, int] = defaultdict(int)
        lines = []
        for item in items:
            product_id = item.get("product_id")
            quantity = int(item.get("quantity") or 0)
            unit_price = round_money(item.get("unit_price") or 0)
            if not product_id or quantity <= 0 or unit_price <= 0:
                raise ValidationError("Each item needs a product, a quantity above zero and a price above zero.")
            new_quantities[product_id] += quantity
            lines.append((product_id, quantity, unit_price))

        total_amount = round_money(sum(quantity * price for _, quantity, price in lines))
        net_amount = round_money(total_amount - discount_amount + tax_amount + shipping_cost)
        if net_amount < 0:
            raise ValidationError("Net amount cannot be negative. Check the discount.")

        customer = await self.db.get(Customer, customer_id)
        if customer is None:
            raise NotFoundError(f"Customer #{customer_id} not found.")
        for product_id in new_quantities:
            if await self.db.get(Product, product_id) is None:
                raise NotFoundError(f"Product #{product_id} not found.")

        sale: Optional[Sale] = None
        original_items: List[SaleItem] = []
        old_quantities: dict[int, int] = defaultdict(int)
        if sale_id is not None:
            sale = await self.get_sale(sale_id, lock=True)
            checker.require_owner_or_creator(sale.created_by, action="edit sales")
            payment_count = await self.db.scalar(
                select(func.count(Payment.id)).where(Payment.sale_id == sale.id)
            )
            if payment_count:
                raise StateError("Cannot edit a sale that already has payments recorded.")
            original_items = await self.get_items(sale.id)
            for item in original_items:
                old_quantities[item.product_id] += item.quantity

        # Only growth needs stock; lock wholesale rows in product order
        for product_id in sorted(new_quantities):
            delta = new_quantities[product_id] - old_quantities.get(product_id, 0)
            if delta <= 0:
                continue
            entry = await self.goods.get_entry(product_id, Location.WHOLESALE, lock=True)
            available = entry.quantity if entry else 0
            if delta > available:
                raise InsufficientStock(
                    f"Insufficient wholesale stock for product #{product_id}. "
                    f"Available: {available}, additional required: {delta}."
                )

        if sale is None:
            sale = Sale(
                invoice_number=generate_invoice_number(sale_date),
                created_by=actor.user_id,
            )
            self.db.add(sale)
            action = AuditAction.CREATE
        else:
            for item in original_items:
                await self.goods.credit(item.product_id, Location.WHOLESALE, item.quantity)
            await self.db.execute(delete(SaleItem).where(SaleItem.sale_id == sale.id))
            action = AuditAction.UPDATE

        sale.customer_id = customer_id
        sale.sale_date = sale_date
        sale.total_amount = total_amount
        sale.discount_amount = discount_amount
        sale.tax_amount = tax_amount
        sale.shipping_cost = shipping_cost
        sale.net_amount = net_amount
        sale.payment_due_date = payment_due_date
        sale.notes = notes
        sale.payment_status = derive_payment_status(Decimal("0"), net_amount).value
        await self.db.flush()

        for product_id, quantity, unit_price in lines:
            self.db.add(SaleItem(
                sale_id=sale.id,
                product_id=product_id,
                quantity=quantity,
                unit_price=unit_price,
                total_price=round_money(quantity * unit_price),
            ))
            await self.goods.debit(product_id, Location.WHOLESALE, quantity)
        await self.db.flush()

        verb = "Created" if action == AuditAction.CREATE else "Updated"
        await self.audit.log(
            action, MODULE,
            f"{verb} sale {sale.invoice_number} for {customer.name}, net {format_money(net_amount)}.",
            entity_id=sale.id, actor=actor,
        )
        logger.info(f"Sale {sale.invoice_number} saved with {len(lines)} items, net {net_amount}")
        return sale

    async def list_sales(
        self, actor: ActorContext, skip: int = 0, limit: int = 50
    ) -> tuple[List[Sale], int]:
        """Owners see every sale, distributors their own."""
        query = select(Sale)
        if not actor.is_owner:
            query = query.where(Sale.created_by == actor.user_id)

        total = await self.db.scalar(select(func.count()).select_from(query.subquery()))
        result = await self.db.execute(
            query.order_by(Sale.sale_date.desc(), Sale.id.desc()).offset(skip).limit(limit)
        )
        return list(result.scalars().all()), total or 0

    async def get_payment_reminders(self, actor: ActorContext) -> List[dict]:
        """Outstanding sales of the calling distributor, earliest due first."""
        PermissionChecker(actor).require_role(UserRole.DISTRIBUTOR, action="view payment reminders")

        paid = (
            select(Payment.sale_id, func.sum(Payment.amount).label("amount_paid"))
            .group_by(Payment.sale_id)
            .subquery()
        )
        result = await self.db.execute(
            select(Sale, Customer.name, func.coalesce(paid.c.amount_paid, 0))
            .join(Customer, Customer.id == Sale.customer_id)
            .outerjoin(paid, paid.c.sale_id == Sale.id)
            .where(
                Sale.created_by == actor.user_id,
                Sale.payment_status.in_([PaymentStatus.UNPAID.value, PaymentStatus.PARTIAL.value]),
            )
            .order_by(Sale.payment_due_date.is_(None), Sale.payment_due_date, Sale.id)
        )

        reminders = []
        for sale, customer_name, amount_paid in result.all():
            amount_paid = round_money(amount_paid)
            amount_due = round_money(sale.net_amount - amount_paid)
            if amount_due <= 0:
                continue
            reminders.append({
                "sale_id": sale.id,
                "invoice_number": sale.invoice_number,
                "customer_name": customer_name,
                "net_amount": sale.net_amount,
                "amount_paid": amount_paid,
                "amount_due": amount_due,
                "payment_due_date": sale.payment_due_date,
                "payment_status": sale.payment_status,
            })

        await self.audit.log(
            AuditAction.READ, "payments", "Fetched payment reminders.", actor=actor,
        )
        return reminders

    async def mark_reminder_contacted(
        self,
        actor: ActorContext,
        sale_id: int,
        notes: Optional[str] = None,
    ) -> Sale:
        checker = PermissionChecker(actor)
        checker.require_role(UserRole.DISTRIBUTOR, action="update payment reminders")

        sale = await self.get_sale(sale_id, lock=True)
        checker.require_owner_or_creator(sale.created_by, action="update reminders for sales")

        stamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M")
        entry = f"[Reminder {stamp}] Customer contacted." + (f" {notes}" if notes else "")
        sale.notes = f"{sale.notes}\n{entry}" if sale.notes else entry
        await self.db.flush()

        await self.audit.log(
            AuditAction.UPDATE, "payments",
            f"Marked payment reminder as contacted for sale {sale.invoice_number}.",
            entity_id=sale.id, actor=actor,
        )
        return sale

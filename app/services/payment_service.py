"""Payments against sales and the derived payment status."""
import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.actor import ActorContext
from app.core.exceptions import ConsistencyViolation, NotFoundError, StateError, ValidationError
from app.core.money import round_money, money_tolerance, format_money
from app.core.permissions import PermissionChecker
from app.models.audit_log import AuditAction
from app.models.sales import Sale, Payment, PaymentMethod, PaymentStatus
from app.models.user import UserRole
from app.services.audit_service import AuditService


logger = logging.getLogger(__name__)

MODULE = "payments"


def derive_payment_status(amount_paid: Decimal, net_amount: Decimal) -> PaymentStatus:
    """
    Payment status as a pure function of what was paid against what is owed.

    Paid within the money tolerance counts as paid.
    """
    if amount_paid >= net_amount - money_tolerance():
        return PaymentStatus.PAID
    if amount_paid > 0:
        return PaymentStatus.PARTIAL
    return PaymentStatus.UNPAID


class PaymentService:

    def __init__(self, db: AsyncSession):
        self.db = db
        self.audit = AuditService(db)

    async def _lock_sale(self, sale_id: int) -> Sale:
        sale = (await self.db.execute(
            select(Sale).where(Sale.id == sale_id).with_for_update().execution_options(populate_existing=True)
        )).scalar_one_or_none()
        if sale is None:
            raise NotFoundError(f"Sale #{sale_id} not found.")
        return sale

    async def get_paid_total(self, sale_id: int) -> Decimal:
        total = await self.db.scalar(
            select(func.coalesce(func.sum(Payment.amount), 0)).where(Payment.sale_id == sale_id)
        )
        return round_money(total or 0)

    async def recompute_payment_status(self, sale: Sale) -> PaymentStatus:
        """Rewrite a locked sale's status from its payment rows."""
        status = derive_payment_status(await self.get_paid_total(sale.id), sale.net_amount)
        sale.payment_status = status.value
        await self.db.flush()
        return status

    async def record_payment(
        self,
        actor: ActorContext,
        sale_id: int,
        amount: Decimal,
        payment_method: PaymentMethod,
        payment_date: Optional[date] = None,
        reference_number: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> tuple[Payment, PaymentStatus, Decimal]:
        """
        Record a payment against one of the distributor's own sales.

        Returns:
            (payment, new payment status, remaining amount due)
        """
        checker = PermissionChecker(actor)
        checker.require_role(UserRole.DISTRIBUTOR, action="record payments")

        amount = round_money(amount)
        if amount <= 0:
            raise ValidationError("Payment amount must be greater than zero.")

        sale = await self._lock_sale(sale_id)
        checker.require_owner_or_creator(sale.created_by, action="record payments for sales")

        paid = await self.get_paid_total(sale.id)
        if derive_payment_status(paid, sale.net_amount) == PaymentStatus.PAID:
            raise StateError(f"Sale {sale.invoice_number} is already fully paid.")
        if paid + amount > sale.net_amount + money_tolerance():
            raise ConsistencyViolation(
                f"Payment of {format_money(amount)} exceeds the remaining due "
                f"of {format_money(sale.net_amount - paid)}."
            )

        payment = Payment(
            sale_id=sale.id,
            amount=amount,
            payment_method=payment_method.value,
            payment_date=payment_date or datetime.now(timezone.utc).date(),
            reference_number=reference_number,
            notes=notes,
            recorded_by=actor.user_id,
        )
        self.db.add(payment)
        await self.db.flush()

        status = await self.recompute_payment_status(sale)
        remaining = max(round_money(sale.net_amount - paid - amount), Decimal("0.00"))

        await self.audit.log(
            AuditAction.CREATE, MODULE,
            f"Recorded {payment_method.value} payment of {format_money(amount)} for sale "
            f"{sale.invoice_number}. Status: {status.value}.",
            entity_id=payment.id, actor=actor,
        )
        logger.info(f"Payment {payment.id} on sale {sale.id}: {amount}, status {status.value}")
        return payment, status, remaining

    async def void_payment(
        self,
        actor: ActorContext,
        payment_id: int,
        reason: str,
    ) -> tuple[Sale, PaymentStatus]:
        """Delete a payment outright and re-derive its sale's status."""
        checker = PermissionChecker(actor)
        checker.require_role(UserRole.DISTRIBUTOR, UserRole.OWNER, action="void payments")
        if not reason or not reason.strip():
            raise ValidationError("A reason is required to void a payment.")

        payment = await self.db.get(Payment, payment_id)
        if payment is None:
            raise NotFoundError(f"Payment #{payment_id} not found.")

        sale = await self._lock_sale(payment.sale_id)
        checker.require_owner_or_creator(sale.created_by, action="void payments for sales")

        amount = payment.amount
        await self.db.delete(payment)
        await self.db.flush()
        status = await self.recompute_payment_status(sale)

        await self.audit.log(
            AuditAction.DELETE, MODULE,
            f"Voided payment #{payment_id} of {format_money(amount)} for sale {sale.invoice_number}. "
            f"Reason: {reason.strip()}",
            entity_id=payment_id, actor=actor,
        )
        return sale, status

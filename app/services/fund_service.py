"""Fund ledger: allocation, usage, returns and fund-return approval."""
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, List

from sqlalchemy import select, func, delete
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.actor import ActorContext
from app.core.exceptions import (
    ConsistencyViolation,
    InsufficientFunds,
    NotFoundError,
    StateError,
    ValidationError,
)
from app.core.money import to_decimal, round_money, money_tolerance, format_money
from app.core.permissions import PermissionChecker
from app.models.audit_log import AuditAction
from app.models.fund import (
    Fund,
    FundUsage,
    FundReturn,
    FundType,
    FundStatus,
    FundUsageType,
    FundReturnStatus,
)
from app.models.notifications import NotificationType
from app.models.sales import Sale, Payment
from app.models.user import User, UserRole
from app.services.audit_service import AuditService
from app.services.notification_service import NotificationService


logger = logging.getLogger(__name__)

MODULE = "funds"


class FundService:
    """
    Fund balances are a projection of their rows:
    balance = amount - sum(FundUsage.amount), depleted iff balance <= 0.
    Every mutation recomputes both from the usage rows.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.audit = AuditService(db)

    async def get_fund(self, fund_id: int, lock: bool = False) -> Fund:
        query = select(Fund).where(Fund.id == fund_id)
        if lock:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(query)
        fund = result.scalar_one_or_none()
        if fund is None:
            raise NotFoundError(f"Fund #{fund_id} not found.")
        return fund

    async def get_total_usage(self, fund_id: int) -> Decimal:
        total = await self.db.scalar(
            select(func.coalesce(func.sum(FundUsage.amount), 0)).where(FundUsage.fund_id == fund_id)
        )
        return round_money(total or 0)

    async def recompute(self, fund: Fund) -> Fund:
        """Rebuild balance and status of a locked fund from its usage rows."""
        if fund.type != FundType.INVESTMENT.value:
            return fund

        balance = round_money(fund.amount - await self.get_total_usage(fund.id))
        if balance < 0:
            raise ConsistencyViolation(f"Fund #{fund.id} would go negative ({format_money(balance)}).")

        fund.balance = balance
        fund.status = FundStatus.DEPLETED.value if balance <= 0 else FundStatus.ACTIVE.value
        await self.db.flush()
        return fund

    # ==================== ALLOCATION ====================

    async def allocate(
        self,
        actor: ActorContext,
        from_user_id: int,
        to_user_id: int,
        amount: Decimal,
        description: Optional[str] = None,
    ) -> Fund:
        """
        Inject capital as a new investment fund.

        Nothing is deducted from the giver; each allocation is its own fund.
        """
        PermissionChecker(actor).require_role(UserRole.OWNER, action="allocate funds")

        amount = round_money(amount)
        if amount <= 0:
            raise ValidationError("Amount must be greater than zero.")
        if from_user_id == to_user_id:
            raise ValidationError("Cannot transfer funds to the same user.")

        users = {}
        for user_id in (from_user_id, to_user_id):
            user = await self.db.get(User, user_id)
            if user is None or not user.is_active:
                raise NotFoundError(f"User #{user_id} not found or inactive.")
            users[user_id] = user

        fund = Fund(
            type=FundType.INVESTMENT.value,
            amount=amount,
            balance=amount,
            status=FundStatus.ACTIVE.value,
            from_user_id=from_user_id,
            to_user_id=to_user_id,
            description=description,
        )
        self.db.add(fund)
        await self.db.flush()

        await self.audit.log(
            AuditAction.CREATE, MODULE,
            f"Transferred {format_money(amount)} from {users[from_user_id].full_name} "
            f"to {users[to_user_id].full_name}.",
            entity_id=fund.id, actor=actor,
        )
        logger.info(f"Fund {fund.id} allocated {amount} to user {to_user_id}")
        return fund

    # ==================== USAGE ====================

    async def record_usage(
        self,
        actor: ActorContext,
        fund_id: int,
        amount: Decimal,
        usage_type: FundUsageType,
        reference_id: int,
        description: Optional[str] = None,
    ) -> FundUsage:
        PermissionChecker(actor).require_role(UserRole.PRODUCTION_MANAGER, action="record fund usage")

        if not reference_id:
            raise ValidationError("A reference ID is required for fund usage.")

        fund = await self.get_fund(fund_id, lock=True)
        usage = await self.apply_usage(
            fund, amount, usage_type, reference_id, actor, description,
        )

        await self.audit.log(
            AuditAction.CREATE, MODULE,
            f"Recorded {usage_type.value} usage of {format_money(usage.amount)} from fund #{fund.id} "
            f"(reference #{reference_id}). Remaining balance: {format_money(fund.balance)}.",
            entity_id=fund.id, actor=actor,
        )
        return usage

    async def apply_usage(
        self,
        fund: Fund,
        amount: Decimal,
        usage_type: FundUsageType,
        reference_id: int,
        actor: ActorContext,
        description: Optional[str] = None,
    ) -> FundUsage:
        """Debit a locked fund. Shared by direct usage and purchases."""
        amount = round_money(amount)
        if amount <= 0:
            raise ValidationError("Amount must be greater than zero.")
        if fund.type != FundType.INVESTMENT.value:
            raise StateError(f"Fund #{fund.id} is a return record and cannot be spent from.")
        if fund.balance < amount:
            raise InsufficientFunds(
                f"Insufficient funds in fund #{fund.id}. "
                f"Available: {format_money(fund.balance)}, required: {format_money(amount)}."
            )

        usage = FundUsage(
            fund_id=fund.id,
            amount=amount,
            type=usage_type.value,
            reference_id=reference_id,
            description=description,
            used_by=actor.user_id,
        )
        self.db.add(usage)
        await self.db.flush()
        await self.recompute(fund)
        logger.info(f"Fund {fund.id} debited {amount} for {usage_type.value} #{reference_id}, balance {fund.balance}")
        return usage

    async def reverse_usage(
        self,
        fund_id: int,
        usage_type: FundUsageType,
        reference_id: int,
    ) -> Decimal:
        """
        Remove the usage rows an originating record produced and re-derive the fund.

        Returns the amount credited back.
        """
        fund = await self.get_fund(fund_id, lock=True)
        credited = await self.db.scalar(
            select(func.coalesce(func.sum(FundUsage.amount), 0)).where(
                FundUsage.fund_id == fund_id,
                FundUsage.type == usage_type.value,
                FundUsage.reference_id == reference_id,
            )
        )
        await self.db.execute(
            delete(FundUsage).where(
                FundUsage.fund_id == fund_id,
                FundUsage.type == usage_type.value,
                FundUsage.reference_id == reference_id,
            )
        )
        await self.recompute(fund)
        logger.info(f"Fund {fund_id} credited {credited} reversing {usage_type.value} #{reference_id}")
        return round_money(credited or 0)

    # ==================== RETURNS ====================

    async def return_funds(
        self,
        actor: ActorContext,
        fund_id: int,
        amount: Decimal,
        notes: Optional[str] = None,
    ) -> Fund:
        """Record capital handed back to its investor as a separate return fund."""
        PermissionChecker(actor).require_role(
            UserRole.OWNER, UserRole.PRODUCTION_MANAGER, action="record fund returns"
        )

        amount = round_money(amount)
        if amount <= 0:
            raise ValidationError("Amount must be greater than zero.")

        original = await self.get_fund(fund_id, lock=True)
        if original.type != FundType.INVESTMENT.value:
            raise StateError("Selected fund is not an investment fund.")

        returned = Fund(
            type=FundType.RETURN.value,
            amount=amount,
            balance=Decimal("0"),
            status=FundStatus.RETURNED.value,
            from_user_id=original.to_user_id,
            to_user_id=original.from_user_id,
            reference_id=original.id,
            description=notes,
        )
        self.db.add(returned)
        await self.db.flush()

        await self.audit.log(
            AuditAction.CREATE, MODULE,
            f"Recorded return of {format_money(amount)} for original fund #{original.id}. Notes: {notes or ''}",
            entity_id=returned.id, actor=actor,
        )
        return returned

    async def request_fund_return(
        self,
        actor: ActorContext,
        sale_id: int,
        amount: Decimal,
        notes: Optional[str] = None,
    ) -> FundReturn:
        """Distributor hands collected sale revenue back to the owner."""
        checker = PermissionChecker(actor)
        checker.require_role(UserRole.DISTRIBUTOR, action="request fund returns")

        amount = round_money(amount)
        if amount <= 0:
            raise ValidationError("Amount must be greater than zero.")

        sale = (await self.db.execute(
            select(Sale).where(Sale.id == sale_id).with_for_update().execution_options(populate_existing=True)
        )).scalar_one_or_none()
        if sale is None:
            raise NotFoundError(f"Sale #{sale_id} not found.")
        checker.require_owner_or_creator(sale.created_by, action="return funds from sales")

        collected = round_money(await self.db.scalar(
            select(func.coalesce(func.sum(Payment.amount), 0)).where(Payment.sale_id == sale_id)
        ) or 0)
        already_returned = round_money(await self.db.scalar(
            select(func.coalesce(func.sum(FundReturn.amount), 0)).where(FundReturn.sale_id == sale_id)
        ) or 0)
        if already_returned + amount > collected + money_tolerance():
            raise ConsistencyViolation(
                f"Cannot return {format_money(amount)}: only {format_money(collected - already_returned)} "
                f"of collected payments on this sale remain unreturned."
            )

        fund_return = FundReturn(
            sale_id=sale_id,
            amount=amount,
            status=FundReturnStatus.PENDING.value,
            notes=notes,
            requested_by=actor.user_id,
        )
        self.db.add(fund_return)
        await self.db.flush()

        owners = (await self.db.execute(
            select(User.id).where(User.role == UserRole.OWNER.value, User.is_active.is_(True))
        )).scalars().all()
        notifications = NotificationService(self.db)
        for owner_id in owners:
            await notifications.notify(
                owner_id,
                NotificationType.FUND_RETURN_REQUESTED,
                "Fund return awaiting approval",
                f"{actor.display_name} returned {format_money(amount)} from sale {sale.invoice_number}.",
                related_id=fund_return.id,
            )

        await self.audit.log(
            AuditAction.CREATE, MODULE,
            f"Requested fund return of {format_money(amount)} for sale {sale.invoice_number}.",
            entity_id=fund_return.id, actor=actor,
        )
        return fund_return

    async def approve_fund_return(
        self,
        actor: ActorContext,
        fund_return_id: int,
        notes: Optional[str] = None,
    ) -> FundReturn:
        PermissionChecker(actor).require_role(UserRole.OWNER, action="approve fund returns")

        fund_return = (await self.db.execute(
            select(FundReturn)
            .where(FundReturn.id == fund_return_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )).scalar_one_or_none()
        if fund_return is None:
            raise NotFoundError(f"Fund return #{fund_return_id} not found.")
        if fund_return.status != FundReturnStatus.PENDING.value:
            raise StateError(f"Fund return is already {fund_return.status}.")

        fund_return.status = FundReturnStatus.APPROVED.value
        fund_return.approved_by = actor.user_id
        fund_return.approved_at = datetime.now(timezone.utc)
        if notes:
            fund_return.notes = f"{fund_return.notes}\n{notes}" if fund_return.notes else notes
        await self.db.flush()

        await self.audit.log(
            AuditAction.UPDATE, MODULE,
            f"Approved fund return #{fund_return.id} of {format_money(fund_return.amount)} "
            f"for sale #{fund_return.sale_id}.",
            entity_id=fund_return.id, actor=actor,
        )
        return fund_return

    # ==================== READS ====================

    async def get_fund_summary(self, actor: ActorContext, fund_id: int) -> dict:
        PermissionChecker(actor).require_role(
            UserRole.OWNER, UserRole.PRODUCTION_MANAGER, action="view funds"
        )
        fund = await self.get_fund(fund_id)
        total_used = await self.get_total_usage(fund_id)
        return {
            "fund_id": fund.id,
            "type": fund.type,
            "amount": fund.amount,
            "balance": fund.balance,
            "total_used": total_used,
            "status": fund.status,
        }

    async def list_funds(self, actor: ActorContext) -> List[Fund]:
        """Owners see every fund, production managers the funds allocated to them."""
        PermissionChecker(actor).require_role(
            UserRole.OWNER, UserRole.PRODUCTION_MANAGER, action="view funds"
        )
        query = select(Fund).order_by(Fund.created_at.desc(), Fund.id.desc())
        if not actor.is_owner:
            query = query.where(Fund.to_user_id == actor.user_id)
        return list((await self.db.execute(query)).scalars().all())

    async def get_usage(self, fund_id: int) -> List[FundUsage]:
        result = await self.db.execute(
            select(FundUsage).where(FundUsage.fund_id == fund_id).order_by(FundUsage.created_at)
        )
        return list(result.scalars().all())

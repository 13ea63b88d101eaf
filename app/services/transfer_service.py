"""Two-phase finished-goods transfers."""
import logging
from datetime import datetime, timezone
from typing import Optional, List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.actor import ActorContext
from app.core.exceptions import (
    NotFoundError,
    PermissionDeniedError,
    StateError,
    ValidationError,
)
from app.core.permissions import PermissionChecker
from app.models.audit_log import AuditAction
from app.models.inventory import InventoryTransfer, Location, TransferStatus
from app.models.notifications import NotificationType
from app.models.product import Product
from app.models.user import User, UserRole
from app.services.audit_service import AuditService
from app.services.finished_goods_service import FinishedGoodsService
from app.services.notification_service import NotificationService


logger = logging.getLogger(__name__)

MODULE = "transfers"


class TransferService:
    """
    Moves finished goods between locations in two steps.

    Initiating debits the source at once and leaves the goods in a pending
    transfer; confirming by the designated receiver credits the destination.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.goods = FinishedGoodsService(db)
        self.audit = AuditService(db)
        self.notifications = NotificationService(db)

    async def get_transfer(self, transfer_id: int, lock: bool = False) -> InventoryTransfer:
        query = select(InventoryTransfer).where(InventoryTransfer.id == transfer_id)
        if lock:
            query = query.with_for_update().execution_options(populate_existing=True)
        transfer = (await self.db.execute(query)).scalar_one_or_none()
        if transfer is None:
            raise NotFoundError(f"Transfer #{transfer_id} not found.")
        return transfer

    async def get_active_distributor(self, user_id: int) -> User:
        user = await self.db.get(User, user_id)
        if user is None or user.role != UserRole.DISTRIBUTOR.value or not user.is_active:
            raise ValidationError("Selected receiver is not an active distributor.")
        return user

    async def first_active_distributor(self) -> Optional[User]:
        result = await self.db.execute(
            select(User)
            .where(User.role == UserRole.DISTRIBUTOR.value, User.is_active.is_(True))
            .order_by(User.id)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def initiate_transfer(
        self,
        actor: ActorContext,
        product_id: int,
        quantity: int,
        from_location: Location,
        to_location: Location,
        shopkeeper_id: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> InventoryTransfer:
        PermissionChecker(actor).require_role(
            UserRole.OWNER, UserRole.PRODUCTION_MANAGER, action="transfer inventory"
        )
        if quantity <= 0:
            raise ValidationError("Quantity must be greater than zero.")
        if from_location == to_location:
            raise ValidationError("Source and destination locations cannot be the same.")
        if to_location == Location.WHOLESALE and shopkeeper_id is None:
            raise ValidationError("A receiving distributor is required for transfers to wholesale.")

        product = await self.db.get(Product, product_id)
        if product is None:
            raise NotFoundError(f"Product #{product_id} not found.")
        if shopkeeper_id is not None:
            await self.get_active_distributor(shopkeeper_id)

        transfer = await self._dispatch(
            actor, product, quantity, from_location, to_location, shopkeeper_id, notes=notes,
        )

        if shopkeeper_id is not None:
            await self.notifications.notify(
                shopkeeper_id,
                NotificationType.INVENTORY_TRANSFER_PENDING,
                "Inventory transfer awaiting confirmation",
                f"{quantity} units of {product.name} are on their way from {from_location.value} "
                f"to {to_location.value}. Please confirm receipt.",
                related_id=transfer.id,
            )

        await self.audit.log(
            AuditAction.CREATE, MODULE,
            f"Initiated transfer of {quantity} units of {product.name} from {from_location.value} "
            f"to {to_location.value}.",
            entity_id=transfer.id, actor=actor,
        )
        return transfer

    async def _dispatch(
        self,
        actor: ActorContext,
        product: Product,
        quantity: int,
        from_location: Location,
        to_location: Location,
        shopkeeper_id: Optional[int],
        batch_id: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> InventoryTransfer:
        """Debit the source entry and record the pending transfer."""
        await self.goods.debit(product.id, from_location, quantity)

        transfer = InventoryTransfer(
            product_id=product.id,
            quantity=quantity,
            from_location=from_location.value,
            to_location=to_location.value,
            shopkeeper_id=shopkeeper_id,
            batch_id=batch_id,
            status=TransferStatus.PENDING.value,
            notes=notes,
            initiated_by=actor.user_id,
        )
        self.db.add(transfer)
        await self.db.flush()
        logger.info(f"Transfer {transfer.id}: {quantity} x product {product.id} {from_location.value} -> {to_location.value} pending")
        return transfer

    async def create_completion_transfer(
        self,
        actor: ActorContext,
        product: Product,
        quantity: int,
        batch_id: int,
        batch_number: str,
    ) -> InventoryTransfer:
        """
        Route a completed batch's output toward wholesale.

        The output is credited at manufacturing and immediately dispatched in
        a pending manufacturing->wholesale transfer to the first active
        distributor, so wholesale only grows once that distributor confirms.
        """
        await self.goods.credit(product.id, Location.MANUFACTURING, quantity)

        receiver = await self.first_active_distributor()
        transfer = await self._dispatch(
            actor, product, quantity, Location.MANUFACTURING, Location.WHOLESALE,
            receiver.id if receiver else None,
            batch_id=batch_id,
            notes=f"Output of batch {batch_number}",
        )

        if receiver is not None:
            await self.notifications.notify(
                receiver.id,
                NotificationType.BATCH_COMPLETED_TRANSFER,
                "Completed batch awaiting receipt",
                f"Batch {batch_number} finished {quantity} units of {product.name}. "
                f"Please confirm receipt at wholesale.",
                related_id=transfer.id,
            )
        else:
            logger.warning(f"No active distributor to receive batch {batch_number}; transfer {transfer.id} awaits the owner")
        return transfer

    async def confirm_transfer(self, actor: ActorContext, transfer_id: int) -> InventoryTransfer:
        """
        Credit the destination of a pending transfer.

        Only the designated receiver may confirm; a transfer without one can
        only be confirmed by an owner.
        """
        transfer = await self.get_transfer(transfer_id, lock=True)

        if transfer.status != TransferStatus.PENDING.value:
            raise StateError(f"Transfer is already {transfer.status}.")

        if transfer.shopkeeper_id is not None:
            if actor.user_id != transfer.shopkeeper_id:
                raise PermissionDeniedError("You are not the designated receiver of this transfer.")
        elif not actor.is_owner:
            raise PermissionDeniedError("Transfers without a designated receiver can only be confirmed by the owner.")

        to_location = Location(transfer.to_location)
        holder_id = None if to_location == Location.WHOLESALE else transfer.shopkeeper_id
        await self.goods.credit(transfer.product_id, to_location, transfer.quantity, shopkeeper_id=holder_id)

        transfer.status = TransferStatus.CONFIRMED.value
        transfer.confirmed_by = actor.user_id
        transfer.confirmation_date = datetime.now(timezone.utc)
        await self.db.flush()

        await self.audit.log(
            AuditAction.UPDATE, MODULE,
            f"Confirmed receipt of {transfer.quantity} units of product #{transfer.product_id} "
            f"at {transfer.to_location}.",
            entity_id=transfer.id, actor=actor,
        )
        return transfer

    async def list_pending_transfers(self, actor: ActorContext) -> List[InventoryTransfer]:
        """Distributors see what they must confirm; owners see everything pending."""
        query = (
            select(InventoryTransfer)
            .where(InventoryTransfer.status == TransferStatus.PENDING.value)
            .order_by(InventoryTransfer.transfer_date)
        )
        if not actor.is_owner:
            query = query.where(InventoryTransfer.shopkeeper_id == actor.user_id)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_pending_batch_transfer(self, batch_id: int) -> Optional[InventoryTransfer]:
        result = await self.db.execute(
            select(InventoryTransfer)
            .where(
                InventoryTransfer.batch_id == batch_id,
                InventoryTransfer.status == TransferStatus.PENDING.value,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def has_batch_transfer(self, batch_id: int) -> bool:
        transfer_id = await self.db.scalar(
            select(InventoryTransfer.id).where(InventoryTransfer.batch_id == batch_id).limit(1)
        )
        return transfer_id is not None

    async def withdraw_completion_transfer(self, batch_id: int) -> Optional[InventoryTransfer]:
        """
        Take back a batch's output that was never received.

        The manufacturing credit and the dispatch debit cancel out, so dropping
        the pending transfer removes the output entirely. Output that a
        distributor already confirmed cannot be withdrawn here.
        """
        pending = await self.get_pending_batch_transfer(batch_id)
        if pending is None:
            if await self.has_batch_transfer(batch_id):
                raise StateError(
                    "The batch output has already been received at wholesale. "
                    "Adjust the output instead of reopening the batch."
                )
            return None
        await self.db.delete(pending)
        await self.db.flush()
        logger.info(f"Pending transfer {pending.id} for batch {batch_id} withdrawn")
        return pending

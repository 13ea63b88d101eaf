"""Finished-goods location ledger."""
import logging
from typing import Optional, List, Sequence

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import InsufficientStock, ValidationError
from app.models.inventory import FinishedGoodsEntry, Location


logger = logging.getLogger(__name__)


class FinishedGoodsService:
    """
    Quantity of each product at each location.

    Entries are keyed by (product, location, shopkeeper). Merging into an
    entry is always an explicit get_or_create followed by an increment on
    the locked row, never a storage-level upsert.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    def _entry_query(self, product_id: int, location: Location, shopkeeper_id: Optional[int]):
        query = select(FinishedGoodsEntry).where(
            FinishedGoodsEntry.product_id == product_id,
            FinishedGoodsEntry.location == location.value,
        )
        if shopkeeper_id is None:
            return query.where(FinishedGoodsEntry.shopkeeper_id.is_(None))
        return query.where(FinishedGoodsEntry.shopkeeper_id == shopkeeper_id)

    async def get_entry(
        self,
        product_id: int,
        location: Location,
        shopkeeper_id: Optional[int] = None,
        lock: bool = False,
    ) -> Optional[FinishedGoodsEntry]:
        query = self._entry_query(product_id, location, shopkeeper_id)
        if lock:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_or_create(
        self,
        product_id: int,
        location: Location,
        shopkeeper_id: Optional[int] = None,
    ) -> FinishedGoodsEntry:
        """Return the locked entry for the key, inserting an empty one if absent."""
        entry = await self.get_entry(product_id, location, shopkeeper_id, lock=True)
        if entry is None:
            entry = FinishedGoodsEntry(
                product_id=product_id,
                location=location.value,
                shopkeeper_id=shopkeeper_id,
                quantity=0,
            )
            self.db.add(entry)
            await self.db.flush()
        return entry

    async def credit(
        self,
        product_id: int,
        location: Location,
        quantity: int,
        shopkeeper_id: Optional[int] = None,
    ) -> FinishedGoodsEntry:
        if quantity <= 0:
            raise ValidationError("Quantity must be greater than zero.")
        entry = await self.get_or_create(product_id, location, shopkeeper_id)
        entry.quantity = entry.quantity + quantity
        await self.db.flush()
        logger.info(f"Product {product_id} +{quantity} at {location.value} (shopkeeper={shopkeeper_id}), now {entry.quantity}")
        return entry

    async def debit(
        self,
        product_id: int,
        location: Location,
        quantity: int,
        shopkeeper_id: Optional[int] = None,
    ) -> FinishedGoodsEntry:
        if quantity <= 0:
            raise ValidationError("Quantity must be greater than zero.")
        entry = await self.get_entry(product_id, location, shopkeeper_id, lock=True)
        available = entry.quantity if entry else 0
        if entry is None or available < quantity:
            raise InsufficientStock(
                f"Insufficient stock at {location.value}. Available: {available}, requested: {quantity}."
            )
        entry.quantity = entry.quantity - quantity
        await self.db.flush()
        logger.info(f"Product {product_id} -{quantity} at {location.value} (shopkeeper={shopkeeper_id}), now {entry.quantity}")
        return entry

    async def debit_across(
        self,
        product_id: int,
        quantity: int,
        locations: Sequence[Location],
    ) -> None:
        """
        Remove `quantity` of a product from every entry at `locations`, in order.

        Entries are locked first; nothing is written unless together they hold
        the full quantity.
        """
        entries: List[FinishedGoodsEntry] = []
        for location in locations:
            result = await self.db.execute(
                select(FinishedGoodsEntry)
                .where(
                    FinishedGoodsEntry.product_id == product_id,
                    FinishedGoodsEntry.location == location.value,
                    FinishedGoodsEntry.quantity > 0,
                )
                .order_by(FinishedGoodsEntry.id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            entries.extend(result.scalars().all())

        available = sum(entry.quantity for entry in entries)
        if available < quantity:
            raise InsufficientStock(
                f"Only {available} units of product #{product_id} remain in stock; "
                f"cannot remove {quantity}."
            )

        remaining = quantity
        for entry in entries:
            if remaining == 0:
                break
            taken = min(entry.quantity, remaining)
            entry.quantity = entry.quantity - taken
            remaining -= taken
        await self.db.flush()

    async def get_total_quantity(self, product_id: int) -> int:
        total = await self.db.scalar(
            select(func.coalesce(func.sum(FinishedGoodsEntry.quantity), 0))
            .where(FinishedGoodsEntry.product_id == product_id)
        )
        return int(total or 0)

    async def list_entries(
        self,
        product_id: Optional[int] = None,
        location: Optional[Location] = None,
        shopkeeper_id: Optional[int] = None,
    ) -> List[FinishedGoodsEntry]:
        query = select(FinishedGoodsEntry).order_by(FinishedGoodsEntry.product_id, FinishedGoodsEntry.location)
        if product_id:
            query = query.where(FinishedGoodsEntry.product_id == product_id)
        if location:
            query = query.where(FinishedGoodsEntry.location == location.value)
        if shopkeeper_id:
            query = query.where(FinishedGoodsEntry.shopkeeper_id == shopkeeper_id)
        result = await self.db.execute(query)
        return list(result.scalars().all())

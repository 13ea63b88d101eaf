"""Raw material stock ledger."""
import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import InsufficientStock, NotFoundError, ValidationError
from app.core.money import to_decimal
from app.models.product import RawMaterial


logger = logging.getLogger(__name__)


class StockService:
    """Quantity-on-hand of raw materials. All writes go through a locked row."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_material(self, material_id: int, lock: bool = False) -> RawMaterial:
        """Get a raw material, optionally locking its row for update."""
        query = select(RawMaterial).where(RawMaterial.id == material_id)
        if lock:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(query)
        material = result.scalar_one_or_none()
        if material is None:
            raise NotFoundError(f"Raw material #{material_id} not found.")
        return material

    async def debit(self, material: RawMaterial, quantity: Decimal, reason: Optional[str] = None) -> RawMaterial:
        """Take `quantity` out of a locked material row."""
        quantity = to_decimal(quantity)
        if quantity <= 0:
            raise ValidationError("Quantity must be greater than zero.")
        if material.stock_quantity < quantity:
            raise InsufficientStock(
                f"Insufficient stock for {material.name}. "
                f"Available: {material.stock_quantity} {material.unit}, required: {quantity} {material.unit}."
            )
        material.stock_quantity = material.stock_quantity - quantity
        await self.db.flush()
        logger.info(f"Material {material.id} debited {quantity} ({reason or 'n/a'}), now {material.stock_quantity}")
        return material

    async def credit(self, material: RawMaterial, quantity: Decimal, reason: Optional[str] = None) -> RawMaterial:
        """Put `quantity` back on a locked material row."""
        quantity = to_decimal(quantity)
        if quantity <= 0:
            raise ValidationError("Quantity must be greater than zero.")
        material.stock_quantity = material.stock_quantity + quantity
        await self.db.flush()
        logger.info(f"Material {material.id} credited {quantity} ({reason or 'n/a'}), now {material.stock_quantity}")
        return material

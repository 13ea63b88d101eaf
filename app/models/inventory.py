"""Finished-goods inventory models: location ledger and two-phase transfers."""
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import Integer, String, Text, DateTime, ForeignKey, UniqueConstraint, CheckConstraint, Index, text
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class Location(str, Enum):
    """Places finished goods can be held."""
    MANUFACTURING = "manufacturing"
    WHOLESALE = "wholesale"
    TRANSIT = "transit"


class TransferStatus(str, Enum):
    """Goods leave the source on PENDING and reach the destination on CONFIRMED."""
    PENDING = "pending"
    CONFIRMED = "confirmed"


class FinishedGoodsEntry(Base):
    """Quantity of one product at one location, optionally held by one distributor."""
    __tablename__ = "inventory"
    __table_args__ = (
        UniqueConstraint("product_id", "location", "shopkeeper_id", name="uq_inventory_product_location"),
        # NULLs are distinct in the constraint above, so unscoped rows need their own index
        Index(
            "uq_inventory_product_location_unscoped", "product_id", "location",
            unique=True,
            postgresql_where=text("shopkeeper_id IS NULL"),
            sqlite_where=text("shopkeeper_id IS NULL"),
        ),
        CheckConstraint("quantity >= 0", name="ck_inventory_quantity_non_negative"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id"), nullable=False, index=True)
    location: Mapped[str] = mapped_column(
        String(50), nullable=False, index=True,
        comment="manufacturing, wholesale, transit"
    )
    shopkeeper_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), index=True)
    quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<FinishedGoodsEntry product={self.product_id} {self.location}={self.quantity}>"


class InventoryTransfer(Base):
    """
    Movement of finished goods between locations.

    The source entry is debited when the transfer is created; the destination
    is credited only when the designated receiver confirms it.
    """
    __tablename__ = "inventory_transfers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id"), nullable=False, index=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    from_location: Mapped[str] = mapped_column(String(50), nullable=False)
    to_location: Mapped[str] = mapped_column(String(50), nullable=False)

    # Designated receiver; only they may confirm
    shopkeeper_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), index=True)
    # Set when the transfer carries the output of a completed batch
    batch_id: Mapped[Optional[int]] = mapped_column(ForeignKey("manufacturing_batches.id"), index=True)

    status: Mapped[str] = mapped_column(
        String(50), default=TransferStatus.PENDING.value, nullable=False, index=True,
        comment="pending, confirmed"
    )
    notes: Mapped[Optional[str]] = mapped_column(Text)

    initiated_by: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"))
    confirmed_by: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"))
    transfer_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    confirmation_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    def __repr__(self) -> str:
        return f"<InventoryTransfer {self.id} {self.from_location}->{self.to_location} ({self.status})>"

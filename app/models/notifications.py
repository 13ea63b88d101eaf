"""Database models for Notifications."""
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import Integer, String, Text, DateTime, Boolean, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class NotificationType(str, Enum):
    """Types of notifications."""
    BATCH_COMPLETED_TRANSFER = "batch_completed_transfer"
    INVENTORY_TRANSFER_PENDING = "inventory_transfer_pending"
    FUND_RETURN_REQUESTED = "fund_return_requested"


class Notification(Base):
    """In-app notification. Delivery is out of scope; the row is the notification."""
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    related_id: Mapped[Optional[int]] = mapped_column(Integer)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

"""
Notification records for ledger events.

Only the record is produced here; delivery to a device or inbox is handled
elsewhere.
"""
import logging
from typing import Optional, List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundError
from app.models.notifications import Notification, NotificationType


logger = logging.getLogger(__name__)


class NotificationService:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def notify(
        self,
        user_id: int,
        notification_type: NotificationType,
        title: str,
        message: str,
        related_id: Optional[int] = None,
    ) -> Notification:
        notification = Notification(
            user_id=user_id,
            type=notification_type.value,
            title=title,
            message=message,
            related_id=related_id,
        )
        self.db.add(notification)
        await self.db.flush()
        logger.info(f"Notification {notification_type.value} queued for user {user_id} (related_id={related_id})")
        return notification

    async def get_unread(self, user_id: int, limit: int = 50) -> List[Notification]:
        result = await self.db.execute(
            select(Notification)
            .where(Notification.user_id == user_id, Notification.is_read.is_(False))
            .order_by(Notification.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def mark_read(self, user_id: int, notification_id: int) -> Notification:
        notification = await self.db.get(Notification, notification_id)
        if notification is None or notification.user_id != user_id:
            raise NotFoundError(f"Notification #{notification_id} not found.")
        notification.is_read = True
        await self.db.flush()
        return notification

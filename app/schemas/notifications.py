from datetime import datetime
from typing import Optional

from app.schemas.base import BaseResponseSchema


class NotificationResponse(BaseResponseSchema):
    id: int
    user_id: int
    type: str
    title: str
    message: str
    related_id: Optional[int] = None
    is_read: bool
    created_at: datetime

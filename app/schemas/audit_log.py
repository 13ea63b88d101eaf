from datetime import datetime
from typing import Optional

from app.schemas.base import BaseResponseSchema


class AuditLogResponse(BaseResponseSchema):
    id: int
    user_id: Optional[int] = None
    action: str
    module: str
    entity_id: Optional[int] = None
    description: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime

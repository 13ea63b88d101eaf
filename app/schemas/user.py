from datetime import datetime
from typing import Optional

from pydantic import Field

from app.models.user import UserRole
from app.schemas.base import BaseCreateSchema, BaseResponseSchema


class UserCreate(BaseCreateSchema):
    """Account created by an owner."""
    username: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=6)
    full_name: str = Field(..., min_length=1, max_length=200)
    role: UserRole
    email: Optional[str] = Field(None, max_length=255)


class UserStatusUpdate(BaseCreateSchema):
    is_active: bool


class UserResponse(BaseResponseSchema):
    id: int
    username: str
    full_name: str
    email: Optional[str] = None
    role: str
    is_active: bool
    created_at: datetime

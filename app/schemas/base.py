"""
Base Schema Classes for Pydantic Models

RULE: All response schemas that use `from_attributes=True` MUST inherit from BaseResponseSchema.
Every endpoint answers with an APIResponse envelope: `{success, message, ...}`.
"""

from datetime import datetime
from typing import Generic, List, TypeVar

from pydantic import BaseModel, ConfigDict, Field


T = TypeVar("T")


class BaseResponseSchema(BaseModel):
    """
    Base class for all response schemas that read from ORM models.

    Usage:
        class ProductResponse(BaseResponseSchema):
            id: int
            name: str
    """
    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )


class BaseCreateSchema(BaseModel):
    """
    Base class for create/input schemas.

    No from_attributes needed since these don't read from ORM.
    """
    model_config = ConfigDict(
        # Allow extra fields to be ignored (forward compatibility)
        extra='ignore',
    )


class APIResponse(BaseModel):
    """Envelope shared by every response."""
    success: bool = True
    message: str = ""


class DataResponse(APIResponse, Generic[T]):
    """Envelope carrying a single result."""
    data: T


class ListResponse(APIResponse, Generic[T]):
    """Envelope carrying a list of results."""
    items: List[T] = Field(default_factory=list)
    total: int = 0


class DeletedResponse(APIResponse):
    id: int
    deleted_at: datetime

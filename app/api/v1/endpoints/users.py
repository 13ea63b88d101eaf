from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, status

from app.api.deps import DB, Actor
from app.models.user import UserRole
from app.schemas.base import DataResponse, DeletedResponse, ListResponse
from app.schemas.user import UserCreate, UserResponse, UserStatusUpdate
from app.services.catalog_service import CatalogService
from app.services.deletion_service import DeletionService

router = APIRouter()


@router.post("", response_model=DataResponse[UserResponse], status_code=status.HTTP_201_CREATED)
async def create_user(data: UserCreate, db: DB, actor: Actor):
    user = await CatalogService(db).create_user(
        actor, data.username, data.password, data.full_name, data.role, data.email,
    )
    return DataResponse[UserResponse](message="User created.", data=UserResponse.model_validate(user))


@router.get("", response_model=ListResponse[UserResponse])
async def list_users(db: DB, actor: Actor, role: Optional[UserRole] = None):
    users = await CatalogService(db).list_users(actor, role)
    return ListResponse[UserResponse](
        items=[UserResponse.model_validate(user) for user in users],
        total=len(users),
    )


@router.patch("/{user_id}/status", response_model=DataResponse[UserResponse])
async def set_user_status(user_id: int, data: UserStatusUpdate, db: DB, actor: Actor):
    user = await CatalogService(db).set_user_active(actor, user_id, data.is_active)
    return DataResponse[UserResponse](
        message="User activated." if data.is_active else "User deactivated.",
        data=UserResponse.model_validate(user),
    )


@router.delete("/{user_id}", response_model=DeletedResponse)
async def delete_user(user_id: int, db: DB, actor: Actor):
    await DeletionService(db).delete_user(actor, user_id)
    return DeletedResponse(message="User deleted.", id=user_id, deleted_at=datetime.now(timezone.utc))

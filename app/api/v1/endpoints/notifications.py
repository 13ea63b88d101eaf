from fastapi import APIRouter

from app.api.deps import DB, Actor
from app.schemas.base import DataResponse, ListResponse
from app.schemas.notifications import NotificationResponse
from app.services.notification_service import NotificationService

router = APIRouter()


@router.get("", response_model=ListResponse[NotificationResponse])
async def list_unread_notifications(db: DB, actor: Actor):
    notifications = await NotificationService(db).get_unread(actor.user_id)
    return ListResponse[NotificationResponse](
        items=[NotificationResponse.model_validate(notification) for notification in notifications],
        total=len(notifications),
    )


@router.post("/{notification_id}/read", response_model=DataResponse[NotificationResponse])
async def mark_notification_read(notification_id: int, db: DB, actor: Actor):
    notification = await NotificationService(db).mark_read(actor.user_id, notification_id)
    return DataResponse[NotificationResponse](data=NotificationResponse.model_validate(notification))

# motelhub/api/notifications/main.py
import uuid

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from ...core.users import get_current_user
from ...db.engine import get_session
from ...models import User
from ...services.notification_service import NotificationService
from ..common import dump, envelope, pagination
from .models import Notification

router = APIRouter()


def get_notification_service(session: Session = Depends(get_session)) -> NotificationService:
    return NotificationService(session)


@router.get("/notifications")
def api_list_notifications(
    unread_only: bool = Query(default=False, alias="unreadOnly"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    service: NotificationService = Depends(get_notification_service),
    current_user: User = Depends(get_current_user),
):
    result = service.list_for_user(current_user.id, unread_only=unread_only, page=page, limit=limit)
    return envelope(
        [dump(Notification.model_validate(n)) for n in result["items"]],
        unreadCount=result["unread_count"],
        pagination=pagination(page, limit, result["total"]),
    )


@router.post("/notifications/read-all")
def api_mark_all_read(
    service: NotificationService = Depends(get_notification_service),
    current_user: User = Depends(get_current_user),
):
    count = service.mark_all_read(current_user.id)
    return envelope({"updated": count}, message="Đã đánh dấu tất cả là đã đọc")


@router.post("/notifications/{notification_id}/read")
def api_mark_read(
    notification_id: uuid.UUID,
    service: NotificationService = Depends(get_notification_service),
    current_user: User = Depends(get_current_user),
):
    notification = service.mark_read(notification_id, current_user.id)
    return envelope(dump(Notification.model_validate(notification)))

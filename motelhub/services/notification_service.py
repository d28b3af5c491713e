# motelhub/services/notification_service.py
"""
Notification service layer using SQLModel ORM.
Notifications are added to the caller's session so they commit (or roll back)
together with the financial change that produced them.
"""
import logging
import uuid
from typing import Any, Dict, List, Optional

from sqlmodel import Session, func, select

from ..core.constants import NotificationType
from ..core.errors import NotFoundError
from ..models import Notification

logger = logging.getLogger(__name__)


class NotificationService:
    def __init__(self, session: Session):
        self.session = session

    def notify(
        self,
        user_id: uuid.UUID,
        type: NotificationType,
        title: str,
        content: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> Notification:
        """Queue a notification in the current transaction (no commit)."""
        notification = Notification(
            user_id=user_id, type=type, title=title, content=content, data=data
        )
        self.session.add(notification)
        logger.debug(f"Notification {type.value} queued for {user_id}")
        return notification

    def list_for_user(
        self, user_id: uuid.UUID, unread_only: bool = False, page: int = 1, limit: int = 20
    ) -> Dict[str, Any]:
        statement = select(Notification).where(Notification.user_id == user_id)
        count_stmt = select(func.count()).select_from(Notification).where(
            Notification.user_id == user_id
        )
        if unread_only:
            statement = statement.where(Notification.is_read == False)  # noqa: E712
            count_stmt = count_stmt.where(Notification.is_read == False)  # noqa: E712

        statement = (
            statement.order_by(Notification.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        unread_count = self.session.exec(
            select(func.count())
            .select_from(Notification)
            .where(Notification.user_id == user_id, Notification.is_read == False)  # noqa: E712
        ).one()

        return {
            "items": list(self.session.exec(statement).all()),
            "total": self.session.exec(count_stmt).one(),
            "unread_count": unread_count,
        }

    def mark_read(self, notification_id: uuid.UUID, user_id: uuid.UUID) -> Notification:
        notification = self.session.get(Notification, notification_id)
        if not notification or notification.user_id != user_id:
            raise NotFoundError("Không tìm thấy thông báo")
        notification.is_read = True
        self.session.add(notification)
        self.session.commit()
        self.session.refresh(notification)
        return notification

    def mark_all_read(self, user_id: uuid.UUID) -> int:
        notifications: List[Notification] = list(
            self.session.exec(
                select(Notification).where(
                    Notification.user_id == user_id,
                    Notification.is_read == False,  # noqa: E712
                )
            ).all()
        )
        for notification in notifications:
            notification.is_read = True
            self.session.add(notification)
        self.session.commit()
        return len(notifications)

# motelhub/api/notifications/models.py
import uuid
from datetime import datetime
from typing import Any, Optional

from ...core.constants import NotificationType
from ..common import CamelModel


class Notification(CamelModel):
    id: uuid.UUID
    type: NotificationType
    title: str
    content: str
    data: Optional[dict[str, Any]] = None
    is_read: bool
    created_at: datetime

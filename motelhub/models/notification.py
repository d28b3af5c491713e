import uuid as uuid_pkg
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, Column, DateTime
from sqlmodel import Field, SQLModel

from ..core.constants import NotificationType
from ..utils.formatting import utcnow


class Notification(SQLModel, table=True):
    """In-app notification for a user (landlord or tenant)."""

    __tablename__ = "notifications"

    id: uuid_pkg.UUID = Field(default_factory=uuid_pkg.uuid4, primary_key=True)
    user_id: uuid_pkg.UUID = Field(foreign_key="users.id", nullable=False, index=True)
    type: NotificationType = Field(nullable=False)
    title: str = Field(nullable=False)
    content: str = Field(nullable=False)
    data: Optional[dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    is_read: bool = Field(default=False, nullable=False)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True), index=True)

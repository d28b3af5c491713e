"""
User model.
Users are issued and authenticated by the external auth service; this table is
read to resolve the caller's role and ownership.
"""

import uuid as uuid_pkg

from sqlmodel import Field, SQLModel

from ..core.constants import UserRole


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: uuid_pkg.UUID = Field(default_factory=uuid_pkg.uuid4, primary_key=True, nullable=False)
    email: str = Field(unique=True, index=True, nullable=False, max_length=320)
    full_name: str = Field(nullable=False, max_length=200)
    phone: str | None = Field(default=None, max_length=20)
    role: UserRole = Field(default=UserRole.USER, nullable=False)
    is_active: bool = Field(default=True, nullable=False)

    @property
    def disabled(self) -> bool:
        return not self.is_active

"""
Property models: motels, rooms and the billable service catalog.

Fields (Service):
- motel_id: Owning motel
- name: Display name, also used to match metered utilities ("Tiền điện", "Tiền nước")
- price: Unit price in VND
- unit: Billing unit (kWh, m³, tháng, người/tháng...)
- type: FIXED, USAGE or PEOPLE
"""

import uuid as uuid_pkg
from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, UniqueConstraint
from sqlmodel import Field, SQLModel

from ..core.constants import RoomStatus, ServiceType
from ..utils.formatting import utcnow


class Motel(SQLModel, table=True):
    __tablename__ = "motels"

    id: uuid_pkg.UUID = Field(default_factory=uuid_pkg.uuid4, primary_key=True)
    owner_id: uuid_pkg.UUID = Field(foreign_key="users.id", nullable=False, index=True)
    name: str = Field(nullable=False)
    address: str | None = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class Room(SQLModel, table=True):
    __tablename__ = "rooms"

    id: uuid_pkg.UUID = Field(default_factory=uuid_pkg.uuid4, primary_key=True)
    motel_id: uuid_pkg.UUID = Field(foreign_key="motels.id", nullable=False, index=True)
    name: str = Field(nullable=False)
    status: RoomStatus = Field(default=RoomStatus.AVAILABLE, nullable=False)


class Service(SQLModel, table=True):
    __tablename__ = "services"

    id: uuid_pkg.UUID = Field(default_factory=uuid_pkg.uuid4, primary_key=True)
    motel_id: uuid_pkg.UUID = Field(foreign_key="motels.id", nullable=False, index=True)
    name: str = Field(nullable=False)
    price: Decimal = Field(default=Decimal("0"), max_digits=14, decimal_places=2)
    unit: str | None = Field(default=None)
    type: ServiceType = Field(default=ServiceType.FIXED, nullable=False)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class RoomService(SQLModel, table=True):
    """Room-specific service selection, optionally with a custom price."""

    __tablename__ = "room_services"
    __table_args__ = (UniqueConstraint("room_id", "service_id", name="uq_room_service"),)

    id: int | None = Field(default=None, primary_key=True)
    room_id: uuid_pkg.UUID = Field(foreign_key="rooms.id", nullable=False, index=True)
    service_id: uuid_pkg.UUID = Field(foreign_key="services.id", nullable=False)
    custom_price: Decimal | None = Field(default=None, max_digits=14, decimal_places=2)

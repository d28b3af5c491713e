"""
Lease contract models.
"""

import uuid as uuid_pkg
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import DateTime
from sqlmodel import Field, Relationship, SQLModel

from ..core.constants import ContractStatus
from ..utils.formatting import utcnow


class Contract(SQLModel, table=True):
    """
    Lease binding a room to a primary tenant.

    Fields:
    - tenant_id: Primary tenant account (nullable, e.g. walk-in tenants without an account)
    - payment_due_day: Day of month the invoice is due (1-31); 5 when unset
    - tenants: Co-tenant records (the primary tenant is not included)
    """

    __tablename__ = "contracts"

    id: uuid_pkg.UUID = Field(default_factory=uuid_pkg.uuid4, primary_key=True)
    room_id: uuid_pkg.UUID = Field(foreign_key="rooms.id", nullable=False, index=True)
    tenant_id: Optional[uuid_pkg.UUID] = Field(default=None, foreign_key="users.id", index=True)
    rent_price: Decimal = Field(max_digits=14, decimal_places=2)
    deposit_amount: Decimal = Field(default=Decimal("0"), max_digits=14, decimal_places=2)
    payment_due_day: Optional[int] = Field(default=None, ge=1, le=31)
    status: ContractStatus = Field(default=ContractStatus.PENDING, nullable=False, index=True)
    start_date: date = Field(nullable=False)
    end_date: Optional[date] = Field(default=None)
    notes: Optional[str] = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))

    tenants: List["ContractTenant"] = Relationship(back_populates="contract")


class ContractTenant(SQLModel, table=True):
    __tablename__ = "contract_tenants"

    id: uuid_pkg.UUID = Field(default_factory=uuid_pkg.uuid4, primary_key=True)
    contract_id: uuid_pkg.UUID = Field(foreign_key="contracts.id", nullable=False, index=True)
    full_name: str = Field(nullable=False)
    phone: Optional[str] = Field(default=None)
    is_primary: bool = Field(default=False)

    contract: Contract = Relationship(back_populates="tenants")

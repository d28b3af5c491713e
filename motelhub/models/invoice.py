"""
Invoice models.

An invoice is an append-only financial record: created by the generator,
mutated only by the payment ledger, never deleted.
"""

import uuid as uuid_pkg
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import DateTime, UniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

from ..core.constants import InvoiceStatus
from ..utils.formatting import utcnow


class Invoice(SQLModel, table=True):
    """
    Monthly invoice for one contract.

    Fields:
    - invoice_number: Human readable, globally unique (INV-<timestamp>-<hex>)
    - billing_month: First day of the billed month; with contract_id forms the period key
    - amount_total: Sum of the line items
    - amount_paid: Running total of recorded payments
    - paid_date: Set when the invoice becomes PAID
    """

    __tablename__ = "invoices"
    __table_args__ = (
        UniqueConstraint("contract_id", "billing_month", name="uq_invoice_contract_month"),
    )

    id: uuid_pkg.UUID = Field(default_factory=uuid_pkg.uuid4, primary_key=True)
    invoice_number: str = Field(unique=True, index=True, nullable=False, max_length=40)
    contract_id: uuid_pkg.UUID = Field(foreign_key="contracts.id", nullable=False, index=True)
    billing_month: date = Field(nullable=False, index=True)
    due_date: date = Field(nullable=False)
    amount_total: Decimal = Field(default=Decimal("0"), max_digits=14, decimal_places=2)
    amount_paid: Decimal = Field(default=Decimal("0"), max_digits=14, decimal_places=2)
    status: InvoiceStatus = Field(default=InvoiceStatus.UNPAID, nullable=False, index=True)
    paid_date: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))

    items: List["InvoiceItem"] = Relationship(
        back_populates="invoice",
        sa_relationship_kwargs={"order_by": "InvoiceItem.position", "cascade": "all, delete-orphan"},
    )

    @property
    def remaining(self) -> Decimal:
        return self.amount_total - self.amount_paid


class InvoiceItem(SQLModel, table=True):
    __tablename__ = "invoice_items"

    id: int | None = Field(default=None, primary_key=True)
    invoice_id: uuid_pkg.UUID = Field(foreign_key="invoices.id", nullable=False, index=True)
    position: int = Field(default=0, nullable=False)
    service_name: str = Field(nullable=False)
    quantity: Decimal = Field(max_digits=14, decimal_places=3)
    unit_price: Decimal = Field(max_digits=14, decimal_places=2)
    total_price: Decimal = Field(max_digits=14, decimal_places=2)
    old_index: Optional[Decimal] = Field(default=None, max_digits=14, decimal_places=3)
    new_index: Optional[Decimal] = Field(default=None, max_digits=14, decimal_places=3)

    invoice: Invoice = Relationship(back_populates="items")

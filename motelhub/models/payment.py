"""
Payment models.
"""

import uuid as uuid_pkg
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from ..core.constants import GatewayProvider, IntentStatus, PaymentMethod
from ..utils.formatting import as_utc, utcnow


class Payment(SQLModel, table=True):
    """
    Discrete payment event against an invoice. Immutable once created.

    Fields:
    - transaction_id: Idempotency key. For gateway payments it is the order
      reference; the unique constraint rejects duplicate callback deliveries.
    - gateway_transaction_id: Provider's own transaction id (transId, vnp_TransactionNo, zp_trans_id)
    - created_by_id: Staff member who recorded a manual payment
    """

    __tablename__ = "payments"

    id: uuid_pkg.UUID = Field(default_factory=uuid_pkg.uuid4, primary_key=True)
    invoice_id: uuid_pkg.UUID = Field(foreign_key="invoices.id", nullable=False, index=True)
    amount: Decimal = Field(max_digits=14, decimal_places=2)
    payment_method: PaymentMethod = Field(nullable=False)
    transaction_id: Optional[str] = Field(default=None, unique=True, max_length=64)
    gateway_transaction_id: Optional[str] = Field(default=None, max_length=64)
    notes: Optional[str] = Field(default=None)
    created_by_id: Optional[uuid_pkg.UUID] = Field(default=None, foreign_key="users.id")
    payment_date: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True), index=True)


class PendingOnlinePayment(SQLModel, table=True):
    """
    Online payment intent, stored when the payment URL is built so the
    callback can resolve its invoice from the order reference alone.
    """

    __tablename__ = "pending_online_payments"

    order_ref: str = Field(primary_key=True, max_length=64)
    invoice_id: uuid_pkg.UUID = Field(foreign_key="invoices.id", nullable=False, index=True)
    provider: GatewayProvider = Field(nullable=False)
    amount: Decimal = Field(max_digits=14, decimal_places=2)
    status: IntentStatus = Field(default=IntentStatus.PENDING, nullable=False)
    created_by_id: Optional[uuid_pkg.UUID] = Field(default=None, foreign_key="users.id")
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
    expires_at: datetime = Field(sa_type=DateTime(timezone=True), nullable=False)
    completed_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    failure_reason: Optional[str] = Field(default=None)

    def is_expired(self, now: datetime) -> bool:
        return as_utc(now) > as_utc(self.expires_at)

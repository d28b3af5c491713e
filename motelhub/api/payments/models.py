# motelhub/api/payments/models.py
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import Field

from ...core.constants import PaymentMethod
from ..common import CamelModel, Money


# --- Pydantic models (Payments) ---
class Payment(CamelModel):
    id: uuid.UUID
    invoice_id: uuid.UUID
    amount: Money
    payment_method: PaymentMethod
    transaction_id: Optional[str] = None
    gateway_transaction_id: Optional[str] = None
    notes: Optional[str] = None
    created_by_id: Optional[uuid.UUID] = None
    payment_date: datetime


class PaymentCreate(CamelModel):
    amount: Decimal = Field(gt=0, max_digits=14, decimal_places=2)
    payment_method: PaymentMethod
    notes: Optional[str] = Field(default=None, max_length=500)


# --- Pydantic models (Online payments) ---
class OnlinePaymentCreate(CamelModel):
    invoice_id: uuid.UUID
    # Free text: unsupported providers are reported as INVALID_METHOD
    payment_method: str = Field(min_length=1)
    return_url: Optional[str] = None


class OnlinePayment(CamelModel):
    order_id: str
    payment_url: str
    amount: Money
    invoice_id: uuid.UUID
    provider: str
    metadata: dict[str, Any] = {}

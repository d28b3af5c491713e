# motelhub/api/invoices/models.py
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import Field, field_serializer

from ...core.constants import InvoiceStatus
from ..common import CamelModel, Money
from ..payments.models import Payment


# --- Pydantic models (Generation input) ---
class MeterPair(CamelModel):
    old_index: Decimal = Field(ge=0)
    new_index: Decimal = Field(ge=0)


class MeterReadingIn(CamelModel):
    room_id: uuid.UUID
    electricity: Optional[MeterPair] = None
    water: Optional[MeterPair] = None


class InvoiceGenerate(CamelModel):
    motel_id: uuid.UUID
    billing_month: str
    meter_readings: list[MeterReadingIn] = []


# --- Pydantic models (Invoice) ---
class InvoiceItem(CamelModel):
    service_name: str
    quantity: Decimal
    unit_price: Money
    total_price: Money
    old_index: Optional[Decimal] = None
    new_index: Optional[Decimal] = None

    @field_serializer("quantity", "old_index", "new_index", when_used="json")
    def serialize_quantity(self, value: Optional[Decimal]):
        if value is None:
            return None
        return int(value) if value == value.to_integral_value() else float(value)


class Invoice(CamelModel):
    id: uuid.UUID
    invoice_number: str
    contract_id: uuid.UUID
    billing_month: date
    due_date: date
    amount_total: Money
    amount_paid: Money
    remaining: Money
    status: InvoiceStatus
    paid_date: Optional[datetime] = None
    created_at: datetime
    items: list[InvoiceItem] = []

    @field_serializer("billing_month", when_used="json")
    def serialize_month(self, value: date) -> str:
        return value.strftime("%Y-%m")


class InvoiceDetail(Invoice):
    room_id: uuid.UUID
    room_name: str
    motel_id: uuid.UUID
    motel_name: str
    tenant_id: Optional[uuid.UUID] = None
    payments: list[Payment] = []

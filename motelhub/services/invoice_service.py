# motelhub/services/invoice_service.py
"""
Invoice service: monthly invoice generation, lookups and the overdue sweep.

Generation composes, for every ACTIVE contract of a motel, one invoice per
billing month made of the room rent plus the motel (or room-specific)
services. The (contract_id, billing_month) unique constraint is the duplicate
guard; a conflicting insert is rolled back and the contract is skipped.
"""

import calendar
import logging
import re
import uuid
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, func, select

from ..core.constants import (
    DEFAULT_PAYMENT_DUE_DAY,
    ELECTRICITY_KEYWORDS,
    RENT_ITEM_NAME,
    WATER_KEYWORDS,
    ContractStatus,
    InvoiceStatus,
    NotificationType,
    ServiceType,
)
from ..core.errors import NotFoundError, ValidationError
from ..core.permissions import apply_billing_scope, ensure_can_view
from ..models import (
    Contract,
    Invoice,
    InvoiceItem,
    Motel,
    Payment,
    Room,
    RoomService,
    Service,
    User,
)
from ..utils.formatting import format_vnd, generate_invoice_number, to_money, utcnow
from .notification_service import NotificationService

logger = logging.getLogger(__name__)

BILLING_MONTH_RE = re.compile(r"^(\d{4})-(\d{2})$")
MAX_NUMBER_ATTEMPTS = 3


@dataclass
class MeterPair:
    old_index: Decimal
    new_index: Decimal

    @property
    def usage(self) -> Decimal:
        return self.new_index - self.old_index


@dataclass
class MeterReading:
    room_id: uuid.UUID
    electricity: Optional[MeterPair] = None
    water: Optional[MeterPair] = None


@dataclass
class BillableService:
    """A catalog service with the price that applies to one room."""

    name: str
    price: Decimal
    type: ServiceType
    unit: Optional[str] = None


@dataclass
class LineItem:
    service_name: str
    quantity: Decimal
    unit_price: Decimal
    total_price: Decimal
    old_index: Optional[Decimal] = None
    new_index: Optional[Decimal] = None


@dataclass
class InvoiceContext:
    contract: Contract
    room: Room
    motel: Motel


# --- Pure helpers ---


def parse_billing_month(value: str) -> date:
    """'YYYY-MM' -> first day of that month."""
    match = BILLING_MONTH_RE.match(value or "")
    if not match or not 1 <= int(match.group(2)) <= 12:
        raise ValidationError(
            "Dữ liệu không hợp lệ",
            details=[{"field": "billingMonth", "message": "Định dạng tháng phải là YYYY-MM"}],
        )
    return date(int(match.group(1)), int(match.group(2)), 1)


def compute_due_date(billing_month: date, payment_due_day: Optional[int]) -> date:
    """
    Due date falls in the month after the billed month, on the contract's due
    day (5 by default), clamped to that month's last day.
    """
    if billing_month.month == 12:
        year, month = billing_month.year + 1, 1
    else:
        year, month = billing_month.year, billing_month.month + 1
    last_day = calendar.monthrange(year, month)[1]
    day = payment_due_day or DEFAULT_PAYMENT_DUE_DAY
    return date(year, month, max(1, min(day, last_day)))


def validate_meter_readings(readings: List[MeterReading]) -> None:
    """Rejects readings whose new index is below the old one."""
    errors = []
    for reading in readings:
        for utility, pair in (("electricity", reading.electricity), ("water", reading.water)):
            if pair is not None and pair.new_index < pair.old_index:
                errors.append(
                    {
                        "field": f"meterReadings.{reading.room_id}.{utility}",
                        "message": "Chỉ số mới không được nhỏ hơn chỉ số cũ",
                    }
                )
    if errors:
        raise ValidationError("Dữ liệu không hợp lệ", details=errors)


def _matches(name: str, keywords) -> bool:
    lowered = name.lower()
    return any(keyword in lowered for keyword in keywords)


def build_line_items(
    rent_price: Decimal,
    services: List[BillableService],
    reading: Optional[MeterReading],
    co_tenant_count: int,
) -> List[LineItem]:
    """
    Composes the invoice lines: rent first, then one line per service.

    - USAGE services named like electricity/water bill the meter delta when a
      reading was supplied for the room; any other USAGE service bills 1.
    - PEOPLE services bill the number of co-tenants (primary tenant not
      counted), 1 when there are none.
    - FIXED services bill 1.
    """
    rent = to_money(rent_price)
    items = [LineItem(RENT_ITEM_NAME, Decimal("1"), rent, rent)]

    for service in services:
        quantity = Decimal("1")
        old_index = new_index = None

        if service.type == ServiceType.USAGE and reading is not None:
            pair = None
            if _matches(service.name, ELECTRICITY_KEYWORDS):
                pair = reading.electricity
            elif _matches(service.name, WATER_KEYWORDS):
                pair = reading.water
            if pair is not None:
                old_index, new_index = pair.old_index, pair.new_index
                quantity = pair.usage
        elif service.type == ServiceType.PEOPLE:
            quantity = Decimal(co_tenant_count or 1)

        unit_price = to_money(service.price)
        items.append(
            LineItem(
                service_name=service.name,
                quantity=quantity,
                unit_price=unit_price,
                total_price=to_money(quantity * unit_price),
                old_index=old_index,
                new_index=new_index,
            )
        )
    return items


def get_invoice_context(session: Session, invoice: Invoice) -> InvoiceContext:
    contract = session.get(Contract, invoice.contract_id)
    room = session.get(Room, contract.room_id)
    motel = session.get(Motel, room.motel_id)
    return InvoiceContext(contract=contract, room=room, motel=motel)


class InvoiceService:
    """
    Service layer for invoice operations using SQLModel ORM.
    """

    def __init__(self, session: Session):
        self.session = session
        self.notifications = NotificationService(session)

    # --- Generation ---

    def generate_invoices(
        self,
        motel_id: uuid.UUID,
        billing_month: str,
        meter_readings: Optional[List[MeterReading]] = None,
    ) -> List[Invoice]:
        """
        Generate the invoices of one motel for a billing month ("YYYY-MM").

        Contracts that already have an invoice for the month are skipped
        silently. Returns only the invoices created by this call.

        Raises:
            ValidationError: malformed month or regressed meter readings
            NotFoundError: motel does not exist
        """
        month = parse_billing_month(billing_month)
        meter_readings = meter_readings or []
        validate_meter_readings(meter_readings)

        motel = self.session.get(Motel, motel_id)
        if not motel:
            raise NotFoundError("Không tìm thấy nhà trọ")

        readings_by_room = {reading.room_id: reading for reading in meter_readings}
        contracts = self._get_active_contracts(motel.id)
        if not contracts:
            logger.info(f"Motel {motel.id}: no active contracts for {billing_month}")
            return []

        catalog = self._get_motel_services(motel.id)
        created: List[Invoice] = []

        for contract in contracts:
            if self._invoice_exists(contract.id, month):
                logger.debug(f"Contract {contract.id} already invoiced for {billing_month}, skipping")
                continue

            services = self._get_room_services(contract.room_id) or catalog
            items = build_line_items(
                contract.rent_price,
                services,
                readings_by_room.get(contract.room_id),
                len(contract.tenants),
            )
            invoice = self._persist_invoice(contract, month, items)
            if invoice is not None:
                created.append(invoice)

        logger.info(
            f"Motel {motel.id}: {len(created)} invoices created for {billing_month} "
            f"({len(contracts) - len(created)} skipped)"
        )
        return created

    def _get_active_contracts(self, motel_id: uuid.UUID) -> List[Contract]:
        statement = (
            select(Contract)
            .join(Room, Contract.room_id == Room.id)
            .where(Room.motel_id == motel_id, Contract.status == ContractStatus.ACTIVE)
            .order_by(Room.name)
        )
        return list(self.session.exec(statement).all())

    def _get_motel_services(self, motel_id: uuid.UUID) -> List[BillableService]:
        statement = (
            select(Service)
            .where(Service.motel_id == motel_id)
            .order_by(Service.created_at, Service.name)
        )
        return [
            BillableService(name=s.name, price=s.price, type=s.type, unit=s.unit)
            for s in self.session.exec(statement).all()
        ]

    def _get_room_services(self, room_id: uuid.UUID) -> List[BillableService]:
        """Room overrides, with the custom price substituted when present."""
        statement = (
            select(RoomService, Service)
            .join(Service, RoomService.service_id == Service.id)
            .where(RoomService.room_id == room_id)
            .order_by(RoomService.id)
        )
        return [
            BillableService(
                name=service.name,
                price=override.custom_price if override.custom_price is not None else service.price,
                type=service.type,
                unit=service.unit,
            )
            for override, service in self.session.exec(statement).all()
        ]

    def _invoice_exists(self, contract_id: uuid.UUID, month: date) -> bool:
        statement = select(Invoice.id).where(
            Invoice.contract_id == contract_id, Invoice.billing_month == month
        )
        return self.session.exec(statement).first() is not None

    def _persist_invoice(
        self, contract: Contract, month: date, items: List[LineItem]
    ) -> Optional[Invoice]:
        """
        Inserts the invoice and its items in one transaction.
        Returns None when another request invoiced the contract first.
        """
        contract_id = contract.id
        tenant_id = contract.tenant_id
        due_date = compute_due_date(month, contract.payment_due_day)
        total = to_money(sum((item.total_price for item in items), Decimal("0")))

        for attempt in range(1, MAX_NUMBER_ATTEMPTS + 1):
            invoice = Invoice(
                invoice_number=generate_invoice_number(),
                contract_id=contract_id,
                billing_month=month,
                due_date=due_date,
                amount_total=total,
                amount_paid=Decimal("0"),
                status=InvoiceStatus.UNPAID,
            )
            if total <= 0:
                invoice.status = InvoiceStatus.PAID
                invoice.paid_date = utcnow()
            invoice.items = [
                InvoiceItem(
                    position=position,
                    service_name=item.service_name,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    total_price=item.total_price,
                    old_index=item.old_index,
                    new_index=item.new_index,
                )
                for position, item in enumerate(items)
            ]
            self.session.add(invoice)

            if tenant_id is not None:
                self.notifications.notify(
                    tenant_id,
                    NotificationType.INVOICE_CREATED,
                    "Hóa đơn mới",
                    f"Hóa đơn {invoice.invoice_number} tháng {month:%m/%Y}: "
                    f"{format_vnd(total)}, hạn thanh toán {due_date:%d/%m/%Y}",
                    {"invoiceId": str(invoice.id), "amount": str(total)},
                )

            try:
                self.session.commit()
            except IntegrityError:
                self.session.rollback()
                if self._invoice_exists(contract_id, month):
                    logger.warning(
                        f"Contract {contract_id}: invoice for {month:%Y-%m} created by a concurrent request"
                    )
                    return None
                logger.warning(f"Duplicate invoice number (attempt {attempt}), regenerating...")
                continue

            self.session.refresh(invoice)
            return invoice

        raise RuntimeError(f"Could not generate a unique invoice number for contract {contract_id}")

    # --- Queries ---

    def get_invoice(self, invoice_id: uuid.UUID) -> Invoice:
        invoice = self.session.get(Invoice, invoice_id)
        if not invoice:
            raise NotFoundError("Không tìm thấy hóa đơn")
        return invoice

    def get_invoice_for_user(self, invoice_id: uuid.UUID, user: User) -> Dict[str, Any]:
        """Invoice with its context and payments, visible to the user."""
        invoice = self.get_invoice(invoice_id)
        context = get_invoice_context(self.session, invoice)
        ensure_can_view(user, context.contract, context.motel, "Bạn không có quyền xem hóa đơn này")
        payments = self.session.exec(
            select(Payment)
            .where(Payment.invoice_id == invoice.id)
            .order_by(Payment.payment_date.desc())
        ).all()
        return {"invoice": invoice, "context": context, "payments": list(payments)}

    def list_invoices(
        self,
        user: User,
        status: Optional[InvoiceStatus] = None,
        month: Optional[str] = None,
        motel_id: Optional[uuid.UUID] = None,
        contract_id: Optional[uuid.UUID] = None,
        page: int = 1,
        limit: int = 10,
    ) -> Dict[str, Any]:
        def scoped(statement):
            statement = (
                statement.join(Contract, Invoice.contract_id == Contract.id)
                .join(Room, Contract.room_id == Room.id)
                .join(Motel, Room.motel_id == Motel.id)
            )
            statement = apply_billing_scope(statement, user)
            if status:
                statement = statement.where(Invoice.status == status)
            if contract_id:
                statement = statement.where(Invoice.contract_id == contract_id)
            if motel_id:
                statement = statement.where(Room.motel_id == motel_id)
            if month:
                statement = statement.where(Invoice.billing_month == parse_billing_month(month))
            return statement

        items = self.session.exec(
            scoped(select(Invoice))
            .order_by(Invoice.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).all()
        total = self.session.exec(scoped(select(func.count(Invoice.id)).select_from(Invoice))).one()
        return {"items": list(items), "total": total}

    # --- Overdue sweep ---

    def mark_overdue_invoices(self, today: Optional[date] = None) -> int:
        """Flags UNPAID/PARTIAL invoices past their due date as OVERDUE."""
        today = today or utcnow().date()
        statement = select(Invoice).where(
            Invoice.status.in_([InvoiceStatus.UNPAID, InvoiceStatus.PARTIAL]),
            Invoice.due_date < today,
        )
        invoices = list(self.session.exec(statement).all())

        for invoice in invoices:
            invoice.status = InvoiceStatus.OVERDUE
            self.session.add(invoice)
            contract = self.session.get(Contract, invoice.contract_id)
            if contract and contract.tenant_id:
                self.notifications.notify(
                    contract.tenant_id,
                    NotificationType.INVOICE_OVERDUE,
                    "Hóa đơn quá hạn",
                    f"Hóa đơn {invoice.invoice_number} đã quá hạn, còn nợ {format_vnd(invoice.remaining)}",
                    {"invoiceId": str(invoice.id)},
                )

        self.session.commit()
        return len(invoices)

# motelhub/services/payment_service.py
"""
Payment service layer using SQLModel ORM.
The ledger: every recorded payment moves an invoice's balance and status
inside a single transaction.
"""
import logging
import uuid
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple

from sqlmodel import Session, func, select

from ..core.constants import InvoiceStatus, NotificationType, PaymentMethod
from ..core.errors import InvalidAmountError, NotFoundError
from ..core.permissions import apply_billing_scope, ensure_can_view
from ..models import Contract, Invoice, Motel, Payment, Room, User
from ..utils.formatting import format_vnd, to_money, utcnow
from .notification_service import NotificationService

logger = logging.getLogger(__name__)


class PaymentService:
    """
    Service layer for Payment operations using SQLModel ORM.
    """

    def __init__(self, session: Session):
        """
        Initialize with a SQLModel session.

        Args:
            session: SQLModel Session instance
        """
        self.session = session
        self.notifications = NotificationService(session)

    def lock_invoice(self, invoice_id: uuid.UUID) -> Invoice:
        """Load the invoice with a row lock for the rest of the transaction."""
        statement = (
            select(Invoice)
            .where(Invoice.id == invoice_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        invoice = self.session.exec(statement).first()
        if not invoice:
            raise NotFoundError("Không tìm thấy hóa đơn")
        return invoice

    def apply_payment(
        self,
        invoice: Invoice,
        amount: Decimal,
        method: PaymentMethod,
        transaction_id: Optional[str] = None,
        gateway_transaction_id: Optional[str] = None,
        notes: Optional[str] = None,
        created_by_id: Optional[uuid.UUID] = None,
    ) -> Payment:
        """
        Insert a payment and move the invoice balance/status.
        Flushes only; the caller owns the transaction.

        Raises:
            InvalidAmountError: amount <= 0 or above the remaining balance
        """
        amount = to_money(amount)
        remaining = to_money(invoice.amount_total - invoice.amount_paid)
        if amount <= 0:
            raise InvalidAmountError("Số tiền phải lớn hơn 0")
        if amount > remaining:
            raise InvalidAmountError(
                f"Số tiền vượt quá số tiền còn nợ ({format_vnd(remaining)})",
                details={"remaining": format_vnd(remaining)},
            )

        payment = Payment(
            invoice_id=invoice.id,
            amount=amount,
            payment_method=method,
            transaction_id=transaction_id,
            gateway_transaction_id=gateway_transaction_id,
            notes=notes,
            created_by_id=created_by_id,
        )
        self.session.add(payment)

        invoice.amount_paid = to_money(invoice.amount_paid + amount)
        if invoice.amount_paid >= invoice.amount_total:
            invoice.status = InvoiceStatus.PAID
            invoice.paid_date = utcnow()
        else:
            invoice.status = InvoiceStatus.PARTIAL
        self.session.add(invoice)
        self.session.flush()

        logger.info(
            f"Payment {format_vnd(amount)} ({method.value}) applied to invoice "
            f"{invoice.invoice_number}: {invoice.status.value}"
        )
        return payment

    def record_payment(
        self,
        invoice_id: uuid.UUID,
        amount: Decimal,
        method: PaymentMethod,
        notes: Optional[str] = None,
        created_by_id: Optional[uuid.UUID] = None,
    ) -> Tuple[Payment, Invoice]:
        """
        Record a manual payment (cash, bank transfer...) against an invoice.

        Args:
            invoice_id: Invoice being paid
            amount: Amount received, 0 < amount <= remaining balance
            method: Payment method
            notes: Free text
            created_by_id: Staff member recording the payment

        Returns:
            (payment, invoice) after commit
        """
        try:
            invoice = self.lock_invoice(invoice_id)
            payment = self.apply_payment(
                invoice, amount, method, notes=notes, created_by_id=created_by_id
            )
            contract = self.session.get(Contract, invoice.contract_id)
            if contract and contract.tenant_id:
                self.notifications.notify(
                    contract.tenant_id,
                    NotificationType.PAYMENT_RECEIVED,
                    "Đã nhận thanh toán",
                    f"Đã nhận {format_vnd(payment.amount)} cho hóa đơn {invoice.invoice_number}",
                    {"invoiceId": str(invoice.id), "paymentId": str(payment.id)},
                )
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        self.session.refresh(payment)
        self.session.refresh(invoice)
        return payment, invoice

    def get_payment(self, payment_id: uuid.UUID, user: User) -> Payment:
        payment = self.session.get(Payment, payment_id)
        if not payment:
            raise NotFoundError("Không tìm thấy thanh toán")
        invoice = self.session.get(Invoice, payment.invoice_id)
        contract = self.session.get(Contract, invoice.contract_id)
        room = self.session.get(Room, contract.room_id)
        motel = self.session.get(Motel, room.motel_id)
        ensure_can_view(user, contract, motel, "Bạn không có quyền xem thanh toán này")
        return payment

    def list_payments(
        self,
        user: User,
        invoice_id: Optional[uuid.UUID] = None,
        method: Optional[PaymentMethod] = None,
        motel_id: Optional[uuid.UUID] = None,
        page: int = 1,
        limit: int = 10,
    ) -> Dict[str, Any]:
        """Payments visible to the user, newest first, with the summed amount."""

        def scoped(statement):
            statement = (
                statement.join(Invoice, Payment.invoice_id == Invoice.id)
                .join(Contract, Invoice.contract_id == Contract.id)
                .join(Room, Contract.room_id == Room.id)
                .join(Motel, Room.motel_id == Motel.id)
            )
            statement = apply_billing_scope(statement, user)
            if invoice_id:
                statement = statement.where(Payment.invoice_id == invoice_id)
            if method:
                statement = statement.where(Payment.payment_method == method)
            if motel_id:
                statement = statement.where(Room.motel_id == motel_id)
            return statement

        items = self.session.exec(
            scoped(select(Payment))
            .order_by(Payment.payment_date.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).all()
        total, total_amount = self.session.exec(
            scoped(
                select(func.count(Payment.id), func.coalesce(func.sum(Payment.amount), 0)).select_from(
                    Payment
                )
            )
        ).one()
        return {
            "items": list(items),
            "total": total,
            "total_amount": to_money(total_amount),
        }

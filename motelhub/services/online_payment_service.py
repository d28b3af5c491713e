# motelhub/services/online_payment_service.py
"""
Online payments: building gateway payment requests and reconciling the
gateways' server-to-server callbacks (IPN) against the ledger.

The callback path never raises: every outcome is turned into the
acknowledgement body the originating provider expects.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from typing import Any, Dict, Optional
from urllib.parse import urlencode

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from ..core.config import Settings, get_settings
from ..core.constants import (
    CallbackOutcome,
    GatewayProvider,
    IntentStatus,
    NotificationType,
    PaymentMethod,
)
from ..core.errors import (
    AlreadyPaidError,
    InvalidSignatureError,
    NotFoundError,
    UnrecognizedProviderError,
)
from ..core.permissions import ensure_can_pay_online
from ..gateways import (
    UNRECOGNIZED_ACK,
    BaseGatewayAdapter,
    GatewayCallback,
    PaymentRequest,
    ReturnResult,
    get_gateway_adapter,
    get_return_adapters,
    parse_provider,
    resolve_callback_adapter,
)
from ..gateways.base import format_amount
from ..models import Invoice, Payment, PendingOnlinePayment, User
from ..utils.formatting import format_vnd, generate_order_ref, to_money, utcnow
from .invoice_service import get_invoice_context
from .notification_service import NotificationService
from .payment_service import PaymentService

logger = logging.getLogger(__name__)


@dataclass
class CallbackResult:
    body: Dict[str, Any]
    outcome: Optional[CallbackOutcome]
    provider: Optional[GatewayProvider] = None
    order_ref: Optional[str] = None


class OnlinePaymentService:
    def __init__(self, session: Session, settings: Optional[Settings] = None):
        self.session = session
        self.settings = settings or get_settings()
        self.payments = PaymentService(session)
        self.notifications = NotificationService(session)

    # --- Payment request ---

    def create_payment(
        self,
        invoice_id: uuid.UUID,
        provider: Any,
        user: User,
        return_url: Optional[str] = None,
        client_ip: str = "127.0.0.1",
    ) -> PaymentRequest:
        """
        Build a signed payment request for the invoice's outstanding balance
        and persist the order reference so the callback can find the invoice.

        Raises:
            InvalidMethodError: unsupported provider
            NotFoundError: invoice does not exist
            ForbiddenError: caller is not the tenant, the motel owner or an admin
            AlreadyPaidError: nothing left to pay
        """
        provider = parse_provider(provider)
        invoice = self.session.get(Invoice, invoice_id)
        if not invoice:
            raise NotFoundError("Không tìm thấy hóa đơn")

        context = get_invoice_context(self.session, invoice)
        ensure_can_pay_online(
            user, context.contract, context.motel, "Bạn không có quyền thanh toán hóa đơn này"
        )

        amount = to_money(invoice.amount_total - invoice.amount_paid)
        if amount <= 0:
            raise AlreadyPaidError("Hóa đơn đã được thanh toán đầy đủ")

        now = utcnow()
        order_ref = generate_order_ref()
        adapter = get_gateway_adapter(provider, self.settings)
        request = adapter.build_payment_request(
            order_ref=order_ref,
            amount=amount,
            order_info=f"Thanh toan hoa don {invoice.invoice_number}",
            return_url=return_url or self.settings.default_return_url,
            client_ip=client_ip,
            now=now,
        )

        intent = PendingOnlinePayment(
            order_ref=order_ref,
            invoice_id=invoice.id,
            provider=provider,
            amount=amount,
            created_by_id=user.id,
            created_at=now,
            expires_at=now + timedelta(minutes=self.settings.payment_intent_ttl_minutes),
        )
        self.session.add(intent)
        self.session.commit()

        logger.info(
            f"Payment request {order_ref} created: invoice {invoice.invoice_number}, "
            f"{format_vnd(amount)} via {provider.value}"
        )
        return request

    # --- Callback (IPN) ---

    def handle_callback(self, payload: Dict[str, Any]) -> CallbackResult:
        try:
            adapter = resolve_callback_adapter(payload, self.settings)
        except UnrecognizedProviderError:
            keys = sorted(payload) if isinstance(payload, dict) else type(payload).__name__
            logger.warning(f"Callback from unrecognised provider, fields: {keys}")
            return CallbackResult(body=dict(UNRECOGNIZED_ACK), outcome=None)

        callback: Optional[GatewayCallback] = None
        try:
            callback = adapter.parse_callback(payload)
            outcome = self._reconcile(adapter, callback)
        except InvalidSignatureError as e:
            logger.warning(f"{adapter.provider.value} callback rejected: {e}")
            outcome = CallbackOutcome.INVALID_SIGNATURE
        except Exception as e:
            self.session.rollback()
            logger.error(f"Error processing {adapter.provider.value} callback: {e}", exc_info=True)
            outcome = CallbackOutcome.ERROR

        return CallbackResult(
            body=adapter.acknowledge(outcome),
            outcome=outcome,
            provider=adapter.provider,
            order_ref=callback.order_ref if callback else None,
        )

    def _reconcile(self, adapter: BaseGatewayAdapter, callback: GatewayCallback) -> CallbackOutcome:
        order_ref = callback.order_ref
        if not order_ref:
            logger.warning(f"{adapter.provider.value} callback without order reference")
            return CallbackOutcome.ORDER_NOT_FOUND

        if not callback.signature_valid:
            if not self.settings.signature_bypass_enabled:
                raise InvalidSignatureError(f"Invalid signature for order {order_ref}")
            logger.warning(f"Signature check BYPASSED for {order_ref} (development only)")

        if self._already_processed(order_ref):
            logger.info(f"Callback {order_ref} already processed")
            return CallbackOutcome.ALREADY_PROCESSED

        intent = self.session.get(PendingOnlinePayment, order_ref)
        if not intent or intent.provider != callback.provider:
            logger.warning(f"Callback for unknown order {order_ref}")
            return CallbackOutcome.ORDER_NOT_FOUND

        now = utcnow()
        if not callback.success:
            self._fail_intent(intent, f"result code {callback.result_code}")
            self.session.commit()
            logger.info(f"Payment {order_ref} failed at {adapter.provider.value} ({callback.result_code})")
            return CallbackOutcome.CONFIRMED

        if intent.is_expired(now):
            logger.warning(f"Payment {order_ref} confirmed after its intent expired, accepting")

        invoice = self.payments.lock_invoice(intent.invoice_id)
        # A duplicate delivery may have committed while we waited for the lock
        self.session.refresh(intent)
        if intent.status == IntentStatus.SUCCEEDED or self._already_processed(order_ref):
            logger.info(f"Callback {order_ref} already processed by a concurrent delivery")
            self.session.rollback()
            return CallbackOutcome.ALREADY_PROCESSED

        if (
            callback.amount is None
            or to_money(callback.amount) != to_money(intent.amount)
            or to_money(callback.amount) > to_money(invoice.remaining)
        ):
            self._fail_intent(intent, f"amount mismatch ({callback.amount} != {intent.amount})")
            self.session.commit()
            logger.warning(f"Payment {order_ref}: amount {callback.amount} rejected")
            return CallbackOutcome.INVALID_AMOUNT

        try:
            payment = self.payments.apply_payment(
                invoice,
                intent.amount,
                PaymentMethod(callback.provider.value),
                transaction_id=order_ref,
                gateway_transaction_id=callback.gateway_transaction_id,
                notes=f"Online payment via {callback.provider.value}",
                created_by_id=intent.created_by_id,
            )
            intent.status = IntentStatus.SUCCEEDED
            intent.completed_at = now
            self.session.add(intent)

            context = get_invoice_context(self.session, invoice)
            self.notifications.notify(
                context.motel.owner_id,
                NotificationType.PAYMENT_RECEIVED,
                "Nhận thanh toán online",
                f"Đã nhận {format_vnd(payment.amount)} cho hóa đơn {invoice.invoice_number} "
                f"qua {callback.provider.value}",
                {
                    "invoiceId": str(invoice.id),
                    "amount": str(payment.amount),
                    "transactionId": callback.gateway_transaction_id or order_ref,
                },
            )
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            logger.info(f"Callback {order_ref} processed concurrently")
            return CallbackOutcome.ALREADY_PROCESSED

        logger.info(f"Payment {order_ref} recorded: {format_vnd(payment.amount)} on {invoice.invoice_number}")
        return CallbackOutcome.CONFIRMED

    def _already_processed(self, order_ref: str) -> bool:
        statement = select(Payment.id).where(Payment.transaction_id == order_ref)
        return self.session.exec(statement).first() is not None

    def _fail_intent(self, intent: PendingOnlinePayment, reason: str) -> None:
        if intent.status == IntentStatus.SUCCEEDED:
            logger.warning(f"Intent {intent.order_ref} already succeeded, not marking it failed ({reason})")
            return
        intent.status = IntentStatus.FAILED
        intent.failure_reason = reason
        intent.completed_at = utcnow()
        self.session.add(intent)

    # --- Browser return ---

    def resolve_return(self, query: Dict[str, str]) -> ReturnResult:
        """Map a provider's return redirect to the payer-facing result. Read-only."""
        for adapter in get_return_adapters(self.settings):
            result = adapter.parse_return(query)
            if result is not None:
                return result
        return ReturnResult(order_ref=query.get("orderId", ""), success=False, amount=Decimal("0"))

    def build_return_redirect(self, query: Dict[str, str]) -> str:
        result = self.resolve_return(query)
        params = urlencode(
            {
                "orderId": result.order_ref,
                "status": "success" if result.success else "failed",
                "amount": format_amount(result.amount),
            }
        )
        return f"{self.settings.default_return_url}?{params}"

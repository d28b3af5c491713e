import hashlib
import hmac
import json
from datetime import timedelta
from decimal import Decimal
from urllib.parse import parse_qs, urlsplit

import pytest
from sqlmodel import select

from motelhub.core.config import Settings, get_settings
from motelhub.core.constants import (
    CallbackOutcome,
    GatewayProvider,
    IntentStatus,
    InvoiceStatus,
    NotificationType,
    PaymentMethod,
)
from motelhub.core.errors import AlreadyPaidError, ForbiddenError, InvalidMethodError
from motelhub.gateways import MomoAdapter, VnpayAdapter
from motelhub.models import Notification, Payment, PendingOnlinePayment
from motelhub.services.online_payment_service import OnlinePaymentService
from motelhub.services.payment_service import PaymentService
from motelhub.utils.formatting import utcnow


def momo_payload(settings, order_ref, amount, result_code=0, sign=True):
    payload = {
        "partnerCode": settings.momo_partner_code,
        "orderId": order_ref,
        "requestId": order_ref,
        "amount": int(amount),
        "orderInfo": "Thanh toan hoa don",
        "orderType": "momo_wallet",
        "transId": 3012345678,
        "resultCode": result_code,
        "message": "Successful.",
        "payType": "qr",
        "responseTime": 1741570300000,
        "extraData": "",
    }
    payload["signature"] = MomoAdapter(settings).callback_signature(payload) if sign else "bad"
    return payload


@pytest.fixture
def service(session):
    return OnlinePaymentService(session)


@pytest.fixture
def intent(service, invoice, tenant):
    request = service.create_payment(invoice.id, "MOMO", tenant)
    return request


# --- Payment request ---


def test_create_payment_persists_intent(session, service, invoice, tenant):
    request = service.create_payment(invoice.id, "momo", tenant)

    assert request.order_ref.startswith("PAY-")
    assert request.amount == Decimal("5000000")
    assert request.provider == GatewayProvider.MOMO
    stored = session.get(PendingOnlinePayment, request.order_ref)
    assert stored.invoice_id == invoice.id
    assert stored.amount == Decimal("5000000")
    assert stored.status == IntentStatus.PENDING
    assert stored.expires_at - stored.created_at == timedelta(minutes=15)


def test_create_payment_charges_the_remaining_balance(session, service, invoice, tenant):
    PaymentService(session).record_payment(invoice.id, Decimal("2000000"), PaymentMethod.CASH)

    request = service.create_payment(invoice.id, "VNPAY", tenant)

    assert request.amount == Decimal("3000000")
    assert "vnp_Amount=300000000" in request.payment_url


def test_create_payment_for_paid_invoice(session, service, invoice, tenant):
    PaymentService(session).record_payment(invoice.id, Decimal("5000000"), PaymentMethod.CASH)

    with pytest.raises(AlreadyPaidError) as exc:
        service.create_payment(invoice.id, "MOMO", tenant)
    assert exc.value.message == "Hóa đơn đã được thanh toán đầy đủ"


def test_create_payment_with_unknown_method(service, invoice, tenant):
    with pytest.raises(InvalidMethodError) as exc:
        service.create_payment(invoice.id, "BITCOIN", tenant)
    assert exc.value.message == "Phương thức thanh toán không hợp lệ"


def test_create_payment_accepts_enum_providers(service, invoice, tenant):
    for provider in (GatewayProvider.MOMO, GatewayProvider.VNPAY, GatewayProvider.ZALOPAY, PaymentMethod.MOMO):
        request = service.create_payment(invoice.id, provider, tenant)
        assert request.provider.value == provider.value


def test_only_tenant_owner_or_admin_may_pay(service, invoice, landlord, admin, other_tenant, other_landlord, staff):
    assert service.create_payment(invoice.id, "ZALOPAY", landlord).order_ref
    assert service.create_payment(invoice.id, "ZALOPAY", admin).order_ref
    for outsider in (other_tenant, other_landlord, staff):
        with pytest.raises(ForbiddenError):
            service.create_payment(invoice.id, "ZALOPAY", outsider)


# --- Callback ---


def test_successful_callback_records_payment(session, service, invoice, intent, landlord):
    settings = get_settings()

    result = service.handle_callback(momo_payload(settings, intent.order_ref, intent.amount))

    assert result.outcome == CallbackOutcome.CONFIRMED
    assert result.body == {"resultCode": 0, "message": "Success"}
    session.refresh(invoice)
    assert invoice.status == InvoiceStatus.PAID
    assert invoice.amount_paid == Decimal("5000000")
    payment = session.exec(select(Payment).where(Payment.invoice_id == invoice.id)).one()
    assert payment.transaction_id == intent.order_ref
    assert payment.gateway_transaction_id == "3012345678"
    assert payment.payment_method == PaymentMethod.MOMO
    assert session.get(PendingOnlinePayment, intent.order_ref).status == IntentStatus.SUCCEEDED

    notification = session.exec(
        select(Notification).where(
            Notification.user_id == landlord.id,
            Notification.type == NotificationType.PAYMENT_RECEIVED,
        )
    ).one()
    assert notification.title == "Nhận thanh toán online"
    assert "5.000.000 VND" in notification.content
    assert "MOMO" in notification.content


def test_replayed_callback_is_acknowledged_once(session, service, invoice, intent):
    payload = momo_payload(get_settings(), intent.order_ref, intent.amount)

    first = service.handle_callback(payload)
    second = service.handle_callback(payload)

    assert first.outcome == CallbackOutcome.CONFIRMED
    assert second.outcome == CallbackOutcome.ALREADY_PROCESSED
    assert second.body["resultCode"] == 0
    payments = session.exec(select(Payment).where(Payment.invoice_id == invoice.id)).all()
    assert len(payments) == 1
    session.refresh(invoice)
    assert invoice.amount_paid == Decimal("5000000")


def test_invalid_signature_is_rejected(session, service, invoice, intent):
    result = service.handle_callback(momo_payload(get_settings(), intent.order_ref, intent.amount, sign=False))

    assert result.outcome == CallbackOutcome.INVALID_SIGNATURE
    assert session.exec(select(Payment)).all() == []
    session.refresh(invoice)
    assert invoice.status == InvoiceStatus.UNPAID


def test_signature_bypass_only_in_development(session, invoice, intent):
    base = get_settings().model_dump()
    payload = momo_payload(get_settings(), intent.order_ref, intent.amount, sign=False)

    production = Settings(**{**base, "app_env": "production", "payment_signature_bypass": True})
    result = OnlinePaymentService(session, production).handle_callback(payload)
    assert result.outcome == CallbackOutcome.INVALID_SIGNATURE

    development = Settings(**{**base, "app_env": "development", "payment_signature_bypass": True})
    result = OnlinePaymentService(session, development).handle_callback(payload)
    assert result.outcome == CallbackOutcome.CONFIRMED


def test_unknown_order_reference(session, service, invoice):
    result = service.handle_callback(momo_payload(get_settings(), "PAY-0-unknown", Decimal("5000000")))

    assert result.outcome == CallbackOutcome.ORDER_NOT_FOUND
    assert session.exec(select(Payment)).all() == []


def test_failed_payment_marks_intent_failed(session, service, invoice, intent):
    result = service.handle_callback(momo_payload(get_settings(), intent.order_ref, intent.amount, result_code=1006))

    assert result.outcome == CallbackOutcome.CONFIRMED
    stored = session.get(PendingOnlinePayment, intent.order_ref)
    assert stored.status == IntentStatus.FAILED
    assert "1006" in stored.failure_reason
    assert session.exec(select(Payment)).all() == []


def test_duplicate_delivery_that_missed_the_first_check(session, service, invoice, intent, monkeypatch):
    payload = momo_payload(get_settings(), intent.order_ref, intent.amount)
    assert service.handle_callback(payload).outcome == CallbackOutcome.CONFIRMED

    # Second delivery read the ledger before the first one committed
    monkeypatch.setattr(service, "_already_processed", lambda order_ref: False)
    result = service.handle_callback(payload)

    assert result.outcome == CallbackOutcome.ALREADY_PROCESSED
    assert result.body == {"resultCode": 0, "message": "Already processed"}
    assert session.get(PendingOnlinePayment, intent.order_ref).status == IntentStatus.SUCCEEDED
    assert len(session.exec(select(Payment)).all()) == 1
    session.refresh(invoice)
    assert invoice.amount_paid == Decimal("5000000")


def test_payment_inserted_concurrently_hits_unique_transaction_id(session, service, invoice, intent, monkeypatch):
    session.add(
        Payment(
            invoice_id=invoice.id,
            amount=Decimal("5000000"),
            payment_method=PaymentMethod.MOMO,
            transaction_id=intent.order_ref,
        )
    )
    session.commit()
    monkeypatch.setattr(service, "_already_processed", lambda order_ref: False)

    result = service.handle_callback(momo_payload(get_settings(), intent.order_ref, intent.amount))

    assert result.outcome == CallbackOutcome.ALREADY_PROCESSED
    assert result.body["resultCode"] == 0
    assert len(session.exec(select(Payment)).all()) == 1
    session.refresh(invoice)
    assert invoice.amount_paid == Decimal("0")
    assert session.get(PendingOnlinePayment, intent.order_ref).status == IntentStatus.PENDING


def test_failed_result_never_downgrades_a_succeeded_intent(session, service, invoice, intent, monkeypatch):
    settings = get_settings()
    service.handle_callback(momo_payload(settings, intent.order_ref, intent.amount))
    monkeypatch.setattr(service, "_already_processed", lambda order_ref: False)

    late_failure = momo_payload(settings, intent.order_ref, intent.amount, result_code=1006)
    service.handle_callback(late_failure)

    assert session.get(PendingOnlinePayment, intent.order_ref).status == IntentStatus.SUCCEEDED


def test_expired_intent_is_still_accepted(session, service, invoice, intent):
    stored = session.get(PendingOnlinePayment, intent.order_ref)
    assert not stored.is_expired(utcnow())
    stored.expires_at = utcnow() - timedelta(minutes=1)
    session.add(stored)
    session.commit()

    result = service.handle_callback(momo_payload(get_settings(), intent.order_ref, intent.amount))

    assert session.get(PendingOnlinePayment, intent.order_ref).is_expired(utcnow())
    assert result.outcome == CallbackOutcome.CONFIRMED


def test_amount_mismatch_is_rejected(session, service, invoice, intent):
    result = service.handle_callback(momo_payload(get_settings(), intent.order_ref, Decimal("1000")))

    assert result.outcome == CallbackOutcome.INVALID_AMOUNT
    assert result.body["resultCode"] == 22
    assert session.get(PendingOnlinePayment, intent.order_ref).status == IntentStatus.FAILED
    assert session.exec(select(Payment)).all() == []


def test_amount_above_remaining_balance_is_rejected(session, service, invoice, intent):
    # Balance was partly settled in cash after the payment link was issued
    PaymentService(session).record_payment(invoice.id, Decimal("1000000"), PaymentMethod.CASH)

    result = service.handle_callback(momo_payload(get_settings(), intent.order_ref, intent.amount))

    assert result.outcome == CallbackOutcome.INVALID_AMOUNT
    session.refresh(invoice)
    assert invoice.amount_paid == Decimal("1000000")


def test_vnpay_callback_flow(session, service, invoice, tenant):
    settings = get_settings()
    request = service.create_payment(invoice.id, "VNPAY", tenant)
    payload = {
        "vnp_TmnCode": settings.vnpay_tmn_code,
        "vnp_Amount": "500000000",
        "vnp_ResponseCode": "00",
        "vnp_TransactionStatus": "00",
        "vnp_TransactionNo": "14226112",
        "vnp_TxnRef": request.order_ref,
    }
    payload["vnp_SecureHash"] = VnpayAdapter(settings).sign(payload)

    result = service.handle_callback(payload)

    assert result.outcome == CallbackOutcome.CONFIRMED
    assert result.body == {"RspCode": "00", "Message": "Confirm Success"}
    assert service.handle_callback(payload).body["RspCode"] == "02"


def test_zalopay_callback_flow(session, service, invoice, tenant):
    settings = get_settings()
    request = service.create_payment(invoice.id, "ZALOPAY", tenant)
    data = json.dumps(
        {
            "app_id": 2553,
            "app_trans_id": request.metadata["appTransId"],
            "amount": 5000000,
            "zp_trans_id": 250310000000123,
        }
    )
    mac = hmac.new(settings.zalopay_key2.encode(), data.encode(), hashlib.sha256).hexdigest()

    result = service.handle_callback({"data": data, "mac": mac, "type": 1})

    assert result.outcome == CallbackOutcome.CONFIRMED
    assert result.body == {"return_code": 1, "return_message": "success"}
    session.refresh(invoice)
    assert invoice.status == InvoiceStatus.PAID


def test_unrecognised_callback_gets_generic_ack(service):
    result = service.handle_callback({"hello": "world"})

    assert result.outcome is None
    assert result.body == {
        "return_code": 0,
        "return_message": "Invalid callback",
        "resultCode": 99,
        "message": "Invalid callback",
    }


def test_unexpected_error_is_acknowledged_as_error(session, service, invoice, intent, monkeypatch):
    def boom(*args, **kwargs):
        raise RuntimeError("database is gone")

    monkeypatch.setattr(service.payments, "lock_invoice", boom)

    result = service.handle_callback(momo_payload(get_settings(), intent.order_ref, intent.amount))

    assert result.outcome == CallbackOutcome.ERROR
    assert result.body["resultCode"] == 99


# --- Browser return ---


def test_return_redirect_for_vnpay(service):
    url = service.build_return_redirect(
        {"vnp_TxnRef": "PAY-1-abc", "vnp_ResponseCode": "00", "vnp_Amount": "15000000"}
    )

    parts = urlsplit(url)
    assert f"{parts.scheme}://{parts.netloc}{parts.path}" == "http://testserver/payment/result"
    assert parse_qs(parts.query) == {"orderId": ["PAY-1-abc"], "status": ["success"], "amount": ["150000"]}


def test_return_redirect_for_unknown_query(service):
    url = service.build_return_redirect({})

    assert parse_qs(urlsplit(url).query)["status"] == ["failed"]

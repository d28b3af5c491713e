import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from jose import jwt
from sqlmodel import select

from motelhub.core.config import get_settings
from motelhub.core.constants import InvoiceStatus
from motelhub.core.users import get_current_user
from motelhub.main import app
from motelhub.models import Invoice, Notification, Payment

from .conftest import make_invoice
from .test_online_payments import momo_payload


# --- Invoice generation ---


def test_generate_invoices(client, current_user, landlord, motel, services, room, contract):
    current_user.user = landlord

    response = client.post(
        "/api/invoices/generate",
        json={
            "motelId": str(motel.id),
            "billingMonth": "2025-03",
            "meterReadings": [
                {"roomId": str(room.id), "electricity": {"oldIndex": 100, "newIndex": 150}}
            ],
        },
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "Đã tạo 1 hóa đơn"
    [invoice] = body["data"]
    assert invoice["billingMonth"] == "2025-03"
    assert invoice["dueDate"] == "2025-04-05"
    assert invoice["status"] == "UNPAID"
    electricity = next(item for item in invoice["items"] if item["serviceName"] == "Tiền điện")
    assert electricity["quantity"] == 50
    assert electricity["totalPrice"] == 175000


def test_generate_twice_creates_nothing_the_second_time(client, current_user, staff, motel, services, room, contract):
    current_user.user = staff
    body = {"motelId": str(motel.id), "billingMonth": "2025-03"}

    client.post("/api/invoices/generate", json=body)
    response = client.post("/api/invoices/generate", json=body)

    assert response.status_code == 200
    assert response.json()["data"] == []
    assert response.json()["message"] == "Đã tạo 0 hóa đơn"


def test_generate_for_someone_elses_motel(client, current_user, other_landlord, motel, contract):
    current_user.user = other_landlord

    response = client.post("/api/invoices/generate", json={"motelId": str(motel.id), "billingMonth": "2025-03"})

    assert response.status_code == 403
    assert response.json() == {
        "success": False,
        "error": {"code": "FORBIDDEN", "message": "Bạn không có quyền tạo hóa đơn cho nhà trọ này"},
    }


def test_tenant_cannot_generate(client, current_user, tenant, motel):
    current_user.user = tenant

    response = client.post("/api/invoices/generate", json={"motelId": str(motel.id), "billingMonth": "2025-03"})

    assert response.status_code == 403
    assert response.json()["error"]["code"] == "FORBIDDEN"


def test_generate_with_bad_month(client, current_user, landlord, motel):
    current_user.user = landlord

    response = client.post("/api/invoices/generate", json={"motelId": str(motel.id), "billingMonth": "2025-13"})

    assert response.status_code == 400
    error = response.json()["error"]
    assert error["code"] == "VALIDATION_ERROR"
    assert error["details"][0]["field"] == "billingMonth"


def test_bad_month_is_reported_before_missing_motel(client, current_user, admin):
    current_user.user = admin

    response = client.post("/api/invoices/generate", json={"motelId": str(uuid.uuid4()), "billingMonth": "03/2025"})

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


def test_generate_for_missing_motel(client, current_user, admin):
    current_user.user = admin

    response = client.post("/api/invoices/generate", json={"motelId": str(uuid.uuid4()), "billingMonth": "2025-03"})

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "NOT_FOUND"


def test_missing_body_fields_are_validation_errors(client, current_user, landlord):
    current_user.user = landlord

    response = client.post("/api/invoices/generate", json={"billingMonth": "2025-03"})

    assert response.status_code == 400
    error = response.json()["error"]
    assert error["code"] == "VALIDATION_ERROR"
    assert error["details"][0]["field"] == "motelId"


def test_unauthenticated_requests_are_rejected(client, motel):
    response = client.post("/api/invoices/generate", json={"motelId": str(motel.id), "billingMonth": "2025-03"})

    assert response.status_code == 401
    assert response.json()["error"]["code"] == "UNAUTHORIZED"


# --- Manual payments ---


def test_record_payment(client, current_user, landlord, invoice):
    current_user.user = landlord

    response = client.post(
        f"/api/invoices/{invoice.id}/payments",
        json={"amount": 2000000, "paymentMethod": "CASH", "notes": "Tiền mặt"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Ghi nhận thanh toán thành công"
    assert body["data"]["payment"]["amount"] == 2000000
    assert body["data"]["invoice"]["status"] == "PARTIAL"
    assert body["data"]["invoice"]["remaining"] == 3000000


def test_record_payment_over_balance(client, current_user, landlord, invoice, session):
    current_user.user = landlord

    response = client.post(
        f"/api/invoices/{invoice.id}/payments", json={"amount": 6000000, "paymentMethod": "CASH"}
    )

    assert response.status_code == 400
    error = response.json()["error"]
    assert error["code"] == "INVALID_AMOUNT"
    assert error["message"] == "Số tiền vượt quá số tiền còn nợ (5.000.000 VND)"
    assert session.exec(select(Payment)).all() == []


def test_record_payment_rejects_non_positive_amount(client, current_user, landlord, invoice):
    current_user.user = landlord

    response = client.post(f"/api/invoices/{invoice.id}/payments", json={"amount": 0, "paymentMethod": "CASH"})

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


def test_record_payment_on_missing_invoice(client, current_user, staff):
    current_user.user = staff

    response = client.post(f"/api/invoices/{uuid.uuid4()}/payments", json={"amount": 1000, "paymentMethod": "CASH"})

    assert response.status_code == 404


def test_other_landlord_cannot_record_payment(client, current_user, other_landlord, invoice):
    current_user.user = other_landlord

    response = client.post(f"/api/invoices/{invoice.id}/payments", json={"amount": 1000, "paymentMethod": "CASH"})

    assert response.status_code == 403
    assert response.json()["error"]["message"] == "Bạn không có quyền ghi nhận thanh toán cho hóa đơn này"


# --- Reads ---


def test_list_invoices_for_tenant(client, current_user, tenant, other_tenant, invoice):
    current_user.user = tenant
    response = client.get("/api/invoices")

    assert response.status_code == 200
    body = response.json()
    assert [item["id"] for item in body["data"]] == [str(invoice.id)]
    assert body["pagination"] == {"page": 1, "limit": 10, "total": 1, "totalPages": 1}

    current_user.user = other_tenant
    assert client.get("/api/invoices").json()["data"] == []


def test_invoice_detail(client, current_user, tenant, invoice, room, motel):
    current_user.user = tenant

    response = client.get(f"/api/invoices/{invoice.id}")

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["invoiceNumber"] == invoice.invoice_number
    assert data["roomName"] == room.name
    assert data["motelName"] == motel.name
    assert data["payments"] == []
    assert data["items"][0]["serviceName"] == "Tiền phòng"


def test_invoice_detail_outside_scope(client, current_user, other_tenant, invoice):
    current_user.user = other_tenant

    assert client.get(f"/api/invoices/{invoice.id}").status_code == 403


def test_list_payments_with_summary(client, current_user, landlord, invoice):
    current_user.user = landlord
    client.post(f"/api/invoices/{invoice.id}/payments", json={"amount": 1500000, "paymentMethod": "CASH"})
    client.post(f"/api/invoices/{invoice.id}/payments", json={"amount": 500000, "paymentMethod": "BANK_TRANSFER"})

    body = client.get("/api/payments").json()

    assert body["summary"] == {"totalAmount": 2000000}
    assert body["pagination"]["total"] == 2
    payment_id = body["data"][0]["id"]
    assert client.get(f"/api/payments/{payment_id}").json()["data"]["id"] == payment_id


# --- Online payments ---


def test_online_payment_end_to_end(client, current_user, tenant, landlord, invoice, session):
    current_user.user = tenant

    response = client.post(
        "/api/payments/online/create", json={"invoiceId": str(invoice.id), "paymentMethod": "MOMO"}
    )
    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Tạo yêu cầu thanh toán thành công"
    order_id = body["data"]["orderId"]
    assert body["data"]["amount"] == 5000000
    assert body["data"]["paymentUrl"]
    assert body["data"]["metadata"]["partnerCode"] == "MOMOTEST"

    current_user.user = None
    payload = momo_payload(get_settings(), order_id, Decimal("5000000"))
    callback = client.post("/api/payments/online/callback", json=payload)
    assert callback.status_code == 200
    assert callback.json() == {"resultCode": 0, "message": "Success"}

    replay = client.post("/api/payments/online/callback", json=payload)
    assert replay.status_code == 200
    assert replay.json()["resultCode"] == 0

    session.expire_all()
    assert session.get(Invoice, invoice.id).status.value == "PAID"
    assert len(session.exec(select(Payment)).all()) == 1
    owner_notes = session.exec(select(Notification).where(Notification.user_id == landlord.id)).all()
    assert len(owner_notes) == 1


def test_online_payment_invalid_method(client, current_user, tenant, invoice):
    current_user.user = tenant

    response = client.post(
        "/api/payments/online/create", json={"invoiceId": str(invoice.id), "paymentMethod": "PAYPAL"}
    )

    assert response.status_code == 400
    assert response.json()["error"] == {"code": "INVALID_METHOD", "message": "Phương thức thanh toán không hợp lệ"}


def test_online_payment_already_paid(client, current_user, tenant, contract, session):
    invoice = make_invoice(session, contract, "1000000", paid="1000000", status=InvoiceStatus.PAID)
    current_user.user = tenant

    response = client.post(
        "/api/payments/online/create", json={"invoiceId": str(invoice.id), "paymentMethod": "VNPAY"}
    )

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "ALREADY_PAID"


def test_callback_with_garbage_body_still_answers_200(client):
    response = client.post(
        "/api/payments/online/callback", content=b"not json", headers={"content-type": "application/json"}
    )

    assert response.status_code == 200
    assert response.json()["return_code"] == 0
    assert response.json()["resultCode"] == 99


def test_return_redirect(client):
    response = client.get(
        "/api/payments/online/return",
        params={"vnp_TxnRef": "PAY-1-abc", "vnp_ResponseCode": "00", "vnp_Amount": "15000000"},
        follow_redirects=False,
    )

    assert response.status_code == 303
    assert response.headers["location"] == (
        "http://testserver/payment/result?orderId=PAY-1-abc&status=success&amount=150000"
    )


# --- Notifications ---


def test_notifications_flow(client, current_user, tenant, invoice, landlord):
    current_user.user = landlord
    client.post(f"/api/invoices/{invoice.id}/payments", json={"amount": 1000000, "paymentMethod": "CASH"})

    current_user.user = tenant
    body = client.get("/api/notifications").json()
    assert body["unreadCount"] == 1
    [notification] = body["data"]
    assert notification["type"] == "PAYMENT_RECEIVED"
    assert notification["isRead"] is False

    marked = client.post(f"/api/notifications/{notification['id']}/read").json()
    assert marked["data"]["isRead"] is True
    assert client.get("/api/notifications").json()["unreadCount"] == 0
    assert client.post("/api/notifications/read-all").json()["data"] == {"updated": 0}


def test_notification_of_another_user_is_not_found(client, current_user, tenant, other_tenant, invoice, landlord):
    current_user.user = landlord
    client.post(f"/api/invoices/{invoice.id}/payments", json={"amount": 1000000, "paymentMethod": "CASH"})
    current_user.user = tenant
    notification_id = client.get("/api/notifications").json()["data"][0]["id"]

    current_user.user = other_tenant
    assert client.post(f"/api/notifications/{notification_id}/read").status_code == 404


# --- System ---


def test_health(client):
    response = client.get("/api/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "database": "ok"}
    assert response.headers["x-content-type-options"] == "nosniff"


def test_bearer_token_resolves_the_user(client, tenant, invoice):
    app.dependency_overrides.pop(get_current_user)
    token = jwt.encode(
        {"sub": str(tenant.id), "exp": datetime.now(timezone.utc) + timedelta(minutes=5)},
        get_settings().secret_key,
        algorithm="HS256",
    )

    ok = client.get("/api/invoices", headers={"Authorization": f"Bearer {token}"})
    bad = client.get("/api/invoices", headers={"Authorization": "Bearer not-a-token"})

    assert ok.status_code == 200
    assert ok.json()["pagination"]["total"] == 1
    assert bad.status_code == 401

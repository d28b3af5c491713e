# motelhub/api/payments/main.py
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import RedirectResponse
from sqlmodel import Session

from ...core.audit import get_client_ip, log_action
from ...core.constants import CallbackOutcome, PaymentMethod
from ...core.users import get_current_user
from ...db.engine import get_session
from ...models import User
from ...services.online_payment_service import OnlinePaymentService
from ...services.payment_service import PaymentService
from ..common import dump, envelope, pagination
from .models import OnlinePayment, OnlinePaymentCreate, Payment

router = APIRouter()

ACCEPTED_OUTCOMES = (CallbackOutcome.CONFIRMED, CallbackOutcome.ALREADY_PROCESSED)


# --- Dependency Injectors ---
def get_payment_service(session: Session = Depends(get_session)) -> PaymentService:
    return PaymentService(session)


def get_online_payment_service(session: Session = Depends(get_session)) -> OnlinePaymentService:
    return OnlinePaymentService(session)


# --- Online Payment Endpoints ---


@router.post("/payments/online/create")
def api_create_online_payment(
    body: OnlinePaymentCreate,
    request: Request,
    service: OnlinePaymentService = Depends(get_online_payment_service),
    current_user: User = Depends(get_current_user),
):
    payment_request = service.create_payment(
        body.invoice_id,
        body.payment_method,
        current_user,
        return_url=body.return_url,
        client_ip=get_client_ip(request),
    )
    log_action(
        "PAYMENT_ONLINE_CREATE",
        "invoice",
        str(body.invoice_id),
        user=current_user,
        request=request,
        details={
            "orderId": payment_request.order_ref,
            "provider": payment_request.provider.value,
            "amount": str(payment_request.amount),
        },
    )
    data = OnlinePayment(
        order_id=payment_request.order_ref,
        payment_url=payment_request.payment_url,
        amount=payment_request.amount,
        invoice_id=body.invoice_id,
        provider=payment_request.provider.value,
        metadata=payment_request.metadata,
    )
    return envelope(dump(data), message="Tạo yêu cầu thanh toán thành công")


@router.post("/payments/online/callback")
async def api_payment_callback(
    request: Request,
    service: OnlinePaymentService = Depends(get_online_payment_service),
):
    """
    Gateway IPN. Always answers 200 with the provider's acknowledgement body.
    """
    try:
        payload = await request.json()
    except ValueError:
        payload = None
    if not isinstance(payload, dict):
        payload = {}

    result = await run_in_threadpool(service.handle_callback, payload)
    log_action(
        "PAYMENT_CALLBACK",
        "order",
        result.order_ref or "unknown",
        request=request,
        details={
            "provider": result.provider.value if result.provider else None,
            "outcome": result.outcome.value if result.outcome else "unrecognized",
        },
        status="success" if result.outcome in ACCEPTED_OUTCOMES else "failure",
    )
    return result.body


@router.get("/payments/online/return")
def api_payment_return(
    request: Request,
    service: OnlinePaymentService = Depends(get_online_payment_service),
):
    url = service.build_return_redirect(dict(request.query_params))
    return RedirectResponse(url, status_code=status.HTTP_303_SEE_OTHER)


# --- Payment Ledger Endpoints ---


@router.get("/payments")
def api_list_payments(
    invoice_id: Optional[uuid.UUID] = Query(default=None, alias="invoiceId"),
    payment_method: Optional[PaymentMethod] = Query(default=None, alias="paymentMethod"),
    motel_id: Optional[uuid.UUID] = Query(default=None, alias="motelId"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    service: PaymentService = Depends(get_payment_service),
    current_user: User = Depends(get_current_user),
):
    result = service.list_payments(
        current_user,
        invoice_id=invoice_id,
        method=payment_method,
        motel_id=motel_id,
        page=page,
        limit=limit,
    )
    return envelope(
        [dump(Payment.model_validate(p)) for p in result["items"]],
        summary={"totalAmount": float(result["total_amount"])},
        pagination=pagination(page, limit, result["total"]),
    )


@router.get("/payments/{payment_id}")
def api_get_payment(
    payment_id: uuid.UUID,
    service: PaymentService = Depends(get_payment_service),
    current_user: User = Depends(get_current_user),
):
    return envelope(dump(Payment.model_validate(service.get_payment(payment_id, current_user))))

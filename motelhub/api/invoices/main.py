# motelhub/api/invoices/main.py
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlmodel import Session

from ...core.audit import log_action
from ...core.constants import InvoiceStatus
from ...core.errors import NotFoundError
from ...core.permissions import ensure_can_manage_motel
from ...core.users import get_current_user, require_billing
from ...db.engine import get_session
from ...models import Motel, User
from ...services.invoice_service import (
    InvoiceService,
    MeterPair,
    MeterReading,
    get_invoice_context,
    parse_billing_month,
)
from ...services.payment_service import PaymentService
from ..common import dump, envelope, pagination
from ..payments.models import Payment, PaymentCreate
from .models import Invoice, InvoiceDetail, InvoiceGenerate

router = APIRouter()


# --- Dependency Injectors ---
def get_invoice_service(session: Session = Depends(get_session)) -> InvoiceService:
    return InvoiceService(session)


def get_payment_service(session: Session = Depends(get_session)) -> PaymentService:
    return PaymentService(session)


def _to_meter_readings(body: InvoiceGenerate) -> list[MeterReading]:
    def pair(value):
        return MeterPair(old_index=value.old_index, new_index=value.new_index) if value else None

    return [
        MeterReading(room_id=r.room_id, electricity=pair(r.electricity), water=pair(r.water))
        for r in body.meter_readings
    ]


# --- Invoice Endpoints ---


@router.post("/invoices/generate")
def api_generate_invoices(
    body: InvoiceGenerate,
    request: Request,
    service: InvoiceService = Depends(get_invoice_service),
    current_user: User = Depends(require_billing),
):
    parse_billing_month(body.billing_month)
    motel = service.session.get(Motel, body.motel_id)
    if not motel:
        raise NotFoundError("Không tìm thấy nhà trọ")
    ensure_can_manage_motel(current_user, motel, "Bạn không có quyền tạo hóa đơn cho nhà trọ này")

    invoices = service.generate_invoices(motel.id, body.billing_month, _to_meter_readings(body))
    log_action(
        "INVOICE_GENERATE",
        "motel",
        str(motel.id),
        user=current_user,
        request=request,
        details={"billingMonth": body.billing_month, "created": len(invoices)},
    )
    return envelope(
        [dump(Invoice.model_validate(invoice)) for invoice in invoices],
        message=f"Đã tạo {len(invoices)} hóa đơn",
    )


@router.get("/invoices")
def api_list_invoices(
    status: Optional[InvoiceStatus] = None,
    month: Optional[str] = None,
    motel_id: Optional[uuid.UUID] = Query(default=None, alias="motelId"),
    contract_id: Optional[uuid.UUID] = Query(default=None, alias="contractId"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    service: InvoiceService = Depends(get_invoice_service),
    current_user: User = Depends(get_current_user),
):
    result = service.list_invoices(
        current_user,
        status=status,
        month=month,
        motel_id=motel_id,
        contract_id=contract_id,
        page=page,
        limit=limit,
    )
    return envelope(
        [dump(Invoice.model_validate(invoice)) for invoice in result["items"]],
        pagination=pagination(page, limit, result["total"]),
    )


@router.get("/invoices/{invoice_id}")
def api_get_invoice(
    invoice_id: uuid.UUID,
    service: InvoiceService = Depends(get_invoice_service),
    current_user: User = Depends(get_current_user),
):
    result = service.get_invoice_for_user(invoice_id, current_user)
    context = result["context"]
    detail = InvoiceDetail(
        **Invoice.model_validate(result["invoice"]).model_dump(),
        room_id=context.room.id,
        room_name=context.room.name,
        motel_id=context.motel.id,
        motel_name=context.motel.name,
        tenant_id=context.contract.tenant_id,
        payments=[Payment.model_validate(p) for p in result["payments"]],
    )
    return envelope(dump(detail))


@router.post("/invoices/{invoice_id}/payments")
def api_record_payment(
    invoice_id: uuid.UUID,
    body: PaymentCreate,
    request: Request,
    service: PaymentService = Depends(get_payment_service),
    invoices: InvoiceService = Depends(get_invoice_service),
    current_user: User = Depends(require_billing),
):
    context = get_invoice_context(invoices.session, invoices.get_invoice(invoice_id))
    ensure_can_manage_motel(current_user, context.motel, "Bạn không có quyền ghi nhận thanh toán cho hóa đơn này")

    try:
        payment, invoice = service.record_payment(
            invoice_id,
            body.amount,
            body.payment_method,
            notes=body.notes,
            created_by_id=current_user.id,
        )
    except Exception as e:
        log_action(
            "PAYMENT_RECORD",
            "invoice",
            str(invoice_id),
            user=current_user,
            request=request,
            details={"amount": str(body.amount), "error": str(e)},
            status="failure",
        )
        raise

    log_action(
        "PAYMENT_RECORD",
        "invoice",
        str(invoice.id),
        user=current_user,
        request=request,
        details={"paymentId": str(payment.id), "amount": str(payment.amount), "status": invoice.status.value},
    )
    return envelope(
        {"payment": dump(Payment.model_validate(payment)), "invoice": dump(Invoice.model_validate(invoice))},
        message="Ghi nhận thanh toán thành công",
    )

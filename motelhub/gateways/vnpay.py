# motelhub/gateways/vnpay.py
"""
VNPay adapter (payment API 2.1.0).
Signatures are HMAC-SHA512 over the sorted, URL-encoded vnp_* parameters.
Amounts travel multiplied by 100.
"""

import hashlib
import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, Optional
from urllib.parse import quote_plus, urlencode

from ..core.constants import CallbackOutcome, GatewayProvider
from ..utils.formatting import as_utc
from .base import (
    BaseGatewayAdapter,
    GatewayCallback,
    PaymentRequest,
    ReturnResult,
    hmac_hex,
    parse_amount,
    signatures_match,
)

logger = logging.getLogger(__name__)

VNP_VERSION = "2.1.0"
VNP_TIMEZONE = timezone(timedelta(hours=7))
UNSIGNED_FIELDS = ("vnp_SecureHash", "vnp_SecureHashType")

ACK_CODES = {
    CallbackOutcome.CONFIRMED: ("00", "Confirm Success"),
    CallbackOutcome.ALREADY_PROCESSED: ("02", "Order already confirmed"),
    CallbackOutcome.ORDER_NOT_FOUND: ("01", "Order not found"),
    CallbackOutcome.INVALID_AMOUNT: ("04", "Invalid amount"),
    CallbackOutcome.INVALID_SIGNATURE: ("97", "Invalid signature"),
    CallbackOutcome.ERROR: ("99", "Unknown error"),
}


def canonical_query(params: Dict[str, Any]) -> str:
    """Sorted vnp_* parameters, URL-encoded the way VNPay hashes them."""
    signed = {
        key: str(value)
        for key, value in params.items()
        if key.startswith("vnp_") and key not in UNSIGNED_FIELDS and value not in (None, "")
    }
    return urlencode(sorted(signed.items()), quote_via=quote_plus)


class VnpayAdapter(BaseGatewayAdapter):
    provider = GatewayProvider.VNPAY

    @classmethod
    def matches(cls, payload: Dict[str, Any]) -> bool:
        return bool(payload.get("vnp_TxnRef")) and "vnp_ResponseCode" in payload

    def sign(self, params: Dict[str, Any]) -> str:
        return hmac_hex(self.settings.vnpay_hash_secret, canonical_query(params), hashlib.sha512)

    def build_payment_request(
        self,
        order_ref: str,
        amount: Decimal,
        order_info: str,
        return_url: str,
        client_ip: str = "127.0.0.1",
        now: Optional[datetime] = None,
    ) -> PaymentRequest:
        s = self.settings
        created = (as_utc(now) or datetime.now(timezone.utc)).astimezone(
            VNP_TIMEZONE
        )
        expires = created + timedelta(minutes=s.payment_intent_ttl_minutes)
        params = {
            "vnp_Version": VNP_VERSION,
            "vnp_Command": "pay",
            "vnp_TmnCode": s.vnpay_tmn_code,
            "vnp_Amount": str(int(Decimal(amount) * 100)),
            "vnp_CurrCode": "VND",
            "vnp_TxnRef": order_ref,
            "vnp_OrderInfo": order_info,
            "vnp_OrderType": "other",
            "vnp_Locale": "vn",
            "vnp_ReturnUrl": return_url,
            "vnp_IpAddr": client_ip,
            "vnp_CreateDate": created.strftime("%Y%m%d%H%M%S"),
            "vnp_ExpireDate": expires.strftime("%Y%m%d%H%M%S"),
        }
        secure_hash = self.sign(params)
        return PaymentRequest(
            provider=self.provider,
            order_ref=order_ref,
            amount=amount,
            payment_url=f"{s.vnpay_url}?{canonical_query(params)}&vnp_SecureHash={secure_hash}",
            metadata={"tmnCode": s.vnpay_tmn_code, "secureHash": secure_hash},
        )

    def parse_callback(self, payload: Dict[str, Any]) -> GatewayCallback:
        valid = signatures_match(self.sign(payload), payload.get("vnp_SecureHash"))
        if not valid:
            logger.warning(f"VNPay: invalid signature for order {payload.get('vnp_TxnRef')}")

        response_code = str(payload.get("vnp_ResponseCode"))
        transaction_status = payload.get("vnp_TransactionStatus")
        raw_amount = parse_amount(payload.get("vnp_Amount"))
        return GatewayCallback(
            provider=self.provider,
            order_ref=payload.get("vnp_TxnRef"),
            amount=raw_amount / 100 if raw_amount is not None else None,
            result_code=response_code,
            success=response_code == "00" and transaction_status in (None, "00"),
            signature_valid=valid,
            gateway_transaction_id=payload.get("vnp_TransactionNo"),
            raw=payload,
        )

    def acknowledge(self, outcome: CallbackOutcome) -> Dict[str, Any]:
        code, message = ACK_CODES[outcome]
        return {"RspCode": code, "Message": message}

    def parse_return(self, query: Dict[str, str]) -> Optional[ReturnResult]:
        if not query.get("vnp_TxnRef"):
            return None
        raw_amount = parse_amount(query.get("vnp_Amount")) or Decimal("0")
        return ReturnResult(
            order_ref=query["vnp_TxnRef"],
            success=query.get("vnp_ResponseCode") == "00",
            amount=raw_amount / 100,
        )

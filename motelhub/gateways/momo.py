# motelhub/gateways/momo.py
"""
MoMo wallet adapter (API v2, captureWallet / payWithMethod).
Signatures are HMAC-SHA256 over key=value pairs in a fixed field order.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional
from urllib.parse import urlencode

from ..core.constants import CallbackOutcome, GatewayProvider
from .base import (
    BaseGatewayAdapter,
    GatewayCallback,
    PaymentRequest,
    ReturnResult,
    format_amount,
    hmac_hex,
    parse_amount,
    signatures_match,
)

logger = logging.getLogger(__name__)

REQUEST_TYPE = "payWithMethod"

CALLBACK_SIGNATURE_FIELDS = (
    "accessKey",
    "amount",
    "extraData",
    "message",
    "orderId",
    "orderInfo",
    "orderType",
    "partnerCode",
    "payType",
    "requestId",
    "responseTime",
    "resultCode",
    "transId",
)

# resultCode returned to MoMo for each processing outcome
ACK_CODES = {
    CallbackOutcome.CONFIRMED: (0, "Success"),
    CallbackOutcome.ALREADY_PROCESSED: (0, "Already processed"),
    CallbackOutcome.ORDER_NOT_FOUND: (42, "Order not found"),
    CallbackOutcome.INVALID_AMOUNT: (22, "Invalid amount"),
    CallbackOutcome.INVALID_SIGNATURE: (11, "Invalid signature"),
    CallbackOutcome.ERROR: (99, "Internal error"),
}


def _as_str(value: Any) -> str:
    return "" if value is None else str(value)


class MomoAdapter(BaseGatewayAdapter):
    provider = GatewayProvider.MOMO

    @classmethod
    def matches(cls, payload: Dict[str, Any]) -> bool:
        return bool(payload.get("partnerCode")) and bool(payload.get("orderId")) and "resultCode" in payload

    def request_signature(
        self, order_ref: str, amount: Decimal, order_info: str, redirect_url: str
    ) -> str:
        s = self.settings
        raw = (
            f"accessKey={s.momo_access_key}"
            f"&amount={format_amount(amount)}"
            f"&extraData="
            f"&ipnUrl={s.ipn_url}"
            f"&orderId={order_ref}"
            f"&orderInfo={order_info}"
            f"&partnerCode={s.momo_partner_code}"
            f"&redirectUrl={redirect_url}"
            f"&requestId={order_ref}"
            f"&requestType={REQUEST_TYPE}"
        )
        return hmac_hex(self.settings.momo_secret_key, raw)

    def callback_signature(self, payload: Dict[str, Any]) -> str:
        values = dict(payload)
        values["accessKey"] = self.settings.momo_access_key
        raw = "&".join(f"{name}={_as_str(values.get(name))}" for name in CALLBACK_SIGNATURE_FIELDS)
        return hmac_hex(self.settings.momo_secret_key, raw)

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
        signature = self.request_signature(order_ref, amount, order_info, return_url)
        query = urlencode({"orderId": order_ref, "amount": format_amount(amount)})
        return PaymentRequest(
            provider=self.provider,
            order_ref=order_ref,
            amount=amount,
            payment_url=f"{s.momo_endpoint}?{query}",
            metadata={
                "partnerCode": s.momo_partner_code,
                "requestId": order_ref,
                "orderInfo": order_info,
                "redirectUrl": return_url,
                "ipnUrl": s.ipn_url,
                "requestType": REQUEST_TYPE,
                "extraData": "",
                "signature": signature,
                "endpoint": s.momo_endpoint,
            },
        )

    def parse_callback(self, payload: Dict[str, Any]) -> GatewayCallback:
        result_code = _as_str(payload.get("resultCode"))
        valid = signatures_match(self.callback_signature(payload), payload.get("signature"))
        if not valid:
            logger.warning(f"MoMo: invalid signature for order {payload.get('orderId')}")
        return GatewayCallback(
            provider=self.provider,
            order_ref=payload.get("orderId"),
            amount=parse_amount(payload.get("amount")),
            result_code=result_code,
            success=result_code == "0",
            signature_valid=valid,
            gateway_transaction_id=_as_str(payload.get("transId")) or None,
            raw=payload,
        )

    def acknowledge(self, outcome: CallbackOutcome) -> Dict[str, Any]:
        code, message = ACK_CODES[outcome]
        return {"resultCode": code, "message": message}

    def parse_return(self, query: Dict[str, str]) -> Optional[ReturnResult]:
        if not query.get("orderId") or "resultCode" not in query or "partnerCode" not in query:
            return None
        return ReturnResult(
            order_ref=query["orderId"],
            success=query.get("resultCode") == "0",
            amount=parse_amount(query.get("amount")) or Decimal("0"),
        )

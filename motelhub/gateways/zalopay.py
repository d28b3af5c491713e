# motelhub/gateways/zalopay.py
"""
ZaloPay adapter (API v2).

Requests are signed with key1 over
app_id|app_trans_id|app_user|amount|app_time|embed_data|item.
Callbacks arrive as {"data": <json string>, "mac": ..., "type": ...} where
mac = HMAC-SHA256(key2, data).
"""

import json
import logging
import time
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, Optional
from urllib.parse import urlencode

from ..core.constants import CallbackOutcome, GatewayProvider
from ..utils.formatting import as_utc
from .base import (
    BaseGatewayAdapter,
    GatewayCallback,
    PaymentRequest,
    format_amount,
    hmac_hex,
    parse_amount,
    signatures_match,
)

logger = logging.getLogger(__name__)

APP_USER = "motelhub"
ZALOPAY_TIMEZONE = timezone(timedelta(hours=7))
CALLBACK_TYPE_ORDER = 1

ACK_CODES = {
    CallbackOutcome.CONFIRMED: (1, "success"),
    CallbackOutcome.ALREADY_PROCESSED: (2, "already processed"),
    CallbackOutcome.ORDER_NOT_FOUND: (-1, "order not found"),
    CallbackOutcome.INVALID_AMOUNT: (-1, "invalid amount"),
    CallbackOutcome.INVALID_SIGNATURE: (-1, "mac not equal"),
    CallbackOutcome.ERROR: (0, "internal error"),
}


def order_ref_from_trans_id(app_trans_id: Optional[str]) -> Optional[str]:
    """'250301_PAY-...' -> 'PAY-...'"""
    if not app_trans_id:
        return None
    _, sep, order_ref = app_trans_id.partition("_")
    return order_ref if sep else app_trans_id


class ZaloPayAdapter(BaseGatewayAdapter):
    provider = GatewayProvider.ZALOPAY

    @classmethod
    def matches(cls, payload: Dict[str, Any]) -> bool:
        return isinstance(payload.get("data"), str) and "mac" in payload

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
            ZALOPAY_TIMEZONE
        )
        app_trans_id = f"{created:%y%m%d}_{order_ref}"
        app_time = int(as_utc(now).timestamp() * 1000) if now else int(time.time() * 1000)
        embed_data = json.dumps({"redirecturl": return_url}, separators=(",", ":"))
        item = "[]"

        raw = "|".join(
            [s.zalopay_app_id, app_trans_id, APP_USER, format_amount(amount), str(app_time), embed_data, item]
        )
        mac = hmac_hex(s.zalopay_key1, raw)

        order = {
            "app_id": s.zalopay_app_id,
            "app_trans_id": app_trans_id,
            "app_user": APP_USER,
            "app_time": app_time,
            "amount": format_amount(amount),
            "embed_data": embed_data,
            "item": item,
            "description": order_info,
            "callback_url": s.ipn_url,
            "mac": mac,
        }
        return PaymentRequest(
            provider=self.provider,
            order_ref=order_ref,
            amount=amount,
            payment_url=f"{s.zalopay_endpoint}?{urlencode(order)}",
            metadata={"appId": s.zalopay_app_id, "appTransId": app_trans_id, "mac": mac},
        )

    def parse_callback(self, payload: Dict[str, Any]) -> GatewayCallback:
        data_str = payload.get("data") or ""
        valid = signatures_match(hmac_hex(self.settings.zalopay_key2, data_str), payload.get("mac"))
        try:
            data = json.loads(data_str)
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}
        if not valid:
            logger.warning(f"ZaloPay: invalid mac for transaction {data.get('app_trans_id')}")

        callback_type = payload.get("type")
        zp_trans_id = data.get("zp_trans_id")
        return GatewayCallback(
            provider=self.provider,
            order_ref=order_ref_from_trans_id(data.get("app_trans_id")),
            amount=parse_amount(data.get("amount")),
            result_code=None if callback_type is None else str(callback_type),
            success=str(callback_type) == str(CALLBACK_TYPE_ORDER),
            signature_valid=valid,
            gateway_transaction_id=str(zp_trans_id) if zp_trans_id is not None else None,
            raw=payload,
        )

    def acknowledge(self, outcome: CallbackOutcome) -> Dict[str, Any]:
        code, message = ACK_CODES[outcome]
        return {"return_code": code, "return_message": message}

# motelhub/gateways/__init__.py
"""
Online payment gateway adapters.
"""

from .base import BaseGatewayAdapter, GatewayCallback, PaymentRequest, ReturnResult
from .factory import (
    UNRECOGNIZED_ACK,
    get_gateway_adapter,
    get_return_adapters,
    get_supported_providers,
    parse_provider,
    resolve_callback_adapter,
)
from .momo import MomoAdapter
from .vnpay import VnpayAdapter
from .zalopay import ZaloPayAdapter

__all__ = [
    "BaseGatewayAdapter",
    "GatewayCallback",
    "PaymentRequest",
    "ReturnResult",
    "UNRECOGNIZED_ACK",
    "get_gateway_adapter",
    "get_return_adapters",
    "get_supported_providers",
    "parse_provider",
    "resolve_callback_adapter",
    "MomoAdapter",
    "VnpayAdapter",
    "ZaloPayAdapter",
]

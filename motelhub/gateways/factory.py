# motelhub/gateways/factory.py
"""
Gateway Factory.
Returns the adapter for a provider, or for the shape of an incoming callback.
"""

import logging
from enum import Enum
from typing import Any, Dict, List, Optional, Type

from ..core.config import Settings, get_settings
from ..core.constants import GatewayProvider
from ..core.errors import InvalidMethodError, UnrecognizedProviderError
from .base import BaseGatewayAdapter
from .momo import MomoAdapter
from .vnpay import VnpayAdapter
from .zalopay import ZaloPayAdapter

logger = logging.getLogger(__name__)

ADAPTERS: Dict[GatewayProvider, Type[BaseGatewayAdapter]] = {
    GatewayProvider.MOMO: MomoAdapter,
    GatewayProvider.VNPAY: VnpayAdapter,
    GatewayProvider.ZALOPAY: ZaloPayAdapter,
}

# Callback dispatch is tried in this order; the first matching shape wins.
CALLBACK_DISPATCH: List[Type[BaseGatewayAdapter]] = [MomoAdapter, VnpayAdapter, ZaloPayAdapter]

UNRECOGNIZED_ACK = {
    "return_code": 0,
    "return_message": "Invalid callback",
    "resultCode": 99,
    "message": "Invalid callback",
}


def parse_provider(value: Any) -> GatewayProvider:
    """
    Raises:
        InvalidMethodError: value is not a supported gateway
    """
    if isinstance(value, GatewayProvider):
        return value
    if isinstance(value, Enum):
        value = value.value
    try:
        return GatewayProvider(str(value).upper())
    except ValueError:
        raise InvalidMethodError("Phương thức thanh toán không hợp lệ")


def get_gateway_adapter(provider: Any, settings: Optional[Settings] = None) -> BaseGatewayAdapter:
    """
    Factory function to get the adapter for a provider ("MOMO", "VNPAY", "ZALOPAY").
    """
    provider = parse_provider(provider)
    return ADAPTERS[provider](settings or get_settings())


def resolve_callback_adapter(
    payload: Dict[str, Any], settings: Optional[Settings] = None
) -> BaseGatewayAdapter:
    """
    Raises:
        UnrecognizedProviderError: no adapter recognises the payload
    """
    if isinstance(payload, dict):
        for adapter_cls in CALLBACK_DISPATCH:
            if adapter_cls.matches(payload):
                return adapter_cls(settings or get_settings())
    raise UnrecognizedProviderError("Invalid callback: unrecognised provider")


def get_return_adapters(settings: Optional[Settings] = None) -> List[BaseGatewayAdapter]:
    settings = settings or get_settings()
    return [adapter_cls(settings) for adapter_cls in CALLBACK_DISPATCH]


def get_supported_providers() -> list:
    """Returns list of supported provider names."""
    return [provider.value for provider in ADAPTERS]

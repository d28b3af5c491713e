# motelhub/gateways/base.py
"""
Base adapter interface for online payment gateways.
All provider-specific adapters must implement this interface.
"""

import hashlib
import hmac
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from ..core.config import Settings
from ..core.constants import CallbackOutcome, GatewayProvider


@dataclass
class PaymentRequest:
    """
    Everything the client needs to send the payer to the gateway.
    Built locally: no call to the provider is made.
    """
    provider: GatewayProvider
    order_ref: str
    amount: Decimal
    payment_url: str
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class GatewayCallback:
    """
    Provider-agnostic view of an IPN (server-to-server notification).
    """
    provider: GatewayProvider
    order_ref: Optional[str]
    amount: Optional[Decimal]
    result_code: Optional[str]
    success: bool
    signature_valid: bool
    gateway_transaction_id: Optional[str] = None

    # Raw payload as received
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ReturnResult:
    """Outcome shown to the payer after the browser redirect."""
    order_ref: str
    success: bool
    amount: Decimal


def hmac_hex(key: str, message: str, digestmod=hashlib.sha256) -> str:
    return hmac.new(key.encode("utf-8"), message.encode("utf-8"), digestmod).hexdigest()


def signatures_match(expected: str, received: Optional[str]) -> bool:
    if not received:
        return False
    return hmac.compare_digest(expected.lower(), str(received).lower())


def format_amount(amount: Decimal) -> str:
    """VND has no minor unit: 150000.00 -> '150000'."""
    amount = Decimal(amount)
    if amount == amount.to_integral_value():
        return str(int(amount))
    return format(amount.normalize(), "f")


def parse_amount(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except ArithmeticError:
        return None


class BaseGatewayAdapter(ABC):
    """
    Abstract base class for payment gateway adapters.

    Subclasses sign outgoing payment requests, recognise and verify their
    provider's callbacks, and shape the acknowledgement the provider expects.
    """

    provider: GatewayProvider

    def __init__(self, settings: Settings):
        self.settings = settings

    @classmethod
    @abstractmethod
    def matches(cls, payload: Dict[str, Any]) -> bool:
        """True when the callback payload has this provider's shape."""
        pass

    @abstractmethod
    def build_payment_request(
        self,
        order_ref: str,
        amount: Decimal,
        order_info: str,
        return_url: str,
        client_ip: str = "127.0.0.1",
        now: Optional[datetime] = None,
    ) -> PaymentRequest:
        """Sign a payment request for the provider."""
        pass

    @abstractmethod
    def parse_callback(self, payload: Dict[str, Any]) -> GatewayCallback:
        """Extract the order reference, amount and result, verifying the signature."""
        pass

    @abstractmethod
    def acknowledge(self, outcome: CallbackOutcome) -> Dict[str, Any]:
        """Body returned to the provider for a processed callback."""
        pass

    def parse_return(self, query: Dict[str, str]) -> Optional[ReturnResult]:
        """
        Read the browser return redirect. Returns None when the query
        does not belong to this provider.
        """
        return None

import secrets
import time
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal

MONEY_QUANT = Decimal("0.01")


def utcnow() -> datetime:
    """Aware UTC timestamp."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite hands timestamps back without tzinfo; they were stored as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def to_money(value) -> Decimal:
    """Quantize a number to 2 decimal places."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


def format_vnd(amount) -> str:
    """
    Formats an amount Vietnamese style: 2000000 -> "2.000.000 VND".
    Fractions are kept only when present (1500.5 -> "1.500,5 VND").
    """
    value = to_money(amount)
    integer, _, fraction = f"{value:,.2f}".partition(".")
    integer = integer.replace(",", ".")
    fraction = fraction.rstrip("0")
    if fraction:
        return f"{integer},{fraction} VND"
    return f"{integer} VND"


def generate_invoice_number(now: datetime | None = None) -> str:
    """INV-<yyyymmddHHMMSS>-<6 hex>, e.g. INV-20250301083015-9F2A0C."""
    now = now or utcnow()
    return f"INV-{now:%Y%m%d%H%M%S}-{secrets.token_hex(3).upper()}"


def generate_order_ref() -> str:
    """PAY-<epoch ms>-<8 hex>, used as the gateway order reference."""
    return f"PAY-{int(time.time() * 1000)}-{secrets.token_hex(4)}"

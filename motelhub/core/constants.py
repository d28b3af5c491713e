"""
Centralized constants for the billing system.
Removes magic strings and gives strong typing to common values.
"""

from enum import Enum, unique


@unique
class UserRole(str, Enum):
    """User roles."""

    ADMIN = "ADMIN"
    LANDLORD = "LANDLORD"
    STAFF = "STAFF"
    TENANT = "TENANT"
    USER = "USER"


@unique
class RoomStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    OCCUPIED = "OCCUPIED"
    MAINTENANCE = "MAINTENANCE"


@unique
class ContractStatus(str, Enum):
    """Lease contract states."""

    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    TERMINATED = "TERMINATED"
    EXPIRED = "EXPIRED"


@unique
class ServiceType(str, Enum):
    """Billable service types."""

    FIXED = "FIXED"
    USAGE = "USAGE"
    PEOPLE = "PEOPLE"


@unique
class InvoiceStatus(str, Enum):
    UNPAID = "UNPAID"
    PARTIAL = "PARTIAL"
    PAID = "PAID"
    OVERDUE = "OVERDUE"


@unique
class PaymentMethod(str, Enum):
    """Payment methods accepted by the ledger."""

    CASH = "CASH"
    BANK_TRANSFER = "BANK_TRANSFER"
    MOMO = "MOMO"
    VNPAY = "VNPAY"
    ZALOPAY = "ZALOPAY"
    OTHER = "OTHER"


@unique
class GatewayProvider(str, Enum):
    """Supported online payment gateways."""

    MOMO = "MOMO"
    VNPAY = "VNPAY"
    ZALOPAY = "ZALOPAY"


@unique
class IntentStatus(str, Enum):
    """States of an online payment intent."""

    PENDING = "PENDING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


@unique
class CallbackOutcome(str, Enum):
    """Outcome of reconciling a gateway callback (IPN)."""

    CONFIRMED = "confirmed"
    ALREADY_PROCESSED = "already_processed"
    ORDER_NOT_FOUND = "order_not_found"
    INVALID_AMOUNT = "invalid_amount"
    INVALID_SIGNATURE = "invalid_signature"
    ERROR = "error"


@unique
class NotificationType(str, Enum):
    PAYMENT_RECEIVED = "PAYMENT_RECEIVED"
    INVOICE_CREATED = "INVOICE_CREATED"
    INVOICE_OVERDUE = "INVOICE_OVERDUE"


# Line item label for the monthly rent.
RENT_ITEM_NAME = "Tiền phòng"

# Keywords used to match metered services by name (lowercase).
ELECTRICITY_KEYWORDS = ("điện", "electric")
WATER_KEYWORDS = ("nước", "water")

DEFAULT_PAYMENT_DUE_DAY = 5

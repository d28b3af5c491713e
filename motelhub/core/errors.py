"""
Domain exceptions raised by the service layer.
Each one carries the error code and HTTP status rendered by the API handlers in main.py.
"""

from typing import Any, Optional


class BillingError(Exception):
    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        error: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details is not None:
            error["details"] = self.details
        return error


class ValidationError(BillingError):
    code = "VALIDATION_ERROR"
    status_code = 400


class NotFoundError(BillingError):
    code = "NOT_FOUND"
    status_code = 404


class ForbiddenError(BillingError):
    code = "FORBIDDEN"
    status_code = 403


class InvalidAmountError(BillingError):
    code = "INVALID_AMOUNT"
    status_code = 400


class AlreadyPaidError(BillingError):
    code = "ALREADY_PAID"
    status_code = 400


class InvalidMethodError(BillingError):
    code = "INVALID_METHOD"
    status_code = 400


class UnrecognizedProviderError(BillingError):
    code = "UNRECOGNIZED_PROVIDER"
    status_code = 400


class InvalidSignatureError(BillingError):
    code = "INVALID_SIGNATURE"
    status_code = 400


class UnauthorizedError(BillingError):
    code = "UNAUTHORIZED"
    status_code = 401

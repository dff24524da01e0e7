"""
Escrow-specific exceptions for settlement operations.

Exception Hierarchy:
    Unauthorized - Missing/invalid credential or signature (401)
    └── PaystackSignatureError - Webhook HMAC mismatch
    Forbidden (PermissionDeniedError) - Wrong role or not a party (403)
    └── ProfileIncomplete - Placeholder name or missing phone/city
    NotFound (NotFoundError) - Order, product or user missing (404)
    InvalidState (ConflictError) - Transition illegal from current state (409)
    AmountMismatch (ConflictError) - Paid amount differs from order total
    ValidationError - Malformed input (400)
    UpstreamFailure (ExternalServiceError) - Gateway call failed (502)
    └── PaystackError - Base for Paystack API failures
        └── PaystackTimeoutError - Request timed out

Usage:
    from escrow.exceptions import InvalidState

    raise InvalidState(
        "Delivery already confirmed.",
        error_code="DELIVERY_ALREADY_CONFIRMED",
        details={"order_id": str(order.pk)},
    )
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError as CoreValidationError,
)

if TYPE_CHECKING:
    from typing import Any


class Unauthorized(BaseApplicationError):
    """Raised when a caller's credential or signature cannot be verified."""

    default_error_code: str = "UNAUTHORIZED"


class Forbidden(PermissionDeniedError):
    """Raised when the caller is authenticated but not allowed to act."""

    default_error_code: str = "FORBIDDEN"


class ProfileIncomplete(Forbidden):
    """
    Raised when a buyer acts with an incomplete profile.

    details["missing"] lists the fields to fill in (full_name, phone, city).
    """

    default_error_code: str = "PROFILE_INCOMPLETE"


class NotFound(NotFoundError):
    default_error_code: str = "NOT_FOUND"


class InvalidState(ConflictError):
    """
    Raised when a transition is not legal from the order's current state.

    Also raised when a guarded update matched no row because another
    request changed the order between load and write.
    """

    default_error_code: str = "INVALID_STATE"


class AmountMismatch(ConflictError):
    """
    Raised when the gateway reports a paid amount that differs from the
    order's stored total.

    Operator-facing only: the webhook path logs and swallows it, and a
    mismatch event is always appended before it is raised.
    """

    default_error_code: str = "AMOUNT_MISMATCH"


class ValidationError(CoreValidationError):
    default_error_code: str = "VALIDATION_ERROR"


class UpstreamFailure(ExternalServiceError):
    """Raised when the payment gateway fails or returns an unexpected shape."""

    default_error_code: str = "UPSTREAM_FAILURE"


class PaystackError(UpstreamFailure):
    """
    Base exception for Paystack API failures.

    Attributes:
        http_status: HTTP status returned by Paystack (None for transport errors)
        paystack_message: The `message` field of Paystack's response body
    """

    default_error_code: str = "PAYSTACK_ERROR"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        http_status: int | None = None,
        paystack_message: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if http_status is not None:
            details["http_status"] = http_status
        if paystack_message:
            details["paystack_message"] = paystack_message
        super().__init__(message, error_code=error_code, details=details)
        self.http_status = http_status
        self.paystack_message = paystack_message


class PaystackTimeoutError(PaystackError):
    default_error_code: str = "PAYSTACK_TIMEOUT"


class PaystackSignatureError(Unauthorized):
    default_error_code: str = "INVALID_SIGNATURE"

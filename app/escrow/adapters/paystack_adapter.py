"""
Paystack API adapter for escrow payments.

This module provides the PaystackAdapter class which encapsulates all
Paystack API interactions. All gateway calls go through this adapter to
ensure consistent timeouts, error translation and observability.

Features:
- Configurable timeout on every call
- Translation of HTTP/transport failures to domain exceptions
- Structured logging with timing metrics (the secret key is never logged)
- HMAC-SHA512 webhook signature verification

No call is retried here. Initialization failures surface to the buyer,
who retries from the UI; verify failures surface to the poller or the
reconciliation job, which run again later.

Configuration (via settings):
- PAYSTACK_SECRET_KEY: Secret key (also the webhook signing key)
- PAYSTACK_BASE_URL: API base URL (default: https://api.paystack.co)
- PAYSTACK_API_TIMEOUT_SECONDS: Request timeout (default: 10)

Usage:
    from escrow.adapters import PaystackAdapter, InitializeParams

    result = PaystackAdapter.initialize(
        InitializeParams(
            order_id=str(order.id),
            email=buyer.email,
            amount_kobo=order.total_kobo,
            currency="NGN",
            reference=order.paystack_reference,
            callback_url="https://example.com/escrow/return",
        )
    )
    result.authorization_url

    verification = PaystackAdapter.verify(order.paystack_reference)
    if verification.success and verification.amount_paid == order.total_kobo:
        ...
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote

import requests
from django.conf import settings

from escrow.exceptions import (
    PaystackError,
    PaystackSignatureError,
    PaystackTimeoutError,
)


# =============================================================================
# Data Types
# =============================================================================


@dataclass
class InitializeParams:
    """
    Parameters for initializing a Paystack hosted checkout.

    Attributes:
        order_id: Escrow order id (sent as metadata)
        email: Buyer email (required by Paystack)
        amount_kobo: Amount to charge, in kobo
        currency: ISO 4217 currency code
        reference: Transaction reference to register with Paystack
        callback_url: Where Paystack sends the buyer after checkout
        metadata: Extra key-value pairs attached to the transaction
    """

    order_id: str
    email: str
    amount_kobo: int
    currency: str
    reference: str
    callback_url: str
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate parameters after initialization."""
        if isinstance(self.amount_kobo, bool) or self.amount_kobo <= 0:
            raise ValueError("amount_kobo must be positive")
        if not self.email:
            raise ValueError("email is required")
        if not self.reference:
            raise ValueError("reference is required")
        if not self.currency:
            raise ValueError("currency is required")

    def to_payload(self) -> dict[str, Any]:
        return {
            "email": self.email,
            "amount": self.amount_kobo,
            "currency": self.currency,
            "reference": self.reference,
            "callback_url": self.callback_url,
            "metadata": {"escrow_order_id": self.order_id, **self.metadata},
        }


@dataclass
class InitializeResult:
    """
    Result of a successful initialize call.

    Attributes:
        authorization_url: Hosted checkout URL for the buyer
        access_code: Paystack access code (for inline checkout)
        reference: Reference Paystack registered
        raw_response: Full `data` object from Paystack (for the event log)
    """

    authorization_url: str
    access_code: str
    reference: str
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class VerifyResult:
    """
    Result of a verify call.

    Attributes:
        success: Paystack reports the charge as successful
        raw_status: Paystack's transaction status (success, abandoned, failed, ...)
        amount_paid: Amount charged, in kobo
        currency: Currency of the charge
        reference: Reference that was verified
        paid_at: Paystack's paid_at timestamp (ISO string) if any
        gateway_id: Paystack transaction id
        raw_response: Full `data` object from Paystack (for the event log)
    """

    success: bool
    raw_status: str
    amount_paid: int
    currency: str = ""
    reference: str = ""
    paid_at: str | None = None
    gateway_id: str | None = None
    raw_response: dict[str, Any] = field(default_factory=dict)


def coerce_amount(value: Any) -> int:
    """Paystack amounts arrive as ints or numeric strings; anything else is 0."""
    if isinstance(value, bool):
        return 0
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return 0


# =============================================================================
# Paystack Adapter
# =============================================================================


class PaystackAdapter:
    """
    Adapter for Paystack API operations.

    All methods are class methods - no instance state is maintained.
    Thread-safe for use from Celery workers.

    Usage:
        result = PaystackAdapter.initialize(params)
        result = PaystackAdapter.verify(reference)
        event = PaystackAdapter.verify_webhook_signature(request.body, signature)
    """

    INITIALIZE_PATH = "/transaction/initialize"
    VERIFY_PATH = "/transaction/verify/{reference}"

    # =========================================================================
    # Configuration
    # =========================================================================

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Get logger for this adapter."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @staticmethod
    def _headers() -> dict[str, str]:
        return {
            "Authorization": f"Bearer {settings.PAYSTACK_SECRET_KEY}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    @staticmethod
    def _url(path: str) -> str:
        return f"{settings.PAYSTACK_BASE_URL.rstrip('/')}{path}"

    # =========================================================================
    # Core Operations
    # =========================================================================

    @classmethod
    def initialize(
        cls,
        params: InitializeParams,
        trace_id: str | None = None,
    ) -> InitializeResult:
        """
        Initialize a hosted checkout for an escrow order.

        Exactly one outbound POST /transaction/initialize.

        Args:
            params: Initialization parameters
            trace_id: Optional trace ID for log correlation

        Returns:
            InitializeResult with the checkout URL and access code

        Raises:
            PaystackTimeoutError: Request timed out
            PaystackError: Transport failure, non-2xx, status false, or
                no authorization_url in the response
        """
        log_context = {
            "operation": "initialize",
            "order_id": params.order_id,
            "reference": params.reference,
            "amount_kobo": params.amount_kobo,
            "currency": params.currency,
            "trace_id": trace_id,
        }

        data = cls._request(
            "POST",
            cls.INITIALIZE_PATH,
            log_context,
            json_body=params.to_payload(),
        )

        authorization_url = str(data.get("authorization_url") or "").strip()
        if not authorization_url:
            cls.get_logger().error(
                "Paystack initialize returned no authorization_url",
                extra=log_context,
            )
            raise PaystackError(
                "Paystack initialization failed.",
                error_code="PAYSTACK_INITIALIZE_FAILED",
                details={"reason": "missing authorization_url"},
            )

        return InitializeResult(
            authorization_url=authorization_url,
            access_code=str(data.get("access_code") or "").strip(),
            reference=str(data.get("reference") or params.reference),
            raw_response=data,
        )

    @classmethod
    def verify(
        cls,
        reference: str,
        trace_id: str | None = None,
    ) -> VerifyResult:
        """
        Verify a transaction by reference. Read-only against Paystack.

        Args:
            reference: Transaction reference
            trace_id: Optional trace ID for log correlation

        Returns:
            VerifyResult; success is True only when Paystack reports the
            transaction status as "success"

        Raises:
            PaystackTimeoutError: Request timed out
            PaystackError: Transport failure, non-2xx or status false
        """
        if not reference:
            raise ValueError("reference is required")

        log_context = {
            "operation": "verify",
            "reference": reference,
            "trace_id": trace_id,
        }

        data = cls._request(
            "GET",
            cls.VERIFY_PATH.format(reference=quote(reference, safe="")),
            log_context,
        )

        raw_status = str(data.get("status") or "").strip().lower()
        gateway_id = data.get("id")

        return VerifyResult(
            success=raw_status == "success",
            raw_status=raw_status,
            amount_paid=coerce_amount(data.get("amount")),
            currency=str(data.get("currency") or ""),
            reference=str(data.get("reference") or reference),
            paid_at=data.get("paid_at") or data.get("paidAt"),
            gateway_id=str(gateway_id) if gateway_id is not None else None,
            raw_response=data,
        )

    # =========================================================================
    # Webhook Verification
    # =========================================================================

    @classmethod
    def compute_signature(cls, payload: bytes) -> str:
        """HMAC-SHA512 hex digest of the raw body, keyed with the secret key."""
        return hmac.new(
            settings.PAYSTACK_SECRET_KEY.encode("utf-8"),
            payload,
            hashlib.sha512,
        ).hexdigest()

    @classmethod
    def verify_webhook_signature(
        cls,
        payload: bytes,
        signature: str,
    ) -> dict[str, Any]:
        """
        Authenticate and parse a Paystack webhook delivery.

        Args:
            payload: Raw request body bytes (exactly as received)
            signature: X-Paystack-Signature header value

        Returns:
            Parsed event dict

        Raises:
            PaystackSignatureError: Missing secret, missing or invalid
                signature, or a body that is not a JSON object
        """
        if not settings.PAYSTACK_SECRET_KEY:
            cls.get_logger().error("PAYSTACK_SECRET_KEY is not configured")
            raise PaystackSignatureError("Webhook signing key not configured")

        if not signature:
            raise PaystackSignatureError("Missing webhook signature")

        expected = cls.compute_signature(payload)
        provided = signature.strip().lower().encode("utf-8", "replace")
        if not hmac.compare_digest(expected.encode("ascii"), provided):
            raise PaystackSignatureError("Invalid webhook signature")

        try:
            event = json.loads(payload.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise PaystackSignatureError(
                "Webhook body is not valid JSON",
                error_code="INVALID_WEBHOOK_PAYLOAD",
                details={"error": str(e)},
            )

        if not isinstance(event, dict):
            raise PaystackSignatureError(
                "Webhook body must be a JSON object",
                error_code="INVALID_WEBHOOK_PAYLOAD",
            )
        return event

    # =========================================================================
    # HTTP
    # =========================================================================

    @classmethod
    def _request(
        cls,
        method: str,
        path: str,
        log_context: dict[str, Any],
        json_body: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Perform one Paystack call and return the `data` object.

        Raises:
            PaystackTimeoutError: Request timed out
            PaystackError: Any other failure
        """
        logger = cls.get_logger()
        timeout = getattr(settings, "PAYSTACK_API_TIMEOUT_SECONDS", 10)

        start_time = time.time()
        logger.info("Starting Paystack operation", extra=log_context)

        try:
            response = requests.request(
                method,
                cls._url(path),
                headers=cls._headers(),
                json=json_body,
                timeout=timeout,
            )
        except requests.Timeout as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.warning(
                "Paystack request timed out",
                extra={**log_context, "duration_ms": duration_ms},
            )
            raise PaystackTimeoutError(
                "Payment gateway timed out.",
                details={"operation": log_context.get("operation"), "error": str(e)},
            )
        except requests.RequestException as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                f"Paystack request failed: {type(e).__name__}",
                extra={**log_context, "duration_ms": duration_ms},
            )
            raise PaystackError(
                "Payment gateway unavailable.",
                error_code="PAYSTACK_UNAVAILABLE",
                details={"operation": log_context.get("operation"), "error": str(e)},
            )

        duration_ms = (time.time() - start_time) * 1000
        body = cls._parse_body(response)
        message = str(body.get("message") or "") if isinstance(body, dict) else ""

        if not response.ok or not isinstance(body, dict) or body.get("status") is not True:
            logger.error(
                "Paystack operation failed",
                extra={
                    **log_context,
                    "http_status": response.status_code,
                    "paystack_message": message,
                    "duration_ms": duration_ms,
                },
            )
            raise PaystackError(
                message or "Payment gateway request failed.",
                error_code=f"PAYSTACK_{log_context.get('operation', 'request').upper()}_FAILED",
                http_status=response.status_code,
                paystack_message=message,
            )

        data = body.get("data")
        if not isinstance(data, dict):
            logger.error(
                "Paystack response missing data object",
                extra={**log_context, "duration_ms": duration_ms},
            )
            raise PaystackError(
                "Unexpected response from payment gateway.",
                error_code="PAYSTACK_UNEXPECTED_RESPONSE",
                http_status=response.status_code,
            )

        logger.info(
            "Paystack operation completed",
            extra={
                **log_context,
                "http_status": response.status_code,
                "duration_ms": duration_ms,
            },
        )
        return data

    @staticmethod
    def _parse_body(response: requests.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            return None

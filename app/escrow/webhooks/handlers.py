"""
Webhook event handlers for Paystack events.

This module provides a handler registry and the handler for successful
charges. Paystack sends many event types; anything without a handler is
acknowledged and ignored.

Usage:
    from escrow.webhooks.handlers import dispatch_webhook, register_handler

    @register_handler("transfer.success")
    def handle_transfer_success(event: dict) -> ServiceResult:
        ...

    result = dispatch_webhook(event)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable

from core.exceptions import BaseApplicationError
from core.services import ServiceResult

from escrow.adapters.paystack_adapter import coerce_amount
from escrow.services import SettlementService

if TYPE_CHECKING:
    from typing import Any


logger = logging.getLogger(__name__)

CHARGE_SUCCESS = "charge.success"


# =============================================================================
# Handler Registry
# =============================================================================


# Maps Paystack event names to handler functions
WEBHOOK_HANDLERS: dict[str, Callable[[dict[str, Any]], ServiceResult]] = {}


def register_handler(event_type: str) -> Callable:
    """
    Decorator to register a webhook event handler.

    Args:
        event_type: The Paystack event name (e.g., "charge.success")
    """

    def decorator(func: Callable[[dict[str, Any]], ServiceResult]) -> Callable:
        WEBHOOK_HANDLERS[event_type] = func
        logger.debug(f"Registered webhook handler for {event_type}")
        return func

    return decorator


def resolve_event_type(event: dict[str, Any]) -> str:
    """
    Event name used for routing.

    A delivery whose data.status is "success" is treated as a successful
    charge whatever its event name.
    """
    event_type = str(event.get("event") or "")
    data = event.get("data")
    if isinstance(data, dict) and str(data.get("status") or "").lower() == "success":
        return CHARGE_SUCCESS
    return event_type


def dispatch_webhook(event: dict[str, Any]) -> ServiceResult:
    """
    Dispatch a verified webhook event to its handler.

    Returns:
        ServiceResult from the handler, or success if no handler exists
    """
    event_type = resolve_event_type(event)
    handler = WEBHOOK_HANDLERS.get(event_type)

    if not handler:
        logger.info(
            f"No handler registered for event type: {event_type or '<missing>'}",
            extra={"paystack_event": event.get("event")},
        )
        return ServiceResult.success(None)

    logger.info(
        f"Dispatching {event_type} to handler",
        extra={"paystack_event": event.get("event")},
    )
    return handler(event)


# =============================================================================
# Charge Handlers
# =============================================================================


@register_handler(CHARGE_SUCCESS)
def handle_charge_success(event: dict[str, Any]) -> ServiceResult:
    """
    Confirm payment for the escrow order the charge belongs to.

    Unknown references and amount mismatches are reported as failed
    results; the mismatch is already on the order's event log.
    """
    data = event.get("data") if isinstance(event.get("data"), dict) else {}
    reference = str(data.get("reference") or data.get("trxref") or "").strip()

    if not reference:
        logger.error("charge.success: missing reference in webhook data")
        return ServiceResult.failure(
            "Could not extract reference from webhook",
            error_code="INVALID_WEBHOOK_PAYLOAD",
        )

    try:
        confirmation = SettlementService.confirm_payment(
            reference,
            amount_paid=coerce_amount(data.get("amount")),
            source="webhook",
            payload=data,
        )
    except BaseApplicationError as e:
        logger.warning(
            "charge.success not applied",
            extra={"reference": reference, "error_code": e.error_code},
        )
        return ServiceResult.from_exception(e)

    logger.info(
        "charge.success processed",
        extra={
            "reference": reference,
            "order_id": str(confirmation.order.pk),
            "transitioned": confirmation.transitioned,
        },
    )
    return ServiceResult.success(confirmation)

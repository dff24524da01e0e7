"""
Webhook endpoint view for Paystack.

The view:
1. Verifies the X-Paystack-Signature HMAC over the raw body
2. Dispatches the event to its handler inline
3. Returns {"ok": true} for every authenticated delivery

Paystack retries any non-2xx response, so once the signature checks out
every outcome (unknown reference, amount mismatch, duplicate) is logged
and acknowledged. Only an invalid signature is refused, with 401.

Usage:
    from escrow.webhooks.views import paystack_webhook

    urlpatterns = [
        path("webhooks/paystack/", paystack_webhook, name="paystack_webhook"),
    ]
"""

from __future__ import annotations

import logging

from django.http import HttpRequest, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from escrow.adapters import PaystackAdapter
from escrow.exceptions import PaystackSignatureError
from escrow.webhooks.handlers import dispatch_webhook

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Paystack-Signature"


@csrf_exempt
@require_POST
def paystack_webhook(request: HttpRequest) -> JsonResponse:
    """
    Receive Paystack webhook events.

    Security:
    - HMAC-SHA512 signature over the raw body, keyed with the secret key
    - CSRF exemption required for external webhooks
    - Only POST requests accepted

    Idempotency:
    - Redelivered charge.success events hit the guarded PAID transition
      (no-op) and the keyed success event (absorbed)

    Returns:
        JsonResponse with status:
        - 200: Event authenticated (processed, ignored or duplicate)
        - 401: Missing or invalid signature (nothing recorded)
    """
    signature = request.headers.get(SIGNATURE_HEADER, "")

    try:
        event = PaystackAdapter.verify_webhook_signature(request.body, signature)
    except PaystackSignatureError as e:
        logger.warning(
            "Webhook signature verification failed",
            extra={"error_code": e.error_code},
        )
        return JsonResponse({"ok": False, **e.to_dict()}, status=401)

    logger.info(
        f"Received Paystack webhook: {event.get('event')}",
        extra={"paystack_event": event.get("event")},
    )

    try:
        result = dispatch_webhook(event)
    except Exception as e:
        # Acknowledge anyway; reconciliation picks up unconfirmed payments
        logger.error(
            f"Failed to process webhook: {type(e).__name__}",
            extra={"paystack_event": event.get("event")},
            exc_info=True,
        )
        return JsonResponse({"ok": True})

    if not result:
        logger.warning(
            "Webhook processed with failure",
            extra={
                "paystack_event": event.get("event"),
                "error_code": result.error_code,
            },
        )

    return JsonResponse({"ok": True})

"""
Webhook handling for payment events from Paystack.

Deliveries are authenticated by HMAC signature and processed inline:
the event log's unique success key makes redelivery harmless, so there
is no separate webhook store or queue.

Usage:
    # In urls.py
    from escrow.webhooks.views import paystack_webhook

    urlpatterns = [
        path("webhooks/paystack/", paystack_webhook, name="paystack_webhook"),
    ]
"""

from escrow.webhooks.handlers import dispatch_webhook, register_handler
from escrow.webhooks.views import paystack_webhook

__all__ = [
    "dispatch_webhook",
    "register_handler",
    "paystack_webhook",
]

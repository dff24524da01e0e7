"""
Pytest fixtures for Paystack webhook tests.

Provides a signing secret, an unpaid order and a helper that posts a
correctly signed delivery to the webhook endpoint.
"""

import hashlib
import hmac
import json

import pytest
from django.urls import reverse

from escrow.tests.factories import EscrowOrderFactory

WEBHOOK_SECRET = "sk_test_webhook_secret"


@pytest.fixture(autouse=True)
def paystack_settings(settings):
    settings.PAYSTACK_SECRET_KEY = WEBHOOK_SECRET
    return settings


@pytest.fixture
def pending_order(db):
    """Unpaid order with a 5,150,000 kobo total."""
    return EscrowOrderFactory(paystack_reference="esc_webhook000001")


@pytest.fixture
def charge_success():
    """Build a Paystack charge.success event body for an order."""

    def _event(order, amount=None, **data):
        return {
            "event": "charge.success",
            "data": {
                "id": 302961,
                "status": "success",
                "reference": order.paystack_reference,
                "amount": order.total_kobo if amount is None else amount,
                "currency": "NGN",
                "paid_at": "2026-01-05T10:00:00.000Z",
                **data,
            },
        }

    return _event


def sign(body: bytes, secret: str = WEBHOOK_SECRET) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha512).hexdigest()


@pytest.fixture
def post_webhook(client):
    """
    POST an event to the webhook endpoint.

    Signs the body with the test secret unless a signature is given.
    """

    def _post(event, signature=None):
        body = event if isinstance(event, bytes) else json.dumps(event).encode()
        headers = {}
        if signature is not False:
            headers["HTTP_X_PAYSTACK_SIGNATURE"] = signature or sign(body)
        return client.post(
            reverse("escrow:paystack_webhook"),
            data=body,
            content_type="application/json",
            **headers,
        )

    return _post

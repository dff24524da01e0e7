"""
Tests for the Paystack webhook view.

Tests cover:
- Signature verification (401 and nothing recorded on failure)
- charge.success confirming payment
- Acknowledgement of every authenticated delivery
- Redelivery idempotency
"""

import json
from unittest.mock import patch

import pytest
from django.urls import reverse

from escrow.events import payment_success_key
from escrow.models import EscrowEvent
from escrow.state_machines import EscrowEventType, EscrowStatus


@pytest.mark.django_db
class TestPaystackWebhookSignature:
    def test_missing_signature(self, post_webhook, pending_order, charge_success):
        response = post_webhook(charge_success(pending_order), signature=False)

        assert response.status_code == 401
        assert response.json()["ok"] is False
        pending_order.refresh_from_db()
        assert pending_order.status == EscrowStatus.INITIALIZED

    def test_invalid_signature_records_nothing(
        self, post_webhook, pending_order, charge_success
    ):
        response = post_webhook(charge_success(pending_order), signature="0" * 128)

        assert response.status_code == 401
        assert response.json()["error_code"] == "INVALID_SIGNATURE"
        assert not EscrowEvent.objects.exists()
        pending_order.refresh_from_db()
        assert pending_order.status == EscrowStatus.INITIALIZED

    def test_non_ascii_signature(self, post_webhook, pending_order, charge_success):
        response = post_webhook(charge_success(pending_order), signature="\u00e9" * 128)

        assert response.status_code == 401
        assert response.json()["error_code"] == "INVALID_SIGNATURE"
        assert not EscrowEvent.objects.exists()

    def test_unconfigured_secret(self, post_webhook, settings, pending_order, charge_success):
        settings.PAYSTACK_SECRET_KEY = ""

        response = post_webhook(charge_success(pending_order), signature="abc")

        assert response.status_code == 401

    def test_signed_garbage_body(self, post_webhook):
        response = post_webhook(b"not json")

        assert response.status_code == 401
        assert response.json()["error_code"] == "INVALID_WEBHOOK_PAYLOAD"

    def test_get_not_allowed(self, client):
        response = client.get(reverse("escrow:paystack_webhook"))

        assert response.status_code == 405


@pytest.mark.django_db
class TestPaystackWebhookChargeSuccess:
    def test_marks_order_paid(self, post_webhook, pending_order, charge_success):
        response = post_webhook(charge_success(pending_order))

        assert response.status_code == 200
        assert response.json() == {"ok": True}
        pending_order.refresh_from_db()
        assert pending_order.status == EscrowStatus.PAID
        assert pending_order.paid_at is not None
        event = EscrowEvent.objects.get(
            event_key=payment_success_key(pending_order.paystack_reference)
        )
        assert event.event_type == EscrowEventType.PAYSTACK_WEBHOOK_SUCCESS
        assert event.payload["gateway"]["id"] == 302961

    def test_redelivery_is_absorbed(self, post_webhook, pending_order, charge_success):
        event = charge_success(pending_order)

        first = post_webhook(event)
        second = post_webhook(event)

        assert first.status_code == second.status_code == 200
        pending_order.refresh_from_db()
        assert pending_order.status == EscrowStatus.PAID
        assert pending_order.version == 2
        assert EscrowEvent.objects.filter(order=pending_order).count() == 1

    def test_amount_mismatch_acknowledged(
        self, post_webhook, pending_order, charge_success
    ):
        response = post_webhook(charge_success(pending_order, amount=100))

        assert response.status_code == 200
        assert response.json() == {"ok": True}
        pending_order.refresh_from_db()
        assert pending_order.status == EscrowStatus.INITIALIZED
        event = EscrowEvent.objects.get(order=pending_order)
        assert event.event_type == EscrowEventType.PAYSTACK_AMOUNT_MISMATCH
        assert event.payload["received_kobo"] == 100

    def test_unknown_reference_acknowledged(self, post_webhook, db):
        event = {
            "event": "charge.success",
            "data": {"reference": "esc_somebody_else", "amount": 100},
        }

        response = post_webhook(event)

        assert response.status_code == 200
        assert not EscrowEvent.objects.exists()

    def test_success_status_routes_any_event_name(self, post_webhook, pending_order):
        event = {
            "event": "transaction.updated",
            "data": {
                "status": "success",
                "reference": pending_order.paystack_reference,
                "amount": pending_order.total_kobo,
            },
        }

        post_webhook(event)

        pending_order.refresh_from_db()
        assert pending_order.status == EscrowStatus.PAID

    def test_unhandled_event_acknowledged(self, post_webhook, pending_order):
        event = {"event": "transfer.success", "data": {"reference": "TRF_1"}}

        response = post_webhook(event)

        assert response.status_code == 200
        pending_order.refresh_from_db()
        assert pending_order.status == EscrowStatus.INITIALIZED

    def test_handler_crash_acknowledged(self, post_webhook, pending_order, charge_success):
        with patch(
            "escrow.webhooks.views.dispatch_webhook",
            side_effect=RuntimeError("database went away"),
        ):
            response = post_webhook(charge_success(pending_order))

        assert response.status_code == 200
        assert json.loads(response.content) == {"ok": True}

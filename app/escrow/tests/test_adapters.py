"""
Tests for PaystackAdapter.

All HTTP is mocked at requests.request; no test talks to Paystack.
"""

import hashlib
import hmac
import json
from unittest import mock

import pytest
import requests
from django.conf import settings as django_settings

from escrow.adapters import InitializeParams, PaystackAdapter
from escrow.adapters.paystack_adapter import coerce_amount
from escrow.exceptions import (
    PaystackError,
    PaystackSignatureError,
    PaystackTimeoutError,
)

REQUEST_PATH = "escrow.adapters.paystack_adapter.requests.request"


def fake_response(body, status_code=200):
    response = mock.MagicMock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 300
    if isinstance(body, Exception):
        response.json.side_effect = body
    else:
        response.json.return_value = body
    return response


def make_params(**overrides):
    params = {
        "order_id": "5b2f5e1c-7f3a-4a43-9d70-1a2b3c4d5e6f",
        "email": "buyer@example.com",
        "amount_kobo": 5_150_000,
        "currency": "NGN",
        "reference": "esc_abc123",
        "callback_url": "https://market.test/escrow/return",
    }
    params.update(overrides)
    return InitializeParams(**params)


def sign(body: bytes, secret: str | None = None) -> str:
    secret = secret or django_settings.PAYSTACK_SECRET_KEY
    return hmac.new(secret.encode(), body, hashlib.sha512).hexdigest()


class TestInitializeParams:
    @pytest.mark.parametrize(
        "overrides",
        [
            {"amount_kobo": 0},
            {"amount_kobo": -1},
            {"amount_kobo": True},
            {"email": ""},
            {"reference": ""},
            {"currency": ""},
        ],
    )
    def test_invalid(self, overrides):
        with pytest.raises(ValueError):
            make_params(**overrides)

    def test_payload_carries_order_id_metadata(self):
        payload = make_params(metadata={"product_id": "p1"}).to_payload()

        assert payload["amount"] == 5_150_000
        assert payload["metadata"] == {
            "escrow_order_id": "5b2f5e1c-7f3a-4a43-9d70-1a2b3c4d5e6f",
            "product_id": "p1",
        }


class TestInitialize:
    def test_success(self):
        body = {
            "status": True,
            "message": "Authorization URL created",
            "data": {
                "authorization_url": "https://checkout.paystack.com/0peioxfhpn",
                "access_code": "0peioxfhpn",
                "reference": "esc_abc123",
            },
        }

        with mock.patch(REQUEST_PATH, return_value=fake_response(body)) as request:
            result = PaystackAdapter.initialize(make_params())

        assert result.authorization_url == "https://checkout.paystack.com/0peioxfhpn"
        assert result.access_code == "0peioxfhpn"
        assert result.reference == "esc_abc123"

        request.assert_called_once()
        args, kwargs = request.call_args
        assert args == ("POST", "https://api.paystack.test/transaction/initialize")
        secret = django_settings.PAYSTACK_SECRET_KEY
        assert kwargs["headers"]["Authorization"] == f"Bearer {secret}"
        assert kwargs["json"]["reference"] == "esc_abc123"
        assert kwargs["timeout"] == 5

    def test_missing_authorization_url(self):
        body = {"status": True, "data": {"access_code": "x"}}

        with mock.patch(REQUEST_PATH, return_value=fake_response(body)):
            with pytest.raises(PaystackError) as exc_info:
                PaystackAdapter.initialize(make_params())

        assert exc_info.value.error_code == "PAYSTACK_INITIALIZE_FAILED"

    def test_status_false(self):
        body = {"status": False, "message": "Duplicate Transaction Reference"}

        with mock.patch(REQUEST_PATH, return_value=fake_response(body, 400)):
            with pytest.raises(PaystackError) as exc_info:
                PaystackAdapter.initialize(make_params())

        assert exc_info.value.error_code == "PAYSTACK_INITIALIZE_FAILED"
        assert exc_info.value.http_status == 400
        assert exc_info.value.paystack_message == "Duplicate Transaction Reference"

    def test_non_json_error_body(self):
        response = fake_response(ValueError("no json"), 502)

        with mock.patch(REQUEST_PATH, return_value=response):
            with pytest.raises(PaystackError) as exc_info:
                PaystackAdapter.initialize(make_params())

        assert exc_info.value.http_status == 502

    def test_timeout(self):
        with mock.patch(REQUEST_PATH, side_effect=requests.Timeout("slow")):
            with pytest.raises(PaystackTimeoutError):
                PaystackAdapter.initialize(make_params())

    def test_connection_error(self):
        with mock.patch(REQUEST_PATH, side_effect=requests.ConnectionError("down")):
            with pytest.raises(PaystackError) as exc_info:
                PaystackAdapter.initialize(make_params())

        assert exc_info.value.error_code == "PAYSTACK_UNAVAILABLE"


class TestVerify:
    def test_successful_transaction(self):
        body = {
            "status": True,
            "message": "Verification successful",
            "data": {
                "id": 4099260516,
                "status": "success",
                "reference": "esc_abc123",
                "amount": 5_150_000,
                "currency": "NGN",
                "paid_at": "2026-01-05T10:00:00.000Z",
            },
        }

        with mock.patch(REQUEST_PATH, return_value=fake_response(body)) as request:
            result = PaystackAdapter.verify("esc_abc123")

        assert result.success is True
        assert result.amount_paid == 5_150_000
        assert result.gateway_id == "4099260516"
        assert result.paid_at == "2026-01-05T10:00:00.000Z"
        args, _ = request.call_args
        assert args == ("GET", "https://api.paystack.test/transaction/verify/esc_abc123")

    def test_abandoned_transaction_is_not_success(self):
        body = {
            "status": True,
            "data": {"status": "abandoned", "reference": "esc_abc123", "amount": 0},
        }

        with mock.patch(REQUEST_PATH, return_value=fake_response(body)):
            result = PaystackAdapter.verify("esc_abc123")

        assert result.success is False
        assert result.raw_status == "abandoned"

    def test_reference_is_url_encoded(self):
        body = {"status": True, "data": {"status": "failed"}}

        with mock.patch(REQUEST_PATH, return_value=fake_response(body)) as request:
            PaystackAdapter.verify("a/b c")

        args, _ = request.call_args
        assert args[1].endswith("/transaction/verify/a%2Fb%20c")

    def test_missing_data_object(self):
        body = {"status": True, "data": None}

        with mock.patch(REQUEST_PATH, return_value=fake_response(body)):
            with pytest.raises(PaystackError) as exc_info:
                PaystackAdapter.verify("esc_abc123")

        assert exc_info.value.error_code == "PAYSTACK_UNEXPECTED_RESPONSE"

    def test_not_found(self):
        body = {"status": False, "message": "Transaction reference not found"}

        with mock.patch(REQUEST_PATH, return_value=fake_response(body, 404)):
            with pytest.raises(PaystackError) as exc_info:
                PaystackAdapter.verify("esc_missing")

        assert exc_info.value.error_code == "PAYSTACK_VERIFY_FAILED"

    def test_requires_reference(self):
        with pytest.raises(ValueError):
            PaystackAdapter.verify("")


class TestWebhookSignature:
    def test_valid_signature(self):
        body = json.dumps({"event": "charge.success", "data": {}}).encode()

        event = PaystackAdapter.verify_webhook_signature(body, sign(body))

        assert event["event"] == "charge.success"

    def test_signature_is_case_insensitive(self):
        body = b'{"event": "charge.success"}'

        event = PaystackAdapter.verify_webhook_signature(body, sign(body).upper())

        assert event == {"event": "charge.success"}

    def test_invalid_signature(self):
        body = b'{"event": "charge.success"}'

        with pytest.raises(PaystackSignatureError):
            PaystackAdapter.verify_webhook_signature(body, sign(body, "sk_other"))

    def test_tampered_body(self):
        body = b'{"event": "charge.success", "data": {"amount": 100}}'
        signature = sign(body)

        with pytest.raises(PaystackSignatureError):
            PaystackAdapter.verify_webhook_signature(
                body.replace(b"100", b"999"), signature
            )

    def test_non_ascii_signature_rejected(self):
        body = b'{"event": "charge.success"}'

        with pytest.raises(PaystackSignatureError):
            PaystackAdapter.verify_webhook_signature(body, "\u00e9" * 128)

    def test_missing_signature(self):
        with pytest.raises(PaystackSignatureError):
            PaystackAdapter.verify_webhook_signature(b"{}", "")

    def test_missing_secret(self, settings):
        settings.PAYSTACK_SECRET_KEY = ""
        body = b"{}"

        with pytest.raises(PaystackSignatureError):
            PaystackAdapter.verify_webhook_signature(body, sign(body))

    @pytest.mark.parametrize("body", [b"not json", b"[1, 2]", b"\xff\xfe"])
    def test_signed_but_malformed_body(self, body):
        with pytest.raises(PaystackSignatureError) as exc_info:
            PaystackAdapter.verify_webhook_signature(body, sign(body))

        assert exc_info.value.error_code == "INVALID_WEBHOOK_PAYLOAD"


class TestCoerceAmount:
    @pytest.mark.parametrize(
        "value,expected",
        [(5000, 5000), ("5000", 5000), (" 42 ", 42), (None, 0), ("abc", 0), (True, 0)],
    )
    def test_coerce(self, value, expected):
        assert coerce_amount(value) == expected

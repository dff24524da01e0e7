"""
Pytest fixtures for escrow tests.

Fixtures provide parties, orders in each settlement state, and a fake
Paystack adapter injected into SettlementService.

Usage:
    def test_release(admin_user, delivered_order):
        order = SettlementService.release_to_seller(admin_user, delivered_order.pk)
        assert order.status == EscrowStatus.RELEASED_TO_SELLER
"""

from unittest import mock

import pytest
from django.utils import timezone
from rest_framework.test import APIClient

from accounts.tests.factories import UserFactory
from catalog.tests.factories import ProductFactory
from escrow.adapters import InitializeResult
from escrow.services import SettlementService
from escrow.state_machines import DeliveryStatus, DisputeStatus, EscrowStatus
from escrow.tests.factories import EscrowOrderFactory

PAYSTACK_SECRET = "sk_test_escrow_secret"
CRON_SECRET = "cron-test-secret"


# =============================================================================
# Settings
# =============================================================================


@pytest.fixture(autouse=True)
def escrow_settings(settings):
    """Deterministic gateway and escrow configuration for every test."""
    settings.PAYSTACK_SECRET_KEY = PAYSTACK_SECRET
    settings.PAYSTACK_BASE_URL = "https://api.paystack.test"
    settings.PAYSTACK_API_TIMEOUT_SECONDS = 5
    settings.SITE_URL = "https://market.test"
    settings.ESCROW_CURRENCY = "NGN"
    settings.ESCROW_MIN_PRINCIPAL_KOBO = 5_000_000
    settings.ESCROW_MAX_PRINCIPAL_KOBO = 5_000_000_000
    settings.ESCROW_CRON_SECRET = CRON_SECRET
    settings.ESCROW_EXPIRY_CUTOFF_MINUTES = 30
    settings.ESCROW_RECONCILE_AFTER_MINUTES = 5
    settings.ESCROW_RECONCILE_BATCH_SIZE = 50
    settings.ESCROW_DISPUTE_REASON_MIN_LENGTH = 10
    settings.ESCROW_ADMIN_NOTE_MIN_LENGTH = 5
    settings.ESCROW_ADMIN_LIST_LIMIT = 100
    return settings


# =============================================================================
# Paystack
# =============================================================================


@pytest.fixture
def fake_paystack():
    """
    Mock adapter injected into SettlementService.

    initialize() echoes the reference back with a checkout URL. Tests set
    fake_paystack.verify.return_value / side_effect as needed.
    """
    adapter = mock.MagicMock(name="PaystackAdapter")
    adapter.initialize.side_effect = lambda params, trace_id=None: InitializeResult(
        authorization_url=f"https://checkout.paystack.com/{params.reference}",
        access_code=f"ac_{params.reference[-8:]}",
        reference=params.reference,
        raw_response={"reference": params.reference},
    )
    SettlementService.set_paystack_adapter(adapter)
    yield adapter
    SettlementService.set_paystack_adapter(None)


# =============================================================================
# Parties
# =============================================================================


@pytest.fixture
def buyer(db):
    return UserFactory(email="buyer@example.com")


@pytest.fixture
def seller(db):
    return UserFactory(email="seller@example.com", profile__display_name="Chidi Gadgets")


@pytest.fixture
def admin_user(db):
    return UserFactory(email="admin@example.com", profile__is_admin=True)


@pytest.fixture
def stranger(db):
    return UserFactory(email="stranger@example.com")


@pytest.fixture
def product(db, seller):
    """₦50,000 product (exactly the escrow floor)."""
    return ProductFactory(owner=seller, title="Used iPhone 12")


# =============================================================================
# Orders
# =============================================================================


@pytest.fixture
def initialized_order(db, buyer, seller, product):
    return EscrowOrderFactory(buyer=buyer, seller=seller, product=product)


@pytest.fixture
def paid_order(db, buyer, seller, product):
    return EscrowOrderFactory(
        buyer=buyer,
        seller=seller,
        product=product,
        status=EscrowStatus.PAID,
        paid_at=timezone.now(),
    )


@pytest.fixture
def funded_order(db, buyer, seller, product):
    """Order in the legacy FUNDED status (treated like PAID)."""
    return EscrowOrderFactory(
        buyer=buyer,
        seller=seller,
        product=product,
        status=EscrowStatus.FUNDED,
        paid_at=timezone.now(),
    )


@pytest.fixture
def delivered_order(db, buyer, seller, product):
    now = timezone.now()
    return EscrowOrderFactory(
        buyer=buyer,
        seller=seller,
        product=product,
        status=EscrowStatus.PAID,
        paid_at=now,
        delivery_status=DeliveryStatus.CONFIRMED,
        confirmed_at=now,
    )


@pytest.fixture
def disputed_order(db, buyer, seller, product):
    now = timezone.now()
    return EscrowOrderFactory(
        buyer=buyer,
        seller=seller,
        product=product,
        status=EscrowStatus.PAID,
        paid_at=now,
        dispute_status=DisputeStatus.OPEN,
        dispute_reason="Screen is cracked on arrival",
        dispute_opened_at=now,
    )


# =============================================================================
# API Clients
# =============================================================================


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def buyer_client(buyer):
    client = APIClient()
    client.force_authenticate(user=buyer)
    return client


@pytest.fixture
def admin_client(admin_user):
    client = APIClient()
    client.force_authenticate(user=admin_user)
    return client


@pytest.fixture
def stranger_client(stranger):
    client = APIClient()
    client.force_authenticate(user=stranger)
    return client

"""
URL configuration for the escrow app.

All routes are prefixed with /api/v1/escrow/ when included in the main URLconf.

Usage:
    # In config/urls.py
    api_v1_patterns = [
        path("escrow/", include("escrow.urls")),
    ]
"""

from django.urls import path

from escrow.views import (
    EscrowActionsView,
    EscrowOrderCreateView,
    EscrowOrderDetailView,
    EscrowVerifyView,
    ExpireStaleOrdersView,
)
from escrow.webhooks.views import paystack_webhook

app_name = "escrow"

urlpatterns = [
    path("orders/", EscrowOrderCreateView.as_view(), name="create_escrow_order"),
    path(
        "orders/<uuid:order_id>/",
        EscrowOrderDetailView.as_view(),
        name="escrow_order_detail",
    ),
    path("verify/", EscrowVerifyView.as_view(), name="escrow_verify"),
    path("actions/", EscrowActionsView.as_view(), name="escrow_actions"),
    path("expire/", ExpireStaleOrdersView.as_view(), name="escrow_expire"),
    # Webhook endpoints
    path("webhooks/paystack/", paystack_webhook, name="paystack_webhook"),
]

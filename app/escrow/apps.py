"""
Escrow app configuration.

This app provides the escrow settlement lifecycle:
- Order creation with fee pricing and Paystack checkout
- Payment confirmation (webhook, poll, reconciliation)
- Delivery confirmation, disputes and admin settlement
- Expiry sweep and append-only audit trail
"""

from django.apps import AppConfig


class EscrowConfig(AppConfig):
    """Configuration for the escrow application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "escrow"
    verbose_name = "Escrow"

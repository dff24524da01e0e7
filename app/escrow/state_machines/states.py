"""
State enums for escrow models.

An EscrowOrder moves along four independent axes. `status` is the
payment lifecycle; the other three track buyer and admin actions that
happen while funds are held.

State Machines Overview:

EscrowOrder.status:
    initialized → paid → released_to_seller (admin release / dispute resolved for seller)
    initialized → paid → refund_to_buyer    (dispute resolved for buyer)
    initialized → expired                   (cron sweep, never paid)

EscrowOrder.delivery_status:
    pending → confirmed (buyer, while funds held and no dispute)

EscrowOrder.dispute_status:
    none → open → resolved

EscrowOrder.settlement_status:
    holding → released | refunded
"""

from django.db import models


class EscrowStatus(models.TextChoices):
    """
    Payment lifecycle of an escrow order.

    Terminal states: RELEASED_TO_SELLER, REFUND_TO_BUYER, EXPIRED

    FUNDED is the "funds held" status written by the older verify path.
    It is treated exactly like PAID; this service never writes it.
    """

    INITIALIZED = "initialized", "Initialized"
    PAID = "paid", "Paid"
    FUNDED = "funded", "Funded"
    RELEASED_TO_SELLER = "released_to_seller", "Released to Seller"
    REFUND_TO_BUYER = "refund_to_buyer", "Refunded to Buyer"
    EXPIRED = "expired", "Expired"


FUNDS_HELD_STATUSES = (EscrowStatus.PAID, EscrowStatus.FUNDED)

TERMINAL_STATUSES = (
    EscrowStatus.RELEASED_TO_SELLER,
    EscrowStatus.REFUND_TO_BUYER,
    EscrowStatus.EXPIRED,
)


class DeliveryStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    CONFIRMED = "confirmed", "Confirmed"


class DisputeStatus(models.TextChoices):
    NONE = "none", "None"
    OPEN = "open", "Open"
    RESOLVED = "resolved", "Resolved"


class SettlementStatus(models.TextChoices):
    HOLDING = "holding", "Holding"
    RELEASED = "released", "Released"
    REFUNDED = "refunded", "Refunded"


class DisputeResolution(models.TextChoices):
    """Admin decision on an open dispute."""

    RELEASE_TO_SELLER = "release_to_seller", "Release to Seller"
    REFUND_BUYER = "refund_buyer", "Refund Buyer"


class EscrowEventType(models.TextChoices):
    """Tags for entries in the append-only escrow event log."""

    ORDER_CREATED = "order_created", "Order Created"
    PAYSTACK_INITIALIZE = "paystack.initialize", "Paystack Initialize"
    PAYSTACK_INITIALIZE_FAILED = (
        "paystack.initialize_failed",
        "Paystack Initialize Failed",
    )
    PAYSTACK_WEBHOOK_SUCCESS = "paystack.webhook.success", "Paystack Webhook Success"
    PAYSTACK_VERIFIED_SUCCESS = (
        "paystack.verified.success",
        "Paystack Verified Success",
    )
    PAYSTACK_RECONCILED_SUCCESS = (
        "paystack.reconciled.success",
        "Paystack Reconciled Success",
    )
    PAYSTACK_AMOUNT_MISMATCH = "paystack.amount_mismatch", "Paystack Amount Mismatch"
    DELIVERY_CONFIRMED = "delivery_confirmed", "Delivery Confirmed"
    DISPUTE_OPENED = "dispute_opened", "Dispute Opened"
    DISPUTE_RESOLVED = "dispute_resolved", "Dispute Resolved"
    FUNDS_RELEASED_TO_SELLER = "funds_released_to_seller", "Funds Released to Seller"

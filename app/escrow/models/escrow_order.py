"""
EscrowOrder model for the escrow settlement lifecycle.

One row per buyer/product escrow attempt. The row is the unit of
mutation: every trigger (gateway webhook, client poll, buyer action,
admin action, cron sweep) advances it through the status-guarded
conditional update in escrow.managers, never through save().

The django-fsm transitions below run in memory only. They decide
whether a move is legal (can_proceed / conditions) and compute the new
field values; SettlementService then persists those values with a
guarded UPDATE so a concurrent change turns the write into a no-op.

Usage:
    from django_fsm import can_proceed

    order = EscrowOrder.objects.get_by_id(order_id)
    if can_proceed(order.confirm_delivery):
        order.confirm_delivery(confirmed_at=timezone.now())
        EscrowOrder.objects.conditional_update(
            order.pk,
            expected_statuses=FUNDS_HELD_STATUSES,
            patch=order.field_values(*CONFIRM_DELIVERY_FIELDS),
            delivery_status=DeliveryStatus.PENDING,
        )
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.conf import settings
from django.db import models

from django_fsm import FSMField, transition

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from escrow.managers import EscrowOrderManager
from escrow.state_machines import (
    FUNDS_HELD_STATUSES,
    TERMINAL_STATUSES,
    DeliveryStatus,
    DisputeResolution,
    DisputeStatus,
    EscrowStatus,
    SettlementStatus,
)

if TYPE_CHECKING:
    from datetime import datetime
    from typing import Any


# =============================================================================
# Transition Conditions
# =============================================================================


def funds_held(order: EscrowOrder) -> bool:
    return order.status in FUNDS_HELD_STATUSES


def no_dispute(order: EscrowOrder) -> bool:
    return order.dispute_status == DisputeStatus.NONE


def delivery_pending(order: EscrowOrder) -> bool:
    return order.delivery_status == DeliveryStatus.PENDING


def delivery_confirmed(order: EscrowOrder) -> bool:
    return order.delivery_status == DeliveryStatus.CONFIRMED


def not_settled(order: EscrowOrder) -> bool:
    return (
        order.released_at is None
        and order.refunded_at is None
        and order.settlement_status == SettlementStatus.HOLDING
    )


class EscrowOrder(UUIDPrimaryKeyMixin, BaseModel):
    """
    Escrow order tracking payment, delivery, dispute and settlement.

    Amounts are integers in kobo. subtotal/fee/total are computed once at
    creation and never recomputed; every later payment check compares
    against total_kobo exactly.

    Fields:
        buyer / seller: Parties (must differ, never change)
        product: Live product (nullable; product_snapshot is authoritative)
        status: Payment lifecycle (FSM)
        delivery_status / dispute_status: Buyer action axes (FSM)
        settlement_status: Where the held funds went
        paystack_reference: Gateway transaction reference (unique)
        version: Incremented by every guarded update
    """

    # ==========================================================================
    # Parties & Product
    # ==========================================================================

    buyer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="escrow_purchases",
        help_text="User paying into escrow",
    )

    seller = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="escrow_sales",
        help_text="User receiving funds on release",
    )

    product = models.ForeignKey(
        "catalog.Product",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="escrow_orders",
    )

    product_snapshot = models.JSONField(
        default=dict,
        blank=True,
        help_text="Title, price and location captured at creation",
    )

    # ==========================================================================
    # Amounts (immutable after creation)
    # ==========================================================================

    subtotal_kobo = models.PositiveBigIntegerField(
        help_text="Item price (principal) in kobo",
    )

    fee_kobo = models.PositiveBigIntegerField(
        help_text="Escrow fee in kobo",
    )

    total_kobo = models.PositiveBigIntegerField(
        help_text="Amount payable: subtotal + fee",
    )

    currency = models.CharField(
        max_length=3,
        default="NGN",
        help_text="ISO 4217 currency code",
    )

    buyer_tier = models.CharField(
        max_length=20,
        default="free",
        help_text="Tier the fee was priced with",
    )

    # ==========================================================================
    # State Axes
    # ==========================================================================

    status = FSMField(
        default=EscrowStatus.INITIALIZED,
        choices=EscrowStatus.choices,
        db_index=True,
        help_text="Payment lifecycle status (managed by FSM)",
    )

    delivery_status = FSMField(
        default=DeliveryStatus.PENDING,
        choices=DeliveryStatus.choices,
        help_text="Buyer delivery confirmation",
    )

    dispute_status = FSMField(
        default=DisputeStatus.NONE,
        choices=DisputeStatus.choices,
        db_index=True,
        help_text="Dispute lifecycle",
    )

    settlement_status = models.CharField(
        max_length=20,
        default=SettlementStatus.HOLDING,
        choices=SettlementStatus.choices,
        help_text="Where the held funds went",
    )

    # ==========================================================================
    # Payment Linkage
    # ==========================================================================

    paystack_reference = models.CharField(
        max_length=100,
        unique=True,
        help_text="Paystack transaction reference",
    )

    authorization_url = models.URLField(
        max_length=500,
        blank=True,
        default="",
        help_text="Hosted checkout URL returned by initialize",
    )

    access_code = models.CharField(
        max_length=100,
        blank=True,
        default="",
    )

    paid_at = models.DateTimeField(null=True, blank=True)

    # ==========================================================================
    # Delivery & Dispute
    # ==========================================================================

    confirmed_at = models.DateTimeField(null=True, blank=True)

    dispute_reason = models.TextField(blank=True, default="")

    dispute_opened_at = models.DateTimeField(null=True, blank=True)

    dispute_resolution_note = models.TextField(blank=True, default="")

    dispute_resolved_at = models.DateTimeField(null=True, blank=True)

    resolution = models.CharField(
        max_length=30,
        choices=DisputeResolution.choices,
        blank=True,
        default="",
    )

    # ==========================================================================
    # Settlement
    # ==========================================================================

    settlement_admin = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="escrow_settlements",
        help_text="Admin who released or refunded the funds",
    )

    settlement_note = models.TextField(blank=True, default="")

    released_at = models.DateTimeField(null=True, blank=True)

    refunded_at = models.DateTimeField(null=True, blank=True)

    expired_at = models.DateTimeField(null=True, blank=True)

    # ==========================================================================
    # Concurrency Control
    # ==========================================================================

    version = models.PositiveIntegerField(
        default=1,
        help_text="Incremented by each guarded update",
    )

    objects = EscrowOrderManager()

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Escrow Order"
        verbose_name_plural = "Escrow Orders"
        indexes = [
            models.Index(
                fields=["status", "created_at"],
                name="escrow_escr_status_5d1c1e_idx",
            ),
            models.Index(
                fields=["buyer", "status"],
                name="escrow_escr_buyer_i_8a2f4b_idx",
            ),
            models.Index(
                fields=["seller", "status"],
                name="escrow_escr_seller__c47e90_idx",
            ),
        ]
        constraints = [
            models.CheckConstraint(
                condition=~models.Q(buyer=models.F("seller")),
                name="escrow_order_buyer_not_seller",
            ),
            models.CheckConstraint(
                condition=models.Q(subtotal_kobo__gt=0),
                name="escrow_order_subtotal_positive",
            ),
            models.CheckConstraint(
                condition=models.Q(
                    total_kobo=models.F("subtotal_kobo") + models.F("fee_kobo")
                ),
                name="escrow_order_total_is_subtotal_plus_fee",
            ),
            models.CheckConstraint(
                condition=models.Q(released_at__isnull=True)
                | models.Q(refunded_at__isnull=True),
                name="escrow_order_single_settlement",
            ),
        ]

    def __str__(self) -> str:
        return f"EscrowOrder({self.id}, {self.status}, {self.total_kobo} {self.currency})"

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_funded(self) -> bool:
        return funds_held(self)

    def field_values(self, *names: str) -> dict[str, Any]:
        """Current in-memory values, used as the patch for a guarded update."""
        return {name: getattr(self, name) for name in names}

    # ==========================================================================
    # State Transitions (django-fsm, in memory)
    # ==========================================================================

    @transition(
        field=status,
        source=EscrowStatus.INITIALIZED,
        target=EscrowStatus.PAID,
    )
    def mark_paid(self, paid_at: datetime) -> None:
        """
        Gateway confirmed the buyer paid the full total.

        Transition: INITIALIZED -> PAID
        """
        self.paid_at = paid_at

    @transition(
        field=delivery_status,
        source=DeliveryStatus.PENDING,
        target=DeliveryStatus.CONFIRMED,
        conditions=[funds_held, no_dispute],
    )
    def confirm_delivery(self, confirmed_at: datetime) -> None:
        """
        Buyer confirms the item arrived.

        Transition: delivery PENDING -> CONFIRMED (status unchanged)
        """
        self.confirmed_at = confirmed_at

    @transition(
        field=dispute_status,
        source=DisputeStatus.NONE,
        target=DisputeStatus.OPEN,
        conditions=[funds_held, delivery_pending],
    )
    def open_dispute(self, reason: str, opened_at: datetime) -> None:
        """
        Buyer disputes the trade before confirming delivery.

        Transition: dispute NONE -> OPEN
        """
        self.dispute_reason = reason
        self.dispute_opened_at = opened_at

    @transition(
        field=dispute_status,
        source=DisputeStatus.OPEN,
        target=DisputeStatus.RESOLVED,
        conditions=[funds_held, not_settled],
    )
    def resolve_dispute(
        self,
        resolution: str,
        admin: Any,
        note: str,
        resolved_at: datetime,
    ) -> None:
        """
        Admin adjudicates an open dispute.

        Transition: dispute OPEN -> RESOLVED, and status moves to the
        matching terminal state. Exactly one of released_at / refunded_at
        is set.
        """
        self.resolution = resolution
        self.dispute_resolution_note = note
        self.dispute_resolved_at = resolved_at
        self.settlement_admin = admin
        self.settlement_note = note

        if resolution == DisputeResolution.RELEASE_TO_SELLER:
            self.status = EscrowStatus.RELEASED_TO_SELLER
            self.settlement_status = SettlementStatus.RELEASED
            self.released_at = resolved_at
        else:
            self.status = EscrowStatus.REFUND_TO_BUYER
            self.settlement_status = SettlementStatus.REFUNDED
            self.refunded_at = resolved_at

    @transition(
        field=status,
        source=list(FUNDS_HELD_STATUSES),
        target=EscrowStatus.RELEASED_TO_SELLER,
        conditions=[delivery_confirmed, no_dispute, not_settled],
    )
    def release_to_seller(self, admin: Any, note: str, released_at: datetime) -> None:
        """
        Admin releases held funds after confirmed delivery.

        Transition: PAID/FUNDED -> RELEASED_TO_SELLER
        """
        self.settlement_status = SettlementStatus.RELEASED
        self.settlement_admin = admin
        self.settlement_note = note
        self.released_at = released_at

    @transition(
        field=status,
        source=EscrowStatus.INITIALIZED,
        target=EscrowStatus.EXPIRED,
    )
    def expire(self, expired_at: datetime) -> None:
        """
        Unpaid order passed the expiry cutoff.

        Transition: INITIALIZED -> EXPIRED

        The sweep applies this in bulk with a single UPDATE; the method
        documents the transition for admin tooling and tests.
        """
        self.expired_at = expired_at

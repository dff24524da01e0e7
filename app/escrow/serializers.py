"""
Serializers for escrow API.

Request serializers validate input shape only; business rules (amount
limits, state legality, roles) are enforced by SettlementService.

Serializer Hierarchy:
    Requests:
        EscrowOrderCreateSerializer: product_id, currency
        EscrowVerifySerializer: reference
        EscrowActionSerializer: action, escrow_order_id, payload
        ExpireStaleOrdersSerializer: cutoff_minutes

    Responses:
        EscrowOrderCreatedSerializer: Checkout handoff after creation
        EscrowVerificationSerializer: Poll result
        DeliveryActionResultSerializer: Buyer confirm/dispute result
        DisputeResolutionResultSerializer: Admin resolve result
        ReleaseResultSerializer: Admin release result
        EscrowOrderAdminRowSerializer: Admin queue row with party display
        EscrowOrderDetailSerializer: Full order for its parties
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rest_framework import serializers

from accounts.services import PartyDirectory
from escrow.models import EscrowOrder

if TYPE_CHECKING:
    from typing import Any


# =============================================================================
# Actions
# =============================================================================

ACTION_CONFIRM_DELIVERY = "buyer_confirm_delivery"
ACTION_OPEN_DISPUTE = "buyer_open_dispute"
ACTION_RESOLVE_DISPUTE = "admin_resolve_dispute"
ACTION_RELEASE = "admin_release_to_seller"
ACTION_LIST_DISPUTES = "admin_list_open_disputes"
ACTION_LIST_RELEASES = "admin_list_pending_releases"

ESCROW_ACTIONS = [
    ACTION_CONFIRM_DELIVERY,
    ACTION_OPEN_DISPUTE,
    ACTION_RESOLVE_DISPUTE,
    ACTION_RELEASE,
    ACTION_LIST_DISPUTES,
    ACTION_LIST_RELEASES,
]

# Actions that operate on the whole queue rather than one order
LIST_ACTIONS = frozenset({ACTION_LIST_DISPUTES, ACTION_LIST_RELEASES})


# =============================================================================
# Request Serializers
# =============================================================================


class EscrowOrderCreateSerializer(serializers.Serializer):
    product_id = serializers.UUIDField(help_text="Product to buy through escrow")
    currency = serializers.CharField(
        max_length=3,
        required=False,
        allow_blank=True,
        help_text="ISO 4217 code (defaults to NGN)",
    )


class EscrowVerifySerializer(serializers.Serializer):
    reference = serializers.CharField(
        max_length=100,
        trim_whitespace=True,
        help_text="Paystack reference returned at creation",
    )


class EscrowActionSerializer(serializers.Serializer):
    """
    Envelope for every buyer/admin escrow action.

    escrow_order_id is required for all actions except the admin list
    actions.
    """

    action = serializers.ChoiceField(choices=ESCROW_ACTIONS)
    escrow_order_id = serializers.UUIDField(required=False, allow_null=True)
    payload = serializers.DictField(required=False, default=dict)

    def validate(self, attrs: dict[str, Any]) -> dict[str, Any]:
        if attrs["action"] not in LIST_ACTIONS and not attrs.get("escrow_order_id"):
            raise serializers.ValidationError(
                {"escrow_order_id": "escrow_order_id is required."}
            )
        return attrs


class ExpireStaleOrdersSerializer(serializers.Serializer):
    cutoff_minutes = serializers.IntegerField(
        min_value=1,
        required=False,
        help_text="Expire unpaid orders older than this (default 30)",
    )


# =============================================================================
# Response Serializers
# =============================================================================


class EscrowOrderCreatedSerializer(serializers.ModelSerializer):
    order_id = serializers.UUIDField(source="id", read_only=True)
    reference = serializers.CharField(source="paystack_reference", read_only=True)

    class Meta:
        model = EscrowOrder
        fields = [
            "order_id",
            "reference",
            "authorization_url",
            "access_code",
            "subtotal_kobo",
            "fee_kobo",
            "total_kobo",
            "currency",
        ]
        read_only_fields = fields


class EscrowVerificationSerializer(serializers.Serializer):
    """Serializes a VerificationOutcome."""

    ok = serializers.SerializerMethodField()
    reference = serializers.CharField(source="order.paystack_reference")
    status = serializers.CharField(source="order.status")
    updated = serializers.BooleanField()
    funded = serializers.BooleanField()
    paid_at = serializers.DateTimeField(source="order.paid_at", allow_null=True)

    def get_ok(self, obj) -> bool:
        return True


class _ActionResultSerializer(serializers.ModelSerializer):
    ok = serializers.SerializerMethodField()
    escrow_order_id = serializers.UUIDField(source="id", read_only=True)

    def get_ok(self, obj: EscrowOrder) -> bool:
        return True


class DeliveryActionResultSerializer(_ActionResultSerializer):
    class Meta:
        model = EscrowOrder
        fields = ["ok", "escrow_order_id", "delivery_status", "dispute_status"]
        read_only_fields = fields


class DisputeResolutionResultSerializer(_ActionResultSerializer):
    class Meta:
        model = EscrowOrder
        fields = [
            "ok",
            "escrow_order_id",
            "dispute_status",
            "resolution",
            "released_at",
            "refunded_at",
        ]
        read_only_fields = fields


class ReleaseResultSerializer(_ActionResultSerializer):
    class Meta:
        model = EscrowOrder
        fields = ["ok", "escrow_order_id", "settlement_status", "released_at"]
        read_only_fields = fields


class EscrowOrderAdminRowSerializer(serializers.ModelSerializer):
    """
    One row of an admin queue.

    Expects context["parties"]: the PartyDirectory.display_map() result
    for every buyer and seller in the queue.
    """

    buyer_display = serializers.SerializerMethodField()
    seller_display = serializers.SerializerMethodField()

    class Meta:
        model = EscrowOrder
        fields = [
            "id",
            "status",
            "delivery_status",
            "dispute_status",
            "settlement_status",
            "subtotal_kobo",
            "fee_kobo",
            "total_kobo",
            "currency",
            "product_snapshot",
            "paystack_reference",
            "buyer_id",
            "seller_id",
            "buyer_display",
            "seller_display",
            "paid_at",
            "confirmed_at",
            "dispute_reason",
            "dispute_opened_at",
            "created_at",
        ]
        read_only_fields = fields

    def get_buyer_display(self, obj: EscrowOrder) -> dict[str, str]:
        return self._display(obj.buyer_id)

    def get_seller_display(self, obj: EscrowOrder) -> dict[str, str]:
        return self._display(obj.seller_id)

    def _display(self, user_id) -> dict[str, str]:
        return PartyDirectory.display_for(self.context.get("parties", {}), user_id)


class EscrowOrderDetailSerializer(serializers.ModelSerializer):
    reference = serializers.CharField(source="paystack_reference", read_only=True)

    class Meta:
        model = EscrowOrder
        fields = [
            "id",
            "reference",
            "status",
            "delivery_status",
            "dispute_status",
            "settlement_status",
            "buyer_id",
            "seller_id",
            "product_id",
            "product_snapshot",
            "subtotal_kobo",
            "fee_kobo",
            "total_kobo",
            "currency",
            "authorization_url",
            "paid_at",
            "confirmed_at",
            "dispute_reason",
            "dispute_opened_at",
            "resolution",
            "dispute_resolved_at",
            "released_at",
            "refunded_at",
            "expired_at",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

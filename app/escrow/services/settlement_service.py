"""
Settlement service: every transition of an escrow order.

SettlementService is the only writer of EscrowOrder state. Each
operation follows the same sequence:

    1. Load the order through the repository
    2. Check the caller (buyer ownership, complete profile, or admin)
    3. Check legality in memory with the django-fsm transition
    4. Persist through conditional_update(), guarded on the same
       preconditions, so a concurrent change turns the write into a no-op
    5. Append the audit event in the same transaction

Payment confirmation has three callers (the webhook, the buyer's poll and
the reconciliation job) that all end in confirm_payment(). The guarded
update lets exactly one of them move the order to PAID, and the keyed
success event absorbs the others.

Usage:
    from escrow.services import SettlementService

    order = SettlementService.create_order(buyer=request.user, product_id=pid)
    SettlementService.confirm_payment(reference, amount_paid=103000, source="webhook")
    SettlementService.confirm_delivery(actor=request.user, order_id=order.id)
    SettlementService.release_to_seller(actor=admin_user, order_id=order.id)

    # Tests can swap the gateway
    SettlementService.set_paystack_adapter(FakePaystack)
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import timedelta
from typing import TYPE_CHECKING

from django.conf import settings
from django.db import DatabaseError
from django.db.models import F
from django.utils import timezone

from django_fsm import can_proceed

from core.services import BaseService

from accounts.services import PartyDirectory, RoleResolver
from catalog.services import ListingService
from escrow.adapters import InitializeParams, PaystackAdapter
from escrow.events import EventLog, payment_success_key
from escrow.exceptions import (
    AmountMismatch,
    Forbidden,
    InvalidState,
    PaystackError,
    ProfileIncomplete,
    ValidationError,
)
from escrow.fees import calculate_escrow_fee
from escrow.models import EscrowOrder
from escrow.state_machines import (
    FUNDS_HELD_STATUSES,
    DeliveryStatus,
    DisputeResolution,
    DisputeStatus,
    EscrowEventType,
    EscrowStatus,
)

if TYPE_CHECKING:
    from typing import Any

    from accounts.models import User
    from accounts.services import PartyDisplay


# Fields each transition writes; used as the conditional_update patch
MARK_PAID_FIELDS = ("status", "paid_at")
CONFIRM_DELIVERY_FIELDS = ("delivery_status", "confirmed_at")
OPEN_DISPUTE_FIELDS = ("dispute_status", "dispute_reason", "dispute_opened_at")
RELEASE_FIELDS = (
    "status",
    "settlement_status",
    "settlement_admin",
    "settlement_note",
    "released_at",
)
RESOLVE_FIELDS = (
    "status",
    "dispute_status",
    "resolution",
    "dispute_resolution_note",
    "dispute_resolved_at",
    "settlement_status",
    "settlement_admin",
    "settlement_note",
    "released_at",
    "refunded_at",
)

# Payment confirmation sources and the success event each one writes
PAYMENT_SOURCES = {
    "webhook": EscrowEventType.PAYSTACK_WEBHOOK_SUCCESS,
    "verified": EscrowEventType.PAYSTACK_VERIFIED_SUCCESS,
    "reconciled": EscrowEventType.PAYSTACK_RECONCILED_SUCCESS,
}

SETTLED_STATUSES = (EscrowStatus.RELEASED_TO_SELLER, EscrowStatus.REFUND_TO_BUYER)


# =============================================================================
# Data Types
# =============================================================================


@dataclass
class PaymentConfirmation:
    """
    Outcome of confirm_payment().

    Attributes:
        order: The order as persisted after the call
        transitioned: True only for the caller that moved it to PAID
    """

    order: EscrowOrder
    transitioned: bool


@dataclass
class VerificationOutcome:
    """Outcome of a buyer/admin poll against the gateway."""

    order: EscrowOrder
    updated: bool

    @property
    def funded(self) -> bool:
        return self.order.is_funded


@dataclass
class ReconciliationSummary:
    checked: int = 0
    confirmed: int = 0
    mismatched: int = 0
    errors: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass
class AdminListing:
    """Orders for an admin queue plus display info for every party."""

    orders: list[EscrowOrder]
    parties: dict[str, PartyDisplay] = field(default_factory=dict)


# =============================================================================
# Settlement Service
# =============================================================================


class SettlementService(BaseService):
    """
    Escrow settlement state machine.

    State Transitions:
        create_order:      (none) -> initialized
        confirm_payment:   initialized -> paid
        confirm_delivery:  delivery pending -> confirmed (funds held)
        open_dispute:      dispute none -> open (funds held, delivery pending)
        release_to_seller: paid/funded -> released_to_seller
        resolve_dispute:   dispute open -> resolved, status -> released/refunded
        expire_stale:      initialized -> expired (bulk)
    """

    # Paystack adapter - can be injected for testing
    _paystack_adapter: type | None = None

    @classmethod
    def get_paystack_adapter(cls) -> type:
        """Get the Paystack adapter class."""
        return cls._paystack_adapter or PaystackAdapter

    @classmethod
    def set_paystack_adapter(cls, adapter: type | None) -> None:
        """Set the Paystack adapter class (for testing)."""
        cls._paystack_adapter = adapter

    # =========================================================================
    # Order Creation
    # =========================================================================

    @classmethod
    def create_order(
        cls,
        buyer: User,
        product_id: Any,
        currency: str | None = None,
    ) -> EscrowOrder:
        """
        Create an escrow order and initialize the hosted checkout.

        The order row and its order_created event are committed before the
        gateway is called, so a gateway failure leaves an INITIALIZED order
        behind for the expiry sweep.

        Args:
            buyer: Authenticated buyer
            product_id: Product being bought
            currency: ISO 4217 code (defaults to ESCROW_CURRENCY)

        Returns:
            The order, with authorization_url and access_code set

        Raises:
            NotFoundError: Product not found
            ValidationError: No seller, bad price, buyer is seller, amount
                outside limits, unsupported currency, buyer has no email
            UpstreamFailure: Gateway initialization failed
        """
        currency = cls._clean_currency(currency)

        if not buyer.email:
            raise ValidationError(
                "An email address is required to pay into escrow.",
                error_code="BUYER_EMAIL_REQUIRED",
            )

        listing = ListingService.resolve_listing(product_id)
        tier = RoleResolver.effective_role(buyer)
        quote = calculate_escrow_fee(listing.price_kobo, tier)

        with cls.atomic():
            order = EscrowOrder.objects.create_order(
                buyer=buyer,
                seller=listing.seller,
                product=listing.product,
                snapshot=listing.snapshot,
                quote=quote,
                currency=currency,
            )
            EventLog.append(
                order,
                EscrowEventType.ORDER_CREATED,
                {
                    "buyer_id": str(buyer.pk),
                    "seller_id": str(listing.seller.pk),
                    "product_id": str(listing.product.pk),
                    "tier": quote.tier,
                    "subtotal_kobo": quote.principal_kobo,
                    "fee_kobo": quote.fee_kobo,
                    "total_kobo": quote.total_kobo,
                    "currency": currency,
                },
            )

        log_context = {
            "order_id": str(order.pk),
            "reference": order.paystack_reference,
            "total_kobo": order.total_kobo,
        }
        cls.get_logger().info("Escrow order created", extra=log_context)

        params = InitializeParams(
            order_id=str(order.pk),
            email=buyer.email,
            amount_kobo=order.total_kobo,
            currency=order.currency,
            reference=order.paystack_reference,
            callback_url=f"{settings.SITE_URL.rstrip('/')}/escrow/return",
            metadata={
                "product_id": str(listing.product.pk),
                "buyer_id": str(buyer.pk),
            },
        )

        try:
            result = cls.get_paystack_adapter().initialize(params)
        except PaystackError as e:
            EventLog.append(
                order,
                EscrowEventType.PAYSTACK_INITIALIZE_FAILED,
                {"error_code": e.error_code, "error": e.message, **e.details},
            )
            cls.get_logger().error(
                "Paystack initialization failed for escrow order",
                extra={**log_context, "error_code": e.error_code},
            )
            raise

        with cls.atomic():
            updated = EscrowOrder.objects.conditional_update(
                order.pk,
                expected_statuses=[EscrowStatus.INITIALIZED],
                patch={
                    "authorization_url": result.authorization_url,
                    "access_code": result.access_code,
                },
            )
            EventLog.append(
                order,
                EscrowEventType.PAYSTACK_INITIALIZE,
                {
                    "reference": result.reference,
                    "access_code": result.access_code,
                    "amount_kobo": order.total_kobo,
                },
            )

        if updated is None:
            # Already paid or expired in the meantime; hand back the stored row
            return EscrowOrder.objects.get_by_id(order.pk)
        return updated

    # =========================================================================
    # Payment Confirmation
    # =========================================================================

    @classmethod
    def confirm_payment(
        cls,
        reference: str,
        amount_paid: int,
        source: str,
        payload: dict[str, Any] | None = None,
    ) -> PaymentConfirmation:
        """
        Record a gateway-confirmed payment.

        Idempotent: an order that is no longer INITIALIZED is returned
        unchanged (the keyed success event is still ensured when the amount
        matches). Racing callers produce one PAID transition and one
        success event.

        Args:
            reference: Paystack reference (or order id)
            amount_paid: Amount Paystack reports as charged, in kobo
            source: "webhook", "verified" or "reconciled"
            payload: Gateway data for the audit event

        Raises:
            NotFound: No order for the reference
            AmountMismatch: Amount differs from the stored total (a
                paystack.amount_mismatch event is appended first)
            ValueError: Unknown source
        """
        if source not in PAYMENT_SOURCES:
            raise ValueError(f"Unknown payment source: {source}")

        order = EscrowOrder.objects.find_by_gateway_reference(reference)
        log_context = {
            "order_id": str(order.pk),
            "reference": order.paystack_reference,
            "source": source,
            "status": order.status,
        }

        if isinstance(amount_paid, bool) or amount_paid != order.total_kobo:
            EventLog.append(
                order,
                EscrowEventType.PAYSTACK_AMOUNT_MISMATCH,
                {
                    "source": source,
                    "reference": order.paystack_reference,
                    "expected_kobo": order.total_kobo,
                    "received_kobo": amount_paid,
                    "status": order.status,
                },
            )
            cls.get_logger().warning(
                "Paid amount does not match escrow total",
                extra={
                    **log_context,
                    "expected_kobo": order.total_kobo,
                    "received_kobo": amount_paid,
                },
            )
            raise AmountMismatch(
                "Paid amount does not match the order total.",
                details={
                    "order_id": str(order.pk),
                    "expected_kobo": order.total_kobo,
                    "received_kobo": amount_paid,
                },
            )

        event_type = PAYMENT_SOURCES[source]
        event_key = payment_success_key(order.paystack_reference)
        event_payload = {
            "source": source,
            "reference": order.paystack_reference,
            "amount_kobo": amount_paid,
            "gateway": payload or {},
        }

        if not can_proceed(order.mark_paid):
            if order.status == EscrowStatus.EXPIRED:
                cls.get_logger().warning(
                    "Payment confirmed for an expired escrow order",
                    extra=log_context,
                )
            EventLog.append(order, event_type, event_payload, key=event_key)
            return PaymentConfirmation(order=order, transitioned=False)

        order.mark_paid(paid_at=timezone.now())

        with cls.atomic():
            updated = EscrowOrder.objects.conditional_update(
                order.pk,
                expected_statuses=[EscrowStatus.INITIALIZED],
                patch=order.field_values(*MARK_PAID_FIELDS),
            )
            current = updated or EscrowOrder.objects.get_by_id(order.pk)
            EventLog.append(current, event_type, event_payload, key=event_key)

        if updated is None:
            cls.get_logger().info(
                "Payment already confirmed by another caller",
                extra={**log_context, "status": current.status},
            )
            return PaymentConfirmation(order=current, transitioned=False)

        cls.get_logger().info(
            "Escrow order marked paid",
            extra={**log_context, "status": updated.status},
        )
        return PaymentConfirmation(order=updated, transitioned=True)

    @classmethod
    def verify_payment(cls, actor: User, reference: str) -> VerificationOutcome:
        """
        Poll the gateway for an order's payment status (buyer return page).

        Short-circuits without a gateway call once the order has left
        INITIALIZED.

        Raises:
            ValidationError: Missing reference
            NotFound: Unknown reference
            Forbidden: Caller is neither the buyer nor an admin
            UpstreamFailure: Gateway verify failed

        An amount mismatch is recorded for operators and the order is
        returned unchanged.
        """
        reference = (reference or "").strip()
        if not reference:
            raise ValidationError(
                "Reference is required.",
                error_code="MISSING_REFERENCE",
            )

        order = EscrowOrder.objects.find_by_gateway_reference(reference)
        if str(order.buyer_id) != str(actor.pk) and not RoleResolver.is_admin(actor):
            raise Forbidden(
                "You cannot verify this escrow order.",
                details={"order_id": str(order.pk)},
            )

        if order.status != EscrowStatus.INITIALIZED:
            return VerificationOutcome(order=order, updated=False)

        result = cls.get_paystack_adapter().verify(order.paystack_reference)
        if not result.success:
            cls.get_logger().info(
                "Paystack transaction not successful yet",
                extra={
                    "order_id": str(order.pk),
                    "reference": order.paystack_reference,
                    "gateway_status": result.raw_status,
                },
            )
            return VerificationOutcome(order=order, updated=False)

        try:
            confirmation = cls.confirm_payment(
                order.paystack_reference,
                amount_paid=result.amount_paid,
                source="verified",
                payload=result.raw_response,
            )
        except AmountMismatch:
            cls.get_logger().warning(
                "Verify poll hit an amount mismatch",
                extra={
                    "order_id": str(order.pk),
                    "reference": order.paystack_reference,
                },
            )
            return VerificationOutcome(order=order, updated=False)
        return VerificationOutcome(
            order=confirmation.order,
            updated=confirmation.transitioned,
        )

    @classmethod
    def reconcile_initialized(
        cls,
        older_than_minutes: int | None = None,
        batch_size: int | None = None,
    ) -> ReconciliationSummary:
        """
        Verify unpaid orders against the gateway and confirm the paid ones.

        Covers payments whose webhook never arrived and whose buyer never
        came back to the return page. Gateway failures and amount
        mismatches are counted per order; the batch keeps going.
        """
        minutes = (
            older_than_minutes
            if older_than_minutes is not None
            else settings.ESCROW_RECONCILE_AFTER_MINUTES
        )
        limit = batch_size or settings.ESCROW_RECONCILE_BATCH_SIZE
        cutoff = timezone.now() - timedelta(minutes=minutes)

        orders = list(
            EscrowOrder.objects.stale_unpaid(cutoff).order_by("created_at")[:limit]
        )
        summary = ReconciliationSummary()
        adapter = cls.get_paystack_adapter()

        for order in orders:
            summary.checked += 1
            try:
                result = adapter.verify(order.paystack_reference)
            except PaystackError as e:
                summary.errors += 1
                cls.get_logger().warning(
                    "Reconciliation verify failed",
                    extra={
                        "order_id": str(order.pk),
                        "reference": order.paystack_reference,
                        "error_code": e.error_code,
                    },
                )
                continue

            if not result.success:
                continue

            try:
                confirmation = cls.confirm_payment(
                    order.paystack_reference,
                    amount_paid=result.amount_paid,
                    source="reconciled",
                    payload=result.raw_response,
                )
            except AmountMismatch:
                summary.mismatched += 1
                continue

            if confirmation.transitioned:
                summary.confirmed += 1

        cls.get_logger().info(
            "Escrow reconciliation finished",
            extra=summary.to_dict(),
        )
        return summary

    # =========================================================================
    # Buyer Actions
    # =========================================================================

    @classmethod
    def confirm_delivery(cls, actor: User, order_id: Any) -> EscrowOrder:
        """
        Buyer confirms the item arrived. Status is unchanged.

        Raises:
            NotFound: Unknown order
            Forbidden: Caller is not the buyer
            ProfileIncomplete: Buyer profile incomplete
            InvalidState: Not funded, already confirmed, or disputed
        """
        order = EscrowOrder.objects.get_by_id(order_id)
        cls._require_buyer(actor, order)
        cls._require_complete_profile(actor)

        if not can_proceed(order.confirm_delivery):
            raise cls._refusal(order, "confirm_delivery")

        order.confirm_delivery(confirmed_at=timezone.now())

        with cls.atomic():
            updated = EscrowOrder.objects.conditional_update(
                order.pk,
                expected_statuses=FUNDS_HELD_STATUSES,
                patch=order.field_values(*CONFIRM_DELIVERY_FIELDS),
                delivery_status=DeliveryStatus.PENDING,
                dispute_status=DisputeStatus.NONE,
            )
            if updated is None:
                raise cls._lost_race(order, "confirm_delivery")
            EventLog.append(
                updated,
                EscrowEventType.DELIVERY_CONFIRMED,
                {"actor_id": str(actor.pk), "confirmed_at": updated.confirmed_at},
            )

        cls.get_logger().info(
            "Delivery confirmed",
            extra={"order_id": str(updated.pk), "actor_id": str(actor.pk)},
        )
        return updated

    @classmethod
    def open_dispute(cls, actor: User, order_id: Any, reason: str) -> EscrowOrder:
        """
        Buyer opens a dispute before confirming delivery.

        Raises:
            NotFound: Unknown order
            Forbidden: Caller is not the buyer
            ProfileIncomplete: Buyer profile incomplete
            ValidationError: Reason shorter than the configured minimum
            InvalidState: Not funded, delivery confirmed, or already disputed
        """
        order = EscrowOrder.objects.get_by_id(order_id)
        cls._require_buyer(actor, order)
        cls._require_complete_profile(actor)

        reason = (reason or "").strip()
        min_length = settings.ESCROW_DISPUTE_REASON_MIN_LENGTH
        if len(reason) < min_length:
            raise ValidationError(
                f"Please describe the problem (at least {min_length} characters).",
                error_code="DISPUTE_REASON_TOO_SHORT",
                details={"min_length": min_length},
            )

        if not can_proceed(order.open_dispute):
            raise cls._refusal(order, "open_dispute")

        order.open_dispute(reason=reason, opened_at=timezone.now())

        with cls.atomic():
            updated = EscrowOrder.objects.conditional_update(
                order.pk,
                expected_statuses=FUNDS_HELD_STATUSES,
                patch=order.field_values(*OPEN_DISPUTE_FIELDS),
                delivery_status=DeliveryStatus.PENDING,
                dispute_status=DisputeStatus.NONE,
            )
            if updated is None:
                raise cls._lost_race(order, "open_dispute")
            EventLog.append(
                updated,
                EscrowEventType.DISPUTE_OPENED,
                {"actor_id": str(actor.pk), "reason": reason},
            )

        cls.get_logger().info(
            "Dispute opened",
            extra={"order_id": str(updated.pk), "actor_id": str(actor.pk)},
        )
        return updated

    # =========================================================================
    # Admin Actions
    # =========================================================================

    @classmethod
    def release_to_seller(
        cls,
        actor: User,
        order_id: Any,
        note: str | None = None,
    ) -> EscrowOrder:
        """
        Admin releases held funds to the seller after confirmed delivery.

        Raises:
            Forbidden: Caller is not an admin
            ValidationError: Note given but too short
            NotFound: Unknown order
            InvalidState: Not funded, delivery not confirmed, disputed, or
                already settled
        """
        cls._require_admin(actor)
        note = cls._clean_note(note)
        order = EscrowOrder.objects.get_by_id(order_id)

        if not can_proceed(order.release_to_seller):
            raise cls._refusal(order, "release_to_seller")

        order.release_to_seller(admin=actor, note=note, released_at=timezone.now())

        with cls.atomic():
            updated = EscrowOrder.objects.conditional_update(
                order.pk,
                expected_statuses=FUNDS_HELD_STATUSES,
                patch=order.field_values(*RELEASE_FIELDS),
                delivery_status=DeliveryStatus.CONFIRMED,
                dispute_status=DisputeStatus.NONE,
                released_at__isnull=True,
                refunded_at__isnull=True,
            )
            if updated is None:
                raise cls._lost_race(order, "release_to_seller")
            EventLog.append(
                updated,
                EscrowEventType.FUNDS_RELEASED_TO_SELLER,
                {
                    "actor_id": str(actor.pk),
                    "note": note,
                    "released_at": updated.released_at,
                    "amount_kobo": updated.subtotal_kobo,
                },
            )

        cls.get_logger().info(
            "Escrow funds released to seller",
            extra={"order_id": str(updated.pk), "actor_id": str(actor.pk)},
        )
        return updated

    @classmethod
    def resolve_dispute(
        cls,
        actor: User,
        order_id: Any,
        resolution: str,
        note: str | None = None,
    ) -> EscrowOrder:
        """
        Admin adjudicates an open dispute.

        Sets exactly one of released_at / refunded_at.

        Raises:
            Forbidden: Caller is not an admin
            ValidationError: Unknown resolution, or note given but too short
            NotFound: Unknown order
            InvalidState: No open dispute, not funded, or already settled
        """
        cls._require_admin(actor)

        if resolution not in DisputeResolution.values:
            raise ValidationError(
                "Resolution must be release_to_seller or refund_buyer.",
                error_code="INVALID_RESOLUTION",
                details={"resolution": resolution},
            )
        note = cls._clean_note(note)
        order = EscrowOrder.objects.get_by_id(order_id)

        if not can_proceed(order.resolve_dispute):
            raise cls._refusal(order, "resolve_dispute")

        order.resolve_dispute(
            resolution=resolution,
            admin=actor,
            note=note,
            resolved_at=timezone.now(),
        )

        with cls.atomic():
            updated = EscrowOrder.objects.conditional_update(
                order.pk,
                expected_statuses=FUNDS_HELD_STATUSES,
                patch=order.field_values(*RESOLVE_FIELDS),
                dispute_status=DisputeStatus.OPEN,
                released_at__isnull=True,
                refunded_at__isnull=True,
            )
            if updated is None:
                raise cls._lost_race(order, "resolve_dispute")
            EventLog.append(
                updated,
                EscrowEventType.DISPUTE_RESOLVED,
                {
                    "actor_id": str(actor.pk),
                    "resolution": resolution,
                    "note": note,
                    "status": updated.status,
                },
            )

        cls.get_logger().info(
            "Dispute resolved",
            extra={
                "order_id": str(updated.pk),
                "actor_id": str(actor.pk),
                "resolution": resolution,
            },
        )
        return updated

    @classmethod
    def list_open_disputes(cls, actor: User, limit: int | None = None) -> AdminListing:
        """Open disputes, newest dispute first. Admin only."""
        cls._require_admin(actor)
        limit = limit or settings.ESCROW_ADMIN_LIST_LIMIT
        return cls._admin_listing(list(EscrowOrder.objects.open_disputes()[:limit]))

    @classmethod
    def list_pending_releases(
        cls, actor: User, limit: int | None = None
    ) -> AdminListing:
        """Delivered, undisputed, unreleased orders, newest first. Admin only."""
        cls._require_admin(actor)
        limit = limit or settings.ESCROW_ADMIN_LIST_LIMIT
        return cls._admin_listing(list(EscrowOrder.objects.pending_releases()[:limit]))

    @classmethod
    def get_order_for_party(cls, actor: User, order_id: Any) -> EscrowOrder:
        """
        Load an order for its buyer, its seller or an admin.

        Raises:
            NotFound: Unknown order
            Forbidden: Caller is not a party and not an admin
        """
        order = EscrowOrder.objects.get_by_id(order_id)
        if str(actor.pk) in (str(order.buyer_id), str(order.seller_id)):
            return order
        if RoleResolver.is_admin(actor):
            return order
        raise Forbidden(
            "You are not a party to this escrow order.",
            details={"order_id": str(order.pk)},
        )

    # =========================================================================
    # Expiry Sweep
    # =========================================================================

    @classmethod
    def expire_stale(cls, cutoff_minutes: int | None = None) -> int:
        """
        Expire INITIALIZED orders older than the cutoff in one UPDATE.

        Idempotent: already-expired orders no longer match. No per-order
        events are written.

        Returns:
            Number of orders expired (0 when the update fails)
        """
        minutes = (
            cutoff_minutes
            if cutoff_minutes is not None
            else settings.ESCROW_EXPIRY_CUTOFF_MINUTES
        )
        if isinstance(minutes, bool) or not isinstance(minutes, int) or minutes < 1:
            raise ValidationError(
                "cutoff_minutes must be a positive integer.",
                error_code="INVALID_CUTOFF",
                details={"cutoff_minutes": minutes},
            )

        now = timezone.now()
        cutoff = now - timedelta(minutes=minutes)

        try:
            with cls.atomic():
                count = EscrowOrder.objects.stale_unpaid(cutoff).update(
                    status=EscrowStatus.EXPIRED,
                    expired_at=now,
                    updated_at=now,
                    version=F("version") + 1,
                )
        except DatabaseError:
            cls.get_logger().error(
                "Escrow expiry sweep failed",
                extra={"cutoff_minutes": minutes},
                exc_info=True,
            )
            return 0

        cls.get_logger().info(
            "Escrow expiry sweep finished",
            extra={"cutoff_minutes": minutes, "expired_count": count},
        )
        return count

    # =========================================================================
    # Guards
    # =========================================================================

    @classmethod
    def _require_buyer(cls, actor: User, order: EscrowOrder) -> None:
        if str(order.buyer_id) != str(actor.pk):
            cls.get_logger().warning(
                "Non-buyer attempted a buyer action",
                extra={"order_id": str(order.pk), "actor_id": str(actor.pk)},
            )
            raise Forbidden(
                "Only the buyer can perform this action.",
                details={"order_id": str(order.pk)},
            )

    @classmethod
    def _require_complete_profile(cls, actor: User) -> None:
        profile = RoleResolver.get_profile(actor)
        if profile is None:
            missing = ["full_name", "phone", "city"]
        elif not profile.is_complete:
            missing = profile.missing_fields
        else:
            return
        raise ProfileIncomplete(
            "Complete your profile (name, phone and city) to continue.",
            details={"missing": missing},
        )

    @classmethod
    def _require_admin(cls, actor: User) -> None:
        if not RoleResolver.is_admin(actor):
            cls.get_logger().warning(
                "Non-admin attempted an admin escrow action",
                extra={"actor_id": str(getattr(actor, "pk", None))},
            )
            raise Forbidden("Admin access required.")

    @staticmethod
    def _clean_note(note: str | None) -> str:
        note = (note or "").strip()
        min_length = settings.ESCROW_ADMIN_NOTE_MIN_LENGTH
        if note and len(note) < min_length:
            raise ValidationError(
                f"Note must be at least {min_length} characters.",
                error_code="NOTE_TOO_SHORT",
                details={"min_length": min_length},
            )
        return note

    @staticmethod
    def _clean_currency(currency: str | None) -> str:
        supported = settings.ESCROW_CURRENCY
        currency = (currency or supported).strip().upper()
        if currency != supported:
            raise ValidationError(
                f"Escrow only supports {supported}.",
                error_code="UNSUPPORTED_CURRENCY",
                details={"currency": currency},
            )
        return currency

    # =========================================================================
    # Refusals
    # =========================================================================

    @classmethod
    def _refusal(cls, order: EscrowOrder, action: str) -> InvalidState:
        """Explain why a transition is not legal from the order's state."""
        if action == "resolve_dispute" and order.dispute_status != DisputeStatus.OPEN:
            code, message = "DISPUTE_NOT_OPEN", "There is no open dispute on this order."
        elif order.status in SETTLED_STATUSES:
            code, message = "ALREADY_SETTLED", "Escrow is already settled."
        elif order.status not in FUNDS_HELD_STATUSES:
            code, message = "ESCROW_NOT_FUNDED", "Escrow is not funded."
        elif action == "confirm_delivery":
            if order.delivery_status == DeliveryStatus.CONFIRMED:
                code, message = (
                    "DELIVERY_ALREADY_CONFIRMED",
                    "Delivery is already confirmed.",
                )
            else:
                code, message = (
                    "DISPUTE_IN_PROGRESS",
                    "Delivery cannot be confirmed while a dispute exists.",
                )
        elif action == "open_dispute":
            if order.dispute_status != DisputeStatus.NONE:
                code, message = (
                    "DISPUTE_ALREADY_OPENED",
                    "A dispute already exists for this order.",
                )
            else:
                code, message = (
                    "DELIVERY_ALREADY_CONFIRMED",
                    "Disputes cannot be opened after delivery is confirmed.",
                )
        elif action == "release_to_seller":
            if order.dispute_status != DisputeStatus.NONE:
                code, message = (
                    "DISPUTE_IN_PROGRESS",
                    "Funds cannot be released while a dispute exists.",
                )
            elif order.delivery_status != DeliveryStatus.CONFIRMED:
                code, message = (
                    "DELIVERY_NOT_CONFIRMED",
                    "Delivery must be confirmed before release.",
                )
            else:
                code, message = "ALREADY_SETTLED", "Escrow is already settled."
        else:
            code, message = "ALREADY_SETTLED", "Escrow is already settled."

        cls.get_logger().warning(
            "Escrow transition refused",
            extra={
                "order_id": str(order.pk),
                "action": action,
                "reason": code,
                "status": order.status,
                "delivery_status": order.delivery_status,
                "dispute_status": order.dispute_status,
            },
        )
        return InvalidState(
            message,
            error_code=code,
            details={
                "order_id": str(order.pk),
                "status": order.status,
                "delivery_status": order.delivery_status,
                "dispute_status": order.dispute_status,
            },
        )

    @classmethod
    def _lost_race(cls, order: EscrowOrder, action: str) -> InvalidState:
        cls.get_logger().warning(
            "Escrow order changed before the update was applied",
            extra={"order_id": str(order.pk), "action": action},
        )
        return InvalidState(
            "Escrow order changed, please refresh and try again.",
            error_code="CONCURRENT_UPDATE",
            details={"order_id": str(order.pk)},
        )

    @staticmethod
    def _admin_listing(orders: list[EscrowOrder]) -> AdminListing:
        party_ids = [order.buyer_id for order in orders] + [
            order.seller_id for order in orders
        ]
        return AdminListing(
            orders=orders,
            parties=PartyDirectory.display_map(party_ids),
        )

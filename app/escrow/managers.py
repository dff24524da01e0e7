"""
Order repository for EscrowOrder.

The queryset below is the only way settlement code reads or writes
orders. Its central primitive is conditional_update(): a single UPDATE
whose WHERE clause carries the expected status set (plus any extra axis
guards). When another request has already moved the order, the UPDATE
matches zero rows and the call returns None. That is a no-op, not an
error; callers decide what a no-op means for them.

Two confirmers racing to mark the same order paid therefore need no
lock: the database's row-level atomicity lets exactly one UPDATE match.

Usage:
    order = EscrowOrder.objects.get_by_id(order_id)

    updated = EscrowOrder.objects.conditional_update(
        order.pk,
        expected_statuses=[EscrowStatus.INITIALIZED],
        patch={"status": EscrowStatus.PAID, "paid_at": now},
    )
    if updated is None:
        ...  # someone else got there first
"""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import models
from django.db.models import F
from django.utils import timezone

from escrow.exceptions import NotFound, ValidationError
from escrow.state_machines import (
    FUNDS_HELD_STATUSES,
    DeliveryStatus,
    DisputeStatus,
    EscrowStatus,
)

if TYPE_CHECKING:
    from collections.abc import Iterable
    from datetime import datetime
    from typing import Any

    from escrow.fees import FeeQuote


logger = logging.getLogger(__name__)


# Fields that may never be written after creation
IMMUTABLE_FIELDS = frozenset(
    {
        "id",
        "pk",
        "buyer",
        "buyer_id",
        "seller",
        "seller_id",
        "subtotal_kobo",
        "fee_kobo",
        "total_kobo",
        "currency",
        "buyer_tier",
        "created_at",
    }
)


def generate_reference() -> str:
    """Gateway reference for a new order, e.g. esc_3f2b...(32 hex chars)."""
    return f"esc_{uuid.uuid4().hex}"


class EscrowOrderQuerySet(models.QuerySet):
    """QuerySet with the escrow order repository operations."""

    # ==========================================================================
    # Creation
    # ==========================================================================

    def create_order(
        self,
        *,
        buyer: Any,
        seller: Any,
        product: Any,
        snapshot: dict[str, Any],
        quote: FeeQuote,
        currency: str,
    ):
        """
        Insert a new order in INITIALIZED.

        Raises:
            ValidationError: buyer is the seller, principal outside the
                configured floor/ceiling, or inconsistent totals
        """
        if str(buyer.pk) == str(seller.pk):
            raise ValidationError(
                "You cannot open escrow on your own listing.",
                error_code="BUYER_IS_SELLER",
            )

        minimum = settings.ESCROW_MIN_PRINCIPAL_KOBO
        maximum = settings.ESCROW_MAX_PRINCIPAL_KOBO
        if quote.principal_kobo < minimum:
            raise ValidationError(
                f"Escrow is only available for items of ₦{minimum // 100:,} and above.",
                error_code="ESCROW_BELOW_MINIMUM",
                details={
                    "principal_kobo": quote.principal_kobo,
                    "minimum_kobo": minimum,
                },
            )
        if quote.principal_kobo > maximum:
            raise ValidationError(
                "Item price exceeds the escrow limit.",
                error_code="ESCROW_ABOVE_MAXIMUM",
                details={
                    "principal_kobo": quote.principal_kobo,
                    "maximum_kobo": maximum,
                },
            )
        if quote.total_kobo != quote.principal_kobo + quote.fee_kobo:
            raise ValidationError(
                "Order total must equal subtotal plus fee.",
                error_code="INCONSISTENT_TOTAL",
            )

        return self.create(
            buyer=buyer,
            seller=seller,
            product=product,
            product_snapshot=snapshot,
            subtotal_kobo=quote.principal_kobo,
            fee_kobo=quote.fee_kobo,
            total_kobo=quote.total_kobo,
            buyer_tier=quote.tier,
            currency=currency,
            paystack_reference=generate_reference(),
        )

    # ==========================================================================
    # Lookups
    # ==========================================================================

    def get_by_id(self, order_id: Any):
        """
        Raises:
            NotFound: No order with that id (malformed ids included)
        """
        try:
            return self.get(pk=order_id)
        except (self.model.DoesNotExist, DjangoValidationError, ValueError):
            raise NotFound(
                "Escrow order not found.",
                error_code="ESCROW_ORDER_NOT_FOUND",
                details={"order_id": str(order_id)},
            )

    def find_by_gateway_reference(self, reference: str):
        """
        Look up an order by Paystack reference, falling back to the order
        id for references that were issued as the order id itself.

        Raises:
            NotFound: No order carries that reference
        """
        reference = (reference or "").strip()
        if reference:
            order = self.filter(paystack_reference=reference).first()
            if order is not None:
                return order
            try:
                order = self.filter(pk=uuid.UUID(reference)).first()
            except ValueError:
                order = None
            if order is not None:
                return order

        raise NotFound(
            "Escrow order not found for reference.",
            error_code="ESCROW_REFERENCE_NOT_FOUND",
            details={"reference": reference},
        )

    def open_disputes(self):
        return self.filter(dispute_status=DisputeStatus.OPEN).order_by(
            "-dispute_opened_at"
        )

    def pending_releases(self):
        return self.filter(
            status__in=FUNDS_HELD_STATUSES,
            delivery_status=DeliveryStatus.CONFIRMED,
            dispute_status=DisputeStatus.NONE,
            released_at__isnull=True,
        ).order_by("-created_at")

    def stale_unpaid(self, cutoff: datetime):
        return self.filter(status=EscrowStatus.INITIALIZED, created_at__lt=cutoff)

    # ==========================================================================
    # Guarded Update
    # ==========================================================================

    def conditional_update(
        self,
        order_id: Any,
        expected_statuses: Iterable[str],
        patch: dict[str, Any],
        **guards: Any,
    ):
        """
        Apply `patch` only if the order's status is in `expected_statuses`
        and every extra guard (e.g. dispute_status="none") still holds.

        Args:
            order_id: Order primary key
            expected_statuses: Statuses the order must currently be in
            patch: Field values to write
            **guards: Additional filter lookups for the WHERE clause

        Returns:
            The freshly loaded order, or None if nothing matched

        Raises:
            ValueError: patch touches an immutable field, or no statuses given
        """
        expected = [str(status) for status in expected_statuses]
        if not expected:
            raise ValueError("expected_statuses must not be empty")

        forbidden = IMMUTABLE_FIELDS.intersection(patch)
        if forbidden:
            raise ValueError(
                f"Cannot modify immutable escrow fields: {sorted(forbidden)}"
            )

        rows = self.filter(pk=order_id, status__in=expected, **guards).update(
            **patch,
            updated_at=timezone.now(),
            version=F("version") + 1,
        )

        if rows == 0:
            logger.info(
                "Guarded update matched no row",
                extra={
                    "order_id": str(order_id),
                    "expected_statuses": expected,
                    "guards": {key: str(value) for key, value in guards.items()},
                },
            )
            return None

        return self.get(pk=order_id)


class EscrowOrderManager(models.Manager.from_queryset(EscrowOrderQuerySet)):
    pass

"""
EscrowEvent model: the append-only audit trail for escrow orders.

Every transition and every external callback that touches an order
leaves one row here. Rows are never updated or deleted.

Some event types carry an event_key (derived from the gateway
reference). The unique constraint on event_key is what absorbs a
webhook delivered twice, or a webhook and a poll confirming the same
payment: the second insert collides and is treated as already done.

Usage:
    from escrow.events import EventLog

    EventLog.append(order, EscrowEventType.DELIVERY_CONFIRMED, {"confirmed_at": now})
"""

from __future__ import annotations

from django.core.serializers.json import DjangoJSONEncoder
from django.db import models

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from escrow.state_machines import EscrowEventType


class AppendOnlyError(Exception):
    """Raised on any attempt to modify or delete an existing event."""


class EscrowEvent(UUIDPrimaryKeyMixin, BaseModel):
    """
    One entry in an order's audit trail.

    Fields:
        order: The order this event documents (appending never mutates it)
        event_type: Transition or callback tag
        payload: Snapshot of the triggering data
        event_key: Optional uniqueness key for idempotent replay
    """

    order = models.ForeignKey(
        "escrow.EscrowOrder",
        on_delete=models.PROTECT,
        related_name="events",
    )

    event_type = models.CharField(
        max_length=64,
        choices=EscrowEventType.choices,
        db_index=True,
    )

    payload = models.JSONField(
        default=dict,
        blank=True,
        encoder=DjangoJSONEncoder,
    )

    event_key = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        help_text="Idempotency key; duplicates are absorbed, not stored",
    )

    class Meta:
        ordering = ["created_at"]
        verbose_name = "Escrow Event"
        verbose_name_plural = "Escrow Events"
        indexes = [
            models.Index(
                fields=["order", "event_type"],
                name="escrow_escr_order_i_3b9d27_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"EscrowEvent({self.event_type}, order={self.order_id})"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise AppendOnlyError("Escrow events are append-only")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise AppendOnlyError("Escrow events are append-only")

"""
Event log: append-only audit trail with idempotent keyed appends.

Usage:
    from escrow.events import EventLog, payment_success_key

    # Unkeyed: always inserts
    EventLog.append(order, EscrowEventType.DISPUTE_OPENED, {"reason": reason})

    # Keyed: a second append with the same key is a successful no-op
    event, created = EventLog.append(
        order,
        EscrowEventType.PAYSTACK_WEBHOOK_SUCCESS,
        payload,
        key=payment_success_key(order.paystack_reference),
    )
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from django.core.serializers.json import DjangoJSONEncoder

from core.services import BaseService

from escrow.models import EscrowEvent

if TYPE_CHECKING:
    from typing import Any

    from escrow.models import EscrowOrder


def payment_success_key(reference: str) -> str:
    """
    Uniqueness key shared by every payment confirmation path.

    Webhook, poll and reconciliation all write their success event under
    this key, so one reference yields exactly one success event.
    """
    return f"paystack.success:{reference}"


class EventLog(BaseService):
    """Appends audit events for escrow orders."""

    @classmethod
    def append(
        cls,
        order: EscrowOrder,
        event_type: str,
        payload: dict[str, Any] | None = None,
        key: str | None = None,
    ) -> tuple[EscrowEvent, bool]:
        """
        Append an event for `order`.

        Args:
            order: Order the event documents
            event_type: EscrowEventType value
            payload: JSON-serialisable snapshot (datetimes/UUIDs allowed)
            key: Optional idempotency key

        Returns:
            (event, created). For a duplicate key, the existing event and
            False; its payload is left untouched.
        """
        data = cls._to_json(payload or {})

        if key is None:
            event = EscrowEvent.objects.create(
                order=order,
                event_type=event_type,
                payload=data,
            )
            created = True
        else:
            # get_or_create runs the insert in a savepoint and re-reads on
            # IntegrityError, so a racing duplicate never poisons the
            # caller's transaction
            event, created = EscrowEvent.objects.get_or_create(
                event_key=key,
                defaults={
                    "order": order,
                    "event_type": event_type,
                    "payload": data,
                },
            )

        log_extra = {
            "order_id": str(order.pk),
            "event_type": event_type,
            "event_key": key,
        }
        if created:
            cls.get_logger().info("Escrow event appended", extra=log_extra)
        else:
            cls.get_logger().info(
                "Duplicate escrow event absorbed",
                extra={**log_extra, "existing_event_type": event.event_type},
            )

        return event, created

    @classmethod
    def for_order(cls, order: EscrowOrder):
        return EscrowEvent.objects.filter(order=order).order_by("created_at")

    @staticmethod
    def _to_json(payload: dict[str, Any]) -> dict[str, Any]:
        return json.loads(json.dumps(payload, cls=DjangoJSONEncoder))

"""
State machine enums and helpers for escrow models.

This module defines the state enums used by escrow models with django-fsm.
"""

from escrow.state_machines.states import (
    FUNDS_HELD_STATUSES,
    TERMINAL_STATUSES,
    DeliveryStatus,
    DisputeResolution,
    DisputeStatus,
    EscrowEventType,
    EscrowStatus,
    SettlementStatus,
)

__all__ = [
    "FUNDS_HELD_STATUSES",
    "TERMINAL_STATUSES",
    "DeliveryStatus",
    "DisputeResolution",
    "DisputeStatus",
    "EscrowEventType",
    "EscrowStatus",
    "SettlementStatus",
]

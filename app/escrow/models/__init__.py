"""
Escrow models.

- EscrowOrder: One escrow attempt and its settlement state
- EscrowEvent: Append-only audit trail entries
"""

from escrow.models.escrow_event import AppendOnlyError, EscrowEvent
from escrow.models.escrow_order import EscrowOrder

__all__ = [
    "AppendOnlyError",
    "EscrowEvent",
    "EscrowOrder",
]

"""
Escrow services.

Usage:
    from escrow.services import SettlementService
"""

from escrow.services.settlement_service import (
    AdminListing,
    PaymentConfirmation,
    ReconciliationSummary,
    SettlementService,
    VerificationOutcome,
)

__all__ = [
    "AdminListing",
    "PaymentConfirmation",
    "ReconciliationSummary",
    "SettlementService",
    "VerificationOutcome",
]

"""
Payment gateway adapters for escrow.

Usage:
    from escrow.adapters import PaystackAdapter, InitializeParams
"""

from escrow.adapters.paystack_adapter import (
    InitializeParams,
    InitializeResult,
    PaystackAdapter,
    VerifyResult,
)

__all__ = [
    "InitializeParams",
    "InitializeResult",
    "PaystackAdapter",
    "VerifyResult",
]

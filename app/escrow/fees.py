"""
Escrow fee calculator.

One canonical rule prices every escrow order:

    fee   = max(minimum[tier], round_half_up(principal * rate[tier]))
    total = principal + fee

All amounts are integers in kobo. The arithmetic runs on Decimal so the
fee is exact for any principal the order model can store.

Usage:
    from escrow.fees import calculate_escrow_fee

    quote = calculate_escrow_fee(100_000, "free")
    quote.fee_kobo    # 3000
    quote.total_kobo  # 103000
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import TYPE_CHECKING

from escrow.exceptions import ValidationError

if TYPE_CHECKING:
    from typing import Any


@dataclass(frozen=True)
class FeeRule:
    rate: Decimal
    minimum_kobo: int


# Higher tiers pay a lower percentage and a lower minimum
FEE_SCHEDULE: dict[str, FeeRule] = {
    "free": FeeRule(rate=Decimal("0.03"), minimum_kobo=500),
    "pro": FeeRule(rate=Decimal("0.03"), minimum_kobo=500),
    "premium": FeeRule(rate=Decimal("0.025"), minimum_kobo=400),
    "institution": FeeRule(rate=Decimal("0.02"), minimum_kobo=300),
    "admin": FeeRule(rate=Decimal("0.02"), minimum_kobo=300),
}

# Unknown tiers are priced with the most expensive rule
FALLBACK_TIER = "free"


@dataclass(frozen=True)
class FeeQuote:
    """
    Result of pricing one escrow order.

    Attributes:
        principal_kobo: Item price (order subtotal)
        fee_kobo: Escrow fee charged to the buyer
        total_kobo: Amount the buyer pays the gateway
        tier: Tier the rule was looked up with (after fallback)
        rate: Percentage rate applied
        minimum_kobo: Minimum fee for the tier
    """

    principal_kobo: int
    fee_kobo: int
    total_kobo: int
    tier: str
    rate: Decimal
    minimum_kobo: int


def resolve_fee_rule(tier: str | None) -> tuple[str, FeeRule]:
    """Return (tier, rule), falling back to FALLBACK_TIER for unknown tiers."""
    key = str(tier or "").strip().lower()
    if key in FEE_SCHEDULE:
        return key, FEE_SCHEDULE[key]
    return FALLBACK_TIER, FEE_SCHEDULE[FALLBACK_TIER]


def normalize_principal(principal: Any) -> int:
    """
    Coerce a principal to a positive integer amount of kobo.

    Accepts ints, and floats/Decimals that hold an integral value.

    Raises:
        ValidationError: bool, non-numeric, non-finite, fractional,
            zero or negative principal
    """
    if isinstance(principal, bool) or principal is None:
        raise _invalid_principal(principal)

    if isinstance(principal, int):
        value = principal
    elif isinstance(principal, float):
        if not math.isfinite(principal) or not principal.is_integer():
            raise _invalid_principal(principal)
        value = int(principal)
    elif isinstance(principal, Decimal):
        try:
            if not principal.is_finite() or principal != principal.to_integral_value():
                raise _invalid_principal(principal)
        except InvalidOperation:
            raise _invalid_principal(principal)
        value = int(principal)
    else:
        raise _invalid_principal(principal)

    if value <= 0:
        raise _invalid_principal(principal)
    return value


def calculate_escrow_fee(principal_kobo: Any, tier: str | None) -> FeeQuote:
    """
    Price an escrow order.

    Args:
        principal_kobo: Item price in kobo (positive, integral)
        tier: Buyer's effective tier (free, pro, premium, institution, admin)

    Returns:
        FeeQuote with fee and total

    Raises:
        ValidationError: Principal is not a positive finite integral amount
    """
    principal = normalize_principal(principal_kobo)
    resolved_tier, rule = resolve_fee_rule(tier)

    percentage_fee = int(
        (Decimal(principal) * rule.rate).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    )
    fee = max(rule.minimum_kobo, percentage_fee)

    return FeeQuote(
        principal_kobo=principal,
        fee_kobo=fee,
        total_kobo=principal + fee,
        tier=resolved_tier,
        rate=rule.rate,
        minimum_kobo=rule.minimum_kobo,
    )


def _invalid_principal(principal: Any) -> ValidationError:
    return ValidationError(
        "Principal must be a positive whole amount in kobo.",
        error_code="INVALID_PRINCIPAL",
        details={"principal": repr(principal)},
    )

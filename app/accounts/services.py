"""
Identity and profile lookups used by the escrow authorization guard.

RoleResolver is the one place that decides what a caller is allowed to
be treated as. Precedence, highest first:

    1. Profile.is_admin            -> "admin"
    2. Profile.membership_tier     -> that tier (if it is a known tier)
    3. fallback                    -> "free"

Token claims and request payloads are never consulted. Every call reads
the profile row from the database, so an admin flag revoked a second ago
is already effective (no caching).

PartyDirectory resolves display information for many users at once, for
the admin list views.

Usage:
    from accounts.services import RoleResolver, PartyDirectory

    if not RoleResolver.is_admin(request.user):
        raise Forbidden("Admin only.")

    tier = RoleResolver.effective_role(request.user)
    parties = PartyDirectory.display_map([order.buyer_id, order.seller_id])
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING

from core.services import BaseService

from accounts.models import MembershipTier, Profile, User

if TYPE_CHECKING:
    from collections.abc import Iterable
    from typing import Any


PRICED_TIERS = frozenset(
    {
        MembershipTier.FREE,
        MembershipTier.PRO,
        MembershipTier.PREMIUM,
        MembershipTier.INSTITUTION,
    }
)


class RoleResolver(BaseService):
    """Authoritative role/tier resolution from the profile store."""

    @classmethod
    def get_profile(cls, user: User | Any) -> Profile | None:
        """Fresh profile read; ignores any profile cached on the instance."""
        user_id = getattr(user, "pk", None)
        if user_id is None:
            return None
        return Profile.objects.filter(user_id=user_id).first()

    @classmethod
    def is_admin(cls, user: User | Any) -> bool:
        profile = cls.get_profile(user)
        return bool(profile and profile.is_admin)

    @classmethod
    def effective_role(cls, user: User | Any) -> str:
        """
        Resolve the tier used for fee pricing and role checks.

        Returns:
            One of MembershipTier values
        """
        profile = cls.get_profile(user)
        if profile is None:
            return MembershipTier.FREE.value
        if profile.is_admin:
            return MembershipTier.ADMIN.value
        if profile.membership_tier in PRICED_TIERS:
            return MembershipTier(profile.membership_tier).value

        cls.get_logger().warning(
            "Unknown membership tier on profile, using free",
            extra={
                "user_id": str(profile.user_id),
                "membership_tier": profile.membership_tier,
            },
        )
        return MembershipTier.FREE.value


@dataclass(frozen=True)
class PartyDisplay:
    """Display information for one order participant."""

    id: str
    name: str
    email: str

    def to_dict(self) -> dict[str, str]:
        return asdict(self)


class PartyDirectory(BaseService):
    """Batched display-name lookups for order participants."""

    @classmethod
    def display_map(cls, user_ids: Iterable[Any]) -> dict[str, PartyDisplay]:
        """
        Resolve display info for many users with two queries.

        Name is display_name, else full_name. Email is only filled in when
        no name exists, so the admin UI always has something to show.

        Args:
            user_ids: User ids (duplicates and falsy values are ignored)

        Returns:
            Dict keyed by str(user_id)
        """
        ids = {str(user_id) for user_id in user_ids if user_id}
        if not ids:
            return {}

        names = {
            str(profile.user_id): profile.best_name
            for profile in Profile.objects.filter(user_id__in=ids).only(
                "user_id", "display_name", "full_name"
            )
        }

        nameless = [user_id for user_id in ids if not names.get(user_id)]
        emails: dict[str, str] = {}
        if nameless:
            emails = {
                str(pk): email
                for pk, email in User.objects.filter(pk__in=nameless).values_list(
                    "pk", "email"
                )
            }

        return {
            user_id: PartyDisplay(
                id=user_id,
                name=names.get(user_id, ""),
                email=emails.get(user_id, ""),
            )
            for user_id in ids
        }

    @classmethod
    def display_for(
        cls, directory: dict[str, PartyDisplay], user_id: Any
    ) -> dict[str, str]:
        """Look up one party, falling back to an empty entry."""
        key = str(user_id) if user_id else ""
        party = directory.get(key) or PartyDisplay(id=key, name="", email="")
        return party.to_dict()

"""
Accounts models.

This module defines the identity models consumed by the escrow flow:
- User: Email-based user; the subject of bearer JWTs
- Profile: Display names, contact fields, membership tier and admin flag

Related files:
    - managers.py: Custom user manager for email-based creation
    - services.py: RoleResolver and PartyDirectory
    - signals.py: Auto-create profile on user creation
"""

import re

from django.contrib.auth.models import AbstractBaseUser, PermissionsMixin
from django.conf import settings
from django.db import models

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin
from accounts.managers import UserManager


# Names generated for accounts that never set a real name, e.g. "User 3fa9c1"
PLACEHOLDER_NAME_PATTERN = re.compile(
    r"^(user|buyer|seller)\s+[0-9a-f]{4,}$", re.IGNORECASE
)


class MembershipTier(models.TextChoices):
    """
    Membership tiers used for fee pricing.

    ADMIN is never stored on a profile; it is the effective tier of
    profiles flagged is_admin (see accounts.services.RoleResolver).
    """

    FREE = "free", "Free"
    PRO = "pro", "Pro"
    PREMIUM = "premium", "Premium"
    INSTITUTION = "institution", "Institution"
    ADMIN = "admin", "Admin"


class User(UUIDPrimaryKeyMixin, AbstractBaseUser, PermissionsMixin):
    """
    Custom User model using email as the primary identifier.

    Slim and auth-focused. Everything the escrow flow needs to know about
    a person beyond identity lives on Profile.

    Fields:
        id: UUID primary key (opaque identity reference)
        email: Primary identifier, unique, used for login
        is_active: Whether the user account is active
        is_staff: Whether the user can access Django admin
        date_joined: When the user account was created
    """

    email = models.EmailField(
        unique=True,
        db_index=True,
        max_length=254,
        help_text="User's email address (primary identifier)",
    )
    is_active = models.BooleanField(
        default=True,
        help_text="Whether this user account is active. Deselect instead of deleting.",
    )
    is_staff = models.BooleanField(
        default=False,
        help_text="Whether the user can access the admin site.",
    )
    date_joined = models.DateTimeField(
        auto_now_add=True,
        help_text="When the user account was created",
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        help_text="When the user record was last modified",
    )

    USERNAME_FIELD = "email"
    REQUIRED_FIELDS = []

    objects = UserManager()

    class Meta:
        verbose_name = "user"
        verbose_name_plural = "users"
        ordering = ["-date_joined"]

    def __str__(self):
        return self.email

    def get_full_name(self):
        """Return the best display name from profile, or email."""
        try:
            return self.profile.best_name or self.email
        except Profile.DoesNotExist:
            return self.email

    def get_short_name(self):
        return self.email.split("@")[0]


class Profile(BaseModel):
    """
    Profile data for a marketplace participant (OneToOne with User).

    Fields:
        user: The owning user
        full_name: Legal/contact name
        display_name: Public name shown to counterparties
        phone: Contact phone number
        city: City used for delivery coordination
        membership_tier: Paid membership tier (drives escrow fee rate)
        is_admin: Authoritative escrow admin flag. Always read from the
            database; never taken from token claims or request bodies.
    """

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="profile",
        primary_key=True,
    )
    full_name = models.CharField(max_length=150, blank=True, default="")
    display_name = models.CharField(max_length=150, blank=True, default="")
    phone = models.CharField(max_length=32, blank=True, default="")
    city = models.CharField(max_length=100, blank=True, default="")
    membership_tier = models.CharField(
        max_length=20,
        choices=[
            (value, label)
            for value, label in MembershipTier.choices
            if value != MembershipTier.ADMIN
        ],
        default=MembershipTier.FREE,
        help_text="Membership tier used for escrow fee pricing",
    )
    is_admin = models.BooleanField(
        default=False,
        help_text="Grants escrow adjudication and release rights",
    )

    class Meta:
        verbose_name = "profile"
        verbose_name_plural = "profiles"

    def __str__(self):
        return f"Profile({self.user_id})"

    @property
    def best_name(self) -> str:
        """Display name if set, else full name, else empty string."""
        return (self.display_name or "").strip() or (self.full_name or "").strip()

    @property
    def has_real_name(self) -> bool:
        name = (self.full_name or "").strip()
        return bool(name) and not PLACEHOLDER_NAME_PATTERN.match(name)

    @property
    def missing_fields(self) -> list[str]:
        """Completeness fields that still need to be filled in."""
        missing = []
        if not self.has_real_name:
            missing.append("full_name")
        if not (self.phone or "").strip():
            missing.append("phone")
        if not (self.city or "").strip():
            missing.append("city")
        return missing

    @property
    def is_complete(self) -> bool:
        """Whether the profile may take part in delivery and dispute actions."""
        return not self.missing_fields

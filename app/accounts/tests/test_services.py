"""
Tests for RoleResolver and PartyDirectory.
"""

import pytest

from accounts.models import MembershipTier, Profile
from accounts.services import PartyDirectory, RoleResolver
from accounts.tests.factories import UserFactory


@pytest.mark.django_db
class TestRoleResolver:
    def test_admin_flag_wins_over_tier(self):
        user = UserFactory(profile__is_admin=True, profile__membership_tier="premium")

        assert RoleResolver.effective_role(user) == MembershipTier.ADMIN
        assert RoleResolver.is_admin(user)

    def test_membership_tier_used_when_not_admin(self):
        user = UserFactory(profile__membership_tier="institution")

        assert RoleResolver.effective_role(user) == "institution"
        assert not RoleResolver.is_admin(user)

    def test_unknown_tier_falls_back_to_free(self):
        user = UserFactory()
        Profile.objects.filter(user=user).update(membership_tier="platinum")

        assert RoleResolver.effective_role(user) == "free"

    def test_missing_profile_is_free_and_not_admin(self):
        user = UserFactory()
        Profile.objects.filter(user=user).delete()

        assert RoleResolver.effective_role(user) == "free"
        assert not RoleResolver.is_admin(user)

    def test_revoked_admin_flag_is_effective_immediately(self):
        user = UserFactory(profile__is_admin=True)
        assert RoleResolver.is_admin(user)

        Profile.objects.filter(user=user).update(is_admin=False)

        # The instance still has the old profile cached
        assert user.profile.is_admin is True
        assert not RoleResolver.is_admin(user)

    def test_user_without_pk_has_no_profile(self):
        class Anonymous:
            pk = None

        assert RoleResolver.get_profile(Anonymous()) is None


@pytest.mark.django_db
class TestPartyDirectory:
    def test_display_map_uses_names(self):
        buyer = UserFactory(profile__display_name="Ngozi")
        seller = UserFactory(profile__full_name="Emeka Obi")

        parties = PartyDirectory.display_map([buyer.pk, seller.pk, buyer.pk, None])

        assert set(parties) == {str(buyer.pk), str(seller.pk)}
        assert parties[str(buyer.pk)].name == "Ngozi"
        assert parties[str(seller.pk)].name == "Emeka Obi"
        assert parties[str(seller.pk)].email == ""

    def test_display_map_falls_back_to_email(self):
        user = UserFactory(profile__full_name="", profile__display_name="")

        parties = PartyDirectory.display_map([user.pk])

        assert parties[str(user.pk)].name == ""
        assert parties[str(user.pk)].email == user.email

    def test_display_map_empty(self):
        assert PartyDirectory.display_map([]) == {}

    def test_display_for_unknown_user(self):
        assert PartyDirectory.display_for({}, "abc") == {
            "id": "abc",
            "name": "",
            "email": "",
        }

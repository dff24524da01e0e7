"""
Tests for accounts signals.
"""

import pytest

from accounts.models import MembershipTier, Profile, User


@pytest.mark.django_db
class TestCreateUserProfile:
    def test_profile_created_with_user(self):
        user = User.objects.create_user(email="new@example.com", password="x")

        profile = Profile.objects.get(user=user)
        assert profile.membership_tier == MembershipTier.FREE
        assert profile.is_admin is False

    def test_new_profile_is_incomplete(self):
        user = User.objects.create_user(email="new@example.com", password="x")

        profile = Profile.objects.get(user=user)
        assert profile.missing_fields == ["full_name", "phone", "city"]

    def test_saving_existing_user_does_not_duplicate_profile(self):
        user = User.objects.create_user(email="new@example.com", password="x")
        user.is_staff = True
        user.save()

        assert Profile.objects.filter(user=user).count() == 1

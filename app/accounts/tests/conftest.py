"""
Test configuration and fixtures for accounts tests.
"""

import pytest

from accounts.tests.factories import UserFactory


@pytest.fixture
def user(db):
    """User with a complete free-tier profile."""
    return UserFactory()


@pytest.fixture
def admin_user(db):
    """User whose profile carries the escrow admin flag."""
    return UserFactory(profile__is_admin=True)

"""
Fixtures for authentication tests.
"""

import pytest

from authentication.tests.factories import StaffUserFactory, UserFactory


@pytest.fixture
def user(db):
    """A regular active user."""
    return UserFactory()


@pytest.fixture
def staff_user(db):
    """A staff user."""
    return StaffUserFactory()

"""
Tests for UserManager.

Covers email-based creation of regular users and superusers, password hashing,
email normalization and the default permission flags.
"""

import pytest

from authentication.models import User


class TestUserManagerCreateUser:
    """Tests for UserManager.create_user()."""

    def test_creates_user_with_email_and_password(self, db):
        user = User.objects.create_user(email="buyer@example.com", password="SecurePass123!")

        assert user.pk is not None
        assert user.email == "buyer@example.com"
        assert user.check_password("SecurePass123!") is True

    def test_normalizes_email_domain_to_lowercase(self, db):
        user = User.objects.create_user(email="Test.User@EXAMPLE.COM", password="pw")

        assert user.email == "Test.User@example.com"

    def test_user_without_password_cannot_log_in(self, db):
        user = User.objects.create_user(email="nopass@example.com")

        assert user.has_usable_password() is False

    def test_defaults_to_non_staff(self, db):
        user = User.objects.create_user(email="regular@example.com", password="pw")

        assert user.is_staff is False
        assert user.is_superuser is False
        assert user.is_active is True

    def test_missing_email_raises(self, db):
        with pytest.raises(ValueError, match="Email field must be set"):
            User.objects.create_user(email="", password="pw")


class TestUserManagerCreateSuperuser:
    """Tests for UserManager.create_superuser()."""

    def test_creates_superuser_with_staff_flags(self, db):
        admin = User.objects.create_superuser(email="ops@example.com", password="pw")

        assert admin.is_staff is True
        assert admin.is_superuser is True

    def test_rejects_superuser_without_staff(self, db):
        with pytest.raises(ValueError, match="is_staff=True"):
            User.objects.create_superuser(email="ops@example.com", password="pw", is_staff=False)


class TestUserNames:
    """Display name helpers used on invoices."""

    def test_full_name_falls_back_to_email(self, db):
        user = User.objects.create_user(email="anon@example.com", password="pw")

        assert user.get_full_name() == "anon@example.com"
        assert user.get_short_name() == "anon"

    def test_short_name_is_first_word(self, db):
        user = User.objects.create_user(
            email="named@example.com", password="pw", full_name="Nguyen Minh Tri"
        )

        assert user.get_short_name() == "Nguyen"

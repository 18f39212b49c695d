"""
Root pytest configuration for the Django project.

This module configures pytest-django and provides project-wide fixtures.
App-specific fixtures are defined in each app's tests/conftest.py.
"""

import os
import time

import django
import environ
import pytest

# Ensure Django settings are configured before any tests run
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

# Tests run against SQLite unless DATABASE_URL points at a real server
TEST_DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///:memory:")


def pytest_configure():
    """Configure Django settings before tests run."""
    django.setup()

    from django.conf import settings

    settings.DATABASES["default"] = environ.Env.db_url_config(TEST_DATABASE_URL)

    # django.setup() already built the default connection from the original
    # settings; fill in the per-database defaults and drop the connection so
    # it is recreated from the test database URL.
    from django.db import connections

    connections.configure_settings(settings.DATABASES)
    del connections["default"]

    # Disable throttling during tests to prevent rate limit failures
    settings.REST_FRAMEWORK["DEFAULT_THROTTLE_CLASSES"] = []
    settings.REST_FRAMEWORK["DEFAULT_THROTTLE_RATES"] = {}

    # Use fast password hasher for tests (PBKDF2 is too slow with 870K iterations)
    settings.PASSWORD_HASHERS = [
        "django.contrib.auth.hashers.MD5PasswordHasher",
    ]

    # Test client speaks plain HTTP
    settings.SECURE_SSL_REDIRECT = False

    # No Redis during tests: local memory cache and in-process channel layer
    settings.CACHES = {
        "default": {"BACKEND": "django.core.cache.backends.locmem.LocMemCache"},
    }
    settings.SESSION_ENGINE = "django.contrib.sessions.backends.db"
    settings.CHANNEL_LAYERS = {
        "default": {"BACKEND": "channels.layers.InMemoryChannelLayer"},
    }

    settings.VIETQR_WEBHOOK_SECRET = "test-webhook-secret"
    settings.EXTERNAL_PAYMENT_API_KEY = "test-external-key"
    settings.VIETQR_ACCOUNT_NUMBER = "0123456789"
    settings.VIETQR_ACCOUNT_NAME = "ACTA SHOP"


def pytest_collection_modifyitems(items):
    """
    Auto-mark tests based on filename patterns.

    Mapping:
    - test_views.py, test_webhook_views.py, test_tasks.py, etc. → integration
    - test_models.py, test_locks.py, test_references.py, etc. → unit
    - Unmatched files → integration (safe default for Django)

    Explicit markers on test functions/classes take precedence.
    """
    integration_patterns = [
        "test_views.py",
        "test_webhook_views.py",
        "test_tasks.py",
        "test_processor.py",
        "test_intent_manager.py",
        "test_refund_workflow.py",
        "test_reconciliation.py",
        "test_expiration_sweeper.py",
        "test_services.py",
        "test_queue.py",
    ]

    unit_patterns = [
        "test_models.py",
        "test_locks.py",
        "test_references.py",
        "test_signature.py",
        "test_events.py",
        "test_exceptions.py",
        "test_inventory.py",
        "test_accounting.py",
        "test_helpers.py",
        "test_service_result.py",
    ]

    for item in items:
        # Skip if test already has unit/integration marker
        existing_markers = {m.name for m in item.iter_markers()}
        if existing_markers & {"unit", "integration"}:
            continue

        filename = str(item.fspath).split("/")[-1]

        if any(pattern in filename for pattern in integration_patterns):
            item.add_marker(pytest.mark.integration)
        elif any(pattern in filename for pattern in unit_patterns):
            item.add_marker(pytest.mark.unit)
        else:
            item.add_marker(pytest.mark.integration)


class FakeRedis:
    """
    In-memory stand-in for the lock store.

    Supports the commands DistributedLock issues: SET NX EX, GET, DEL and
    the compare-and-delete release script.
    """

    def __init__(self):
        self.store = {}

    def _alive(self, key):
        entry = self.store.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and expires_at <= time.monotonic():
            del self.store[key]
            return None
        return value

    def set(self, key, value, nx=False, ex=None):
        if nx and self._alive(key) is not None:
            return None
        expires_at = time.monotonic() + ex if ex else None
        self.store[key] = (value, expires_at)
        return True

    def get(self, key):
        return self._alive(key)

    def delete(self, *keys):
        return sum(1 for key in keys if self.store.pop(key, None) is not None)

    def eval(self, script, numkeys, key, token):
        if self._alive(key) == token:
            return self.delete(key)
        return 0

    def ping(self):
        return True


@pytest.fixture(autouse=True)
def fake_redis(mocker):
    """Route payment locks to an in-memory store for every test."""
    client = FakeRedis()
    mocker.patch("payments.locks.get_redis_connection", return_value=client)
    return client


def _patch_postgresql_flush_for_cascade():
    """
    Patch PostgreSQL flush to always use CASCADE.

    Django's TransactionTestCase uses TRUNCATE to reset the database, which
    fails without CASCADE when tables have foreign key constraints.
    """
    from django.db.backends.postgresql import operations

    original_sql_flush = operations.DatabaseOperations.sql_flush

    def sql_flush_with_cascade(
        self, style, tables, *, reset_sequences=False, allow_cascade=False
    ):
        # Force CASCADE for PostgreSQL to handle FK constraints
        return original_sql_flush(
            self, style, tables, reset_sequences=reset_sequences, allow_cascade=True
        )

    operations.DatabaseOperations.sql_flush = sql_flush_with_cascade


# Apply the patch when conftest is loaded
_patch_postgresql_flush_for_cascade()

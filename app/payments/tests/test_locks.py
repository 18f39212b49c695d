"""
Tests for distributed locking utilities.

Tests the DistributedLock class which provides Redis-based mutual exclusion
across processes for payment completion, expiry and refunds.
"""

import pytest

from payments.exceptions import LockAcquisitionError
from payments.locks import (
    INTENT_LOCK_TTL,
    REFUND_LOCK_TTL,
    DistributedLock,
    intent_lock,
    refund_lock,
)


@pytest.fixture
def mock_redis(mocker):
    """Mock Redis connection for unit tests."""
    redis_instance = mocker.MagicMock()
    mocker.patch("payments.locks.get_redis_connection", return_value=redis_instance)
    return redis_instance


class TestDistributedLock:
    """Tests for DistributedLock class."""

    def test_acquire_success(self, mock_redis):
        """Should acquire lock when available."""
        mock_redis.set.return_value = True

        lock = DistributedLock("test:key", ttl=30, blocking=False)
        result = lock.acquire()

        assert result is True
        assert lock.is_held is True
        call_args = mock_redis.set.call_args
        assert call_args[0][0] == "lock:test:key"
        assert call_args[1]["nx"] is True
        assert call_args[1]["ex"] == 30

    def test_acquire_generates_unique_token(self, mock_redis):
        mock_redis.set.return_value = True

        lock1 = DistributedLock("test:key1", ttl=30, blocking=False)
        lock2 = DistributedLock("test:key2", ttl=30, blocking=False)
        lock1.acquire()
        lock2.acquire()

        assert lock1._token is not None
        assert lock1._token != lock2._token

    def test_acquire_non_blocking_raises_when_held(self, mock_redis):
        """Non-blocking mode should raise immediately if lock unavailable."""
        mock_redis.set.return_value = False

        lock = DistributedLock("test:key", ttl=30, blocking=False)

        with pytest.raises(LockAcquisitionError) as exc_info:
            lock.acquire()

        assert "already held" in str(exc_info.value)
        assert exc_info.value.details["key"] == "lock:test:key"
        assert exc_info.value.error_code == "LOCK_ACQUISITION_FAILED"
        assert exc_info.value.status_code == 409
        assert lock.is_held is False

    def test_acquire_blocking_waits_and_acquires(self, mock_redis, mocker):
        """Blocking mode should poll until the lock frees up."""
        mocker.patch("payments.locks.time.sleep")
        mock_redis.set.side_effect = [False, False, True]

        lock = DistributedLock("test:key", ttl=30, blocking=True, timeout=1.0)

        assert lock.acquire() is True
        assert mock_redis.set.call_count == 3

    def test_acquire_blocking_timeout_raises_error(self, mock_redis):
        mock_redis.set.return_value = False

        lock = DistributedLock("test:key", ttl=30, blocking=True, timeout=0.1)

        with pytest.raises(LockAcquisitionError) as exc_info:
            lock.acquire()

        assert "within 0.1s" in str(exc_info.value)
        assert exc_info.value.details["timeout"] == 0.1

    def test_release_success(self, mock_redis):
        """Should release through the compare-and-delete script."""
        mock_redis.set.return_value = True
        mock_redis.eval.return_value = 1

        lock = DistributedLock("test:key", ttl=30, blocking=False)
        lock.acquire()
        token = lock._token
        result = lock.release()

        assert result is True
        assert lock.is_held is False
        mock_redis.eval.assert_called_once_with(DistributedLock.RELEASE_SCRIPT, 1, "lock:test:key", token)

    def test_release_only_if_owned(self, mock_redis):
        """A lock that expired and was taken by someone else is not deleted."""
        mock_redis.set.return_value = True
        mock_redis.eval.return_value = 0

        lock = DistributedLock("test:key", ttl=30, blocking=False)
        lock.acquire()

        assert lock.release() is False

    def test_release_without_acquire_returns_false(self, mock_redis):
        lock = DistributedLock("test:key", ttl=30, blocking=False)

        assert lock.release() is False
        mock_redis.eval.assert_not_called()

    def test_context_manager_releases_on_exception(self, mock_redis):
        """Should release lock even if exception occurs inside context."""
        mock_redis.set.return_value = True
        mock_redis.eval.return_value = 1

        with pytest.raises(ValueError, match="Test error"):
            with DistributedLock("test:key", ttl=30):
                raise ValueError("Test error")

        mock_redis.eval.assert_called_once()


class TestLockHelpers:
    def test_intent_lock_key_and_ttl(self, mock_redis):
        lock = intent_lock("abc-123", blocking=False)

        assert lock.key == "lock:payment_intent:abc-123"
        assert lock.ttl == INTENT_LOCK_TTL
        assert lock.blocking is False

    def test_refund_lock_key_and_ttl(self, mock_redis):
        lock = refund_lock("abc-123")

        assert lock.key == "lock:refund:payment_intent:abc-123"
        assert lock.ttl == REFUND_LOCK_TTL
        assert lock.blocking is True


class TestDistributedLockMutualExclusion:
    """Behaviour against the in-memory lock store."""

    def test_same_key_is_exclusive(self, fake_redis):
        lock1 = DistributedLock("exclusive:test", ttl=5, blocking=False)
        lock2 = DistributedLock("exclusive:test", ttl=5, blocking=False)

        lock1.acquire()
        with pytest.raises(LockAcquisitionError):
            lock2.acquire()

        lock1.release()
        assert lock2.acquire() is True
        lock2.release()

    def test_different_keys_not_exclusive(self, fake_redis):
        lock1 = DistributedLock("exclusive:test:1", ttl=5, blocking=False)
        lock2 = DistributedLock("exclusive:test:2", ttl=5, blocking=False)

        lock1.acquire()
        lock2.acquire()

        assert lock1.is_held
        assert lock2.is_held

        lock1.release()
        lock2.release()
        assert fake_redis.store == {}

    def test_release_does_not_delete_foreign_lock(self, fake_redis):
        lock = DistributedLock("exclusive:test", ttl=5, blocking=False)
        lock.acquire()
        fake_redis.store["lock:exclusive:test"] = ("someone-else", None)

        assert lock.release() is False
        assert fake_redis.get("lock:exclusive:test") == "someone-else"

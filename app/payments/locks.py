"""
Distributed locks for payment operations.

Row locks (``select_for_update``) serialise writers inside one database, but
webhook deliveries, manual verification and the expiration sweep may race
from different workers before any row is read. A short Redis lock keyed by
the intent id makes completion and expiry mutually exclusive across
processes.

Usage:
    from payments.locks import intent_lock

    with intent_lock(intent.id):
        with transaction.atomic():
            intent = PaymentIntent.objects.select_for_update().get(pk=intent.id)
            ...
"""

from __future__ import annotations

import time
import uuid as uuid_module
from typing import TYPE_CHECKING

from django_redis import get_redis_connection

from payments.exceptions import LockAcquisitionError

if TYPE_CHECKING:
    from typing import Any

    from redis import Redis


# Completion and expiry are short; a crashed worker frees the lock after this
INTENT_LOCK_TTL = 30
INTENT_LOCK_TIMEOUT = 10.0

REFUND_LOCK_TTL = 120
REFUND_LOCK_TIMEOUT = 10.0


class DistributedLock:
    """
    Redis-based distributed lock with TTL.

    Ownership is tracked with a random token so a worker can never release a
    lock that expired and was taken by someone else.

    Example:
        lock = DistributedLock("payment_intent:123", ttl=30, blocking=False)
        try:
            with lock:
                complete_payment()
        except LockAcquisitionError:
            # Another worker is completing or expiring the same intent
            ...

    Args:
        key: Lock identifier (prefixed with "lock:")
        ttl: Seconds before the lock auto-releases
        blocking: If True, acquire() polls until the lock is free
        timeout: Maximum wait in blocking mode
    """

    # Atomic check-and-delete so only the owner releases
    RELEASE_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("del", KEYS[1])
    else
        return 0
    end
    """

    def __init__(
        self,
        key: str,
        ttl: int = INTENT_LOCK_TTL,
        blocking: bool = True,
        timeout: float = INTENT_LOCK_TIMEOUT,
    ) -> None:
        self.key = f"lock:{key}"
        self.ttl = ttl
        self.blocking = blocking
        self.timeout = timeout
        self._token: str | None = None
        self._redis: Redis | None = None

    def _get_redis(self) -> Redis:
        if self._redis is None:
            self._redis = get_redis_connection("default")
        return self._redis

    def acquire(self) -> bool:
        """
        Acquire the lock or raise.

        Raises:
            LockAcquisitionError: Lock held elsewhere (non-blocking) or not
                freed within ``timeout`` (blocking)
        """
        token = str(uuid_module.uuid4())
        redis = self._get_redis()

        if self.blocking:
            end_time = time.time() + self.timeout
            while time.time() < end_time:
                if redis.set(self.key, token, nx=True, ex=self.ttl):
                    self._token = token
                    return True
                time.sleep(0.05)

            raise LockAcquisitionError(
                f"Failed to acquire lock '{self.key}' within {self.timeout}s",
                details={"key": self.key, "timeout": self.timeout},
            )

        if not redis.set(self.key, token, nx=True, ex=self.ttl):
            raise LockAcquisitionError(
                f"Lock '{self.key}' is already held",
                details={"key": self.key},
            )
        self._token = token
        return True

    def release(self) -> bool:
        """Release the lock if we hold it. Safe to call more than once."""
        if self._token is None:
            return False

        result = self._get_redis().eval(self.RELEASE_SCRIPT, 1, self.key, self._token)
        self._token = None
        return bool(result)

    @property
    def is_held(self) -> bool:
        return self._token is not None

    def __enter__(self) -> DistributedLock:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> bool:
        self.release()
        return False


def intent_lock(intent_id: Any, blocking: bool = True) -> DistributedLock:
    """Lock serialising completion and expiry of one payment intent."""
    return DistributedLock(f"payment_intent:{intent_id}", blocking=blocking)


def refund_lock(payment_intent_id: Any) -> DistributedLock:
    """Lock serialising refund bound checks for one payment intent."""
    return DistributedLock(
        f"refund:payment_intent:{payment_intent_id}",
        ttl=REFUND_LOCK_TTL,
        timeout=REFUND_LOCK_TIMEOUT,
    )


__all__ = [
    "DistributedLock",
    "intent_lock",
    "refund_lock",
]

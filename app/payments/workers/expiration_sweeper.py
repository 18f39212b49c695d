"""
Expiration sweeper for unpaid bank-transfer intents.

Tasks:
- sweep_expired_payment_intents: Fails pending intents whose QR expired,
  restores their inventory and cancels the order
- warn_expiring_payment_intents: Tells the customer a QR is about to expire;
  never changes state

Both run from celery-beat (see payments migration 0002).

Usage:
    from payments.workers import sweep_expired_payment_intents

    sweep_expired_payment_intents.delay()
"""

from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass
from datetime import timedelta
from typing import TYPE_CHECKING

from celery import shared_task
from django.utils import timezone

from payments.conf import get_payment_settings
from payments.events import PaymentEvent, PaymentEventType
from payments.exceptions import LockAcquisitionError
from payments.models import PaymentIntent
from payments.services.intent_manager import PaymentIntentManager
from payments.state_machines import PaymentIntentStatus

if TYPE_CHECKING:
    from datetime import datetime

    from payments.conf import PaymentSettings

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    processed: int = 0
    failed: int = 0
    skipped: int = 0


class ExpirationSweeper:
    """
    Finds pending intents past their expiry and expires them one by one.

    Each intent is expired in its own transaction under a non-blocking
    intent lock; an intent whose lock is held (a completion in flight) is
    skipped and picked up by the next run if still pending.
    """

    def __init__(
        self,
        manager: PaymentIntentManager | None = None,
        config: PaymentSettings | None = None,
    ) -> None:
        self.config = config or get_payment_settings()
        self.manager = manager or PaymentIntentManager(config=self.config)

    def sweep(self, now: datetime | None = None) -> SweepResult:
        now = now or timezone.now()
        result = SweepResult()

        expired = (
            PaymentIntent.objects.select_related("order")
            .filter(status=PaymentIntentStatus.PENDING, expires_at__lt=now)
            .order_by("expires_at")[: self.config.sweep_batch_size]
        )

        for intent in expired:
            try:
                outcome = self.manager.expire(intent, blocking=False)
            except Exception as e:
                result.failed += 1
                logger.error(
                    f"Failed to expire payment {intent.pk}: {e}",
                    extra={"payment_id": str(intent.pk)},
                    exc_info=True,
                )
                continue

            if outcome.success and outcome.data.success:
                result.processed += 1
            elif outcome.success or outcome.error_code == LockAcquisitionError.default_error_code:
                result.skipped += 1
            else:
                result.failed += 1
                logger.error(
                    f"Failed to expire payment {intent.pk}: {outcome.error}",
                    extra={"payment_id": str(intent.pk), "error_code": outcome.error_code},
                )

        if result.processed or result.failed:
            logger.info(
                f"Expiration sweep: {result.processed} expired, {result.failed} failed, {result.skipped} skipped",
                extra=asdict(result),
            )
        return result

    def warn(self, now: datetime | None = None) -> int:
        """Publish payment_expiry_warning for intents close to expiry. Returns the count."""
        now = now or timezone.now()
        window_end = now + timedelta(minutes=self.config.warning_window_minutes)

        expiring = PaymentIntent.objects.select_related("order").filter(
            status=PaymentIntentStatus.PENDING,
            expires_at__gt=now,
            expires_at__lte=window_end,
        )

        warned = 0
        for intent in expiring:
            minutes_left = math.floor((intent.expires_at - now).total_seconds() / 60)
            if minutes_left > self.config.warning_threshold_minutes:
                continue
            self.manager.notifier.publish(
                PaymentEvent.for_intent(
                    PaymentEventType.PAYMENT_EXPIRY_WARNING,
                    intent,
                    expires_at=intent.expires_at,
                    minutes_left=minutes_left,
                    message=f"Payment will expire in {minutes_left} minutes",
                )
            )
            warned += 1

        if warned:
            logger.info(f"Sent {warned} payment expiry warnings", extra={"warned": warned})
        return warned


# =============================================================================
# Periodic Tasks
# =============================================================================


@shared_task(bind=True)
def sweep_expired_payment_intents(self) -> dict:
    """
    Expire pending intents past their expiry.

    Returns:
        Dict with processed, failed and skipped counts
    """
    return asdict(ExpirationSweeper().sweep())


@shared_task(bind=True)
def warn_expiring_payment_intents(self) -> dict:
    return {"warned": ExpirationSweeper().warn()}

"""
Durable commission job queue.

CommissionQueue is the default CommissionScheduler of the payment engine.
``enqueue`` writes a CommissionJob row inside the caller's transaction and
asks Celery to process it once that transaction commits. Jobs missed by the
on-commit dispatch (worker down, broker unavailable) are picked up by the
periodic ``drain_commission_jobs`` task.

Job lifecycle:
    PENDING -> IN_FLIGHT -> DONE
    IN_FLIGHT -> PENDING, next_attempt_at = now + 2^attempts seconds
    IN_FLIGHT -> DEAD_LETTER after COMMISSION_MAX_ATTEMPTS failures

Usage:
    from affiliate.queue import CommissionQueue

    queue = CommissionQueue()
    queue.enqueue(order)          # inside the completion transaction
    queue.drain()                 # from the beat task
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import TYPE_CHECKING

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from affiliate.models import CommissionJob, CommissionJobStatus

if TYPE_CHECKING:
    from typing import Any

    from affiliate.services import CommissionCalculator
    from orders.models import Order

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 10
DEFAULT_MAX_ATTEMPTS = 3


class CommissionQueue:
    """Persist, claim and run commission jobs."""

    def __init__(
        self,
        calculator: CommissionCalculator | None = None,
        batch_size: int | None = None,
        max_attempts: int | None = None,
    ) -> None:
        self._calculator = calculator
        self.batch_size = batch_size or getattr(settings, "COMMISSION_BATCH_SIZE", DEFAULT_BATCH_SIZE)
        self.max_attempts = max_attempts or getattr(settings, "COMMISSION_MAX_ATTEMPTS", DEFAULT_MAX_ATTEMPTS)

    @property
    def calculator(self) -> CommissionCalculator:
        if self._calculator is None:
            from affiliate.services import CommissionCalculator

            self._calculator = CommissionCalculator()
        return self._calculator

    # =========================================================================
    # Producer
    # =========================================================================

    def enqueue(self, order: Order) -> CommissionJob:
        """
        Queue commission calculation for ``order``.

        Idempotent per order: a second call returns the existing job.
        """
        job, created = CommissionJob.objects.get_or_create(order=order)
        if created:
            logger.info(
                "Enqueued commission job",
                extra={"order_id": str(order.pk), "job_id": str(job.pk)},
            )
            transaction.on_commit(lambda: self._dispatch(job.pk))
        return job

    @staticmethod
    def _dispatch(job_id: Any) -> None:
        from affiliate.tasks import process_commission_job

        try:
            process_commission_job.delay(str(job_id))
        except Exception as e:
            # The drain task picks the job up on its next run
            logger.warning(
                f"Failed to dispatch commission job {job_id}: {e}",
                extra={"job_id": str(job_id)},
            )

    # =========================================================================
    # Consumer
    # =========================================================================

    def claim(self, job_id: Any) -> CommissionJob | None:
        """Move one due pending job to in-flight; None if it is not claimable."""
        now = timezone.now()
        with transaction.atomic():
            job = (
                CommissionJob.objects.select_for_update(skip_locked=True)
                .filter(pk=job_id, status=CommissionJobStatus.PENDING, next_attempt_at__lte=now)
                .first()
            )
            if job is None:
                return None
            job.status = CommissionJobStatus.IN_FLIGHT
            job.save(update_fields=["status", "updated_at"])
        return job

    def claim_due(self, now=None) -> list[CommissionJob]:
        """Claim up to ``batch_size`` due pending jobs, oldest first."""
        now = now or timezone.now()
        with transaction.atomic():
            jobs = list(
                CommissionJob.objects.select_for_update(skip_locked=True)
                .filter(status=CommissionJobStatus.PENDING, next_attempt_at__lte=now)
                .order_by("created_at")[: self.batch_size]
            )
            if jobs:
                CommissionJob.objects.filter(pk__in=[job.pk for job in jobs]).update(
                    status=CommissionJobStatus.IN_FLIGHT,
                    updated_at=now,
                )
                for job in jobs:
                    job.status = CommissionJobStatus.IN_FLIGHT
        return jobs

    def run(self, job: CommissionJob) -> CommissionJob:
        """Process a claimed job and record the outcome on it."""
        try:
            result = self.calculator.calculate(job.order_id)
            error = None if result.success else result.error
        except Exception as e:
            logger.error(
                f"Commission job {job.pk} raised: {e}",
                exc_info=True,
                extra={"job_id": str(job.pk), "order_id": str(job.order_id)},
            )
            error = str(e)

        now = timezone.now()
        job.attempts += 1
        if error is None:
            job.status = CommissionJobStatus.DONE
            job.processed_at = now
            job.last_error = ""
        elif job.attempts >= self.max_attempts:
            job.status = CommissionJobStatus.DEAD_LETTER
            job.last_error = error
            logger.error(
                f"Commission job {job.pk} moved to dead letter after {job.attempts} attempts: {error}",
                extra={"job_id": str(job.pk), "order_id": str(job.order_id)},
            )
        else:
            job.status = CommissionJobStatus.PENDING
            job.last_error = error
            job.next_attempt_at = now + timedelta(seconds=2**job.attempts)
            logger.warning(
                f"Commission job {job.pk} failed, retrying at {job.next_attempt_at.isoformat()}",
                extra={"job_id": str(job.pk), "attempts": job.attempts},
            )

        job.save(update_fields=["status", "attempts", "next_attempt_at", "last_error", "processed_at", "updated_at"])
        return job

    def drain(self, now=None) -> dict[str, int]:
        """Claim and run one batch of due jobs."""
        counts = {"claimed": 0, "done": 0, "retrying": 0, "dead_letter": 0}
        for job in self.claim_due(now):
            counts["claimed"] += 1
            job = self.run(job)
            if job.status == CommissionJobStatus.DONE:
                counts["done"] += 1
            elif job.status == CommissionJobStatus.DEAD_LETTER:
                counts["dead_letter"] += 1
            else:
                counts["retrying"] += 1
        return counts

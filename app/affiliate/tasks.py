"""
Celery tasks for affiliate commissions.

- process_commission_job: Run one job, dispatched when the payment commits
- drain_commission_jobs: Periodic catch-up of due pending jobs (celery-beat)
"""

from __future__ import annotations

import logging

from celery import shared_task

from affiliate.queue import CommissionQueue

logger = logging.getLogger(__name__)


@shared_task(bind=True, acks_late=True)
def process_commission_job(self, job_id: str) -> dict:
    """
    Claim and run a single commission job.

    Returns ``skipped`` when the job is no longer pending or not yet due;
    the drain task owns retries.
    """
    queue = CommissionQueue()
    job = queue.claim(job_id)
    if job is None:
        logger.info("Commission job not claimable, skipping", extra={"job_id": job_id})
        return {"status": "skipped", "job_id": job_id}

    job = queue.run(job)
    return {"status": job.status, "job_id": job_id, "attempts": job.attempts}


@shared_task
def drain_commission_jobs() -> dict:
    """Periodic task processing up to one batch of due commission jobs."""
    counts = CommissionQueue().drain()
    if counts["claimed"]:
        logger.info(
            f"Drained {counts['claimed']} commission jobs",
            extra=counts,
        )
    return counts

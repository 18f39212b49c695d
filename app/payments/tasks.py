"""
Celery tasks for payment processing.

This module provides async tasks for:
- Re-processing stored webhook events
- Retrying failed webhook events
- Resetting webhook events stuck in processing

Usage:
    from payments.tasks import process_webhook_event

    # Queue a stored webhook for processing
    process_webhook_event.delay(str(webhook_event.id))
"""

from __future__ import annotations

import logging
from datetime import timedelta
from uuid import UUID

from celery import shared_task
from django.conf import settings
from django.utils import timezone

from payments.models import WebhookEvent
from payments.state_machines import WebhookEventStatus

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

MAX_WEBHOOK_RETRIES = getattr(settings, "MAX_WEBHOOK_RETRIES", 5)
STUCK_PROCESSING_THRESHOLD_MINUTES = 30
RETRY_BATCH_SIZE = 100


# =============================================================================
# Webhook Processing Tasks
# =============================================================================


@shared_task(
    bind=True,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_kwargs={"max_retries": MAX_WEBHOOK_RETRIES},
    acks_late=True,
)
def process_webhook_event(self, webhook_event_id: str) -> dict:
    """
    Process a stored webhook event.

    Loads the WebhookEvent, skips it when already processed and otherwise
    runs it through WebhookProcessor.process, which records the outcome on
    the event.

    Raises:
        Exception: Re-raised to trigger Celery retry mechanism
    """
    from payments.webhooks.processor import WebhookProcessor

    if isinstance(webhook_event_id, str):
        webhook_event_id = UUID(webhook_event_id)

    try:
        webhook_event = WebhookEvent.objects.get(id=webhook_event_id)
    except WebhookEvent.DoesNotExist:
        logger.error(
            "WebhookEvent not found",
            extra={"webhook_event_id": str(webhook_event_id)},
        )
        return {"status": "not_found", "webhook_event_id": str(webhook_event_id)}

    if webhook_event.is_processed:
        logger.info(
            "WebhookEvent already processed, skipping",
            extra={"webhook_event_id": str(webhook_event_id), "event_id": webhook_event.event_id},
        )
        return {"status": "already_processed", "webhook_event_id": str(webhook_event_id)}

    result = WebhookProcessor().process(webhook_event)

    if result.success:
        return {
            "status": "processed",
            "webhook_event_id": str(webhook_event_id),
            "event_id": webhook_event.event_id,
        }
    return {
        "status": "handler_failed",
        "webhook_event_id": str(webhook_event_id),
        "error": result.error,
    }


@shared_task
def retry_failed_webhooks() -> dict:
    """
    Periodic task to retry failed webhook events.

    Finds failed webhooks that haven't exceeded max retries and
    re-queues them for processing.

    Returns:
        Dict with count of webhooks queued for retry
    """
    failed_webhooks = WebhookEvent.objects.filter(
        status=WebhookEventStatus.FAILED,
        retry_count__lt=MAX_WEBHOOK_RETRIES,
    ).order_by("created_at")[:RETRY_BATCH_SIZE]

    queued_count = 0
    for webhook in failed_webhooks:
        try:
            process_webhook_event.delay(str(webhook.id))
            queued_count += 1
            logger.info(
                "Queued failed webhook for retry",
                extra={
                    "webhook_event_id": str(webhook.id),
                    "event_id": webhook.event_id,
                    "retry_count": webhook.retry_count,
                },
            )
        except Exception as e:
            logger.error(
                f"Failed to queue webhook for retry: {e}",
                extra={"webhook_event_id": str(webhook.id)},
            )

    if queued_count:
        logger.info(
            f"Queued {queued_count} failed webhooks for retry",
            extra={"queued_count": queued_count},
        )

    return {"queued_count": queued_count}


@shared_task
def cleanup_stuck_webhooks() -> dict:
    """
    Periodic task to reset stuck webhooks.

    Webhooks left in PROCESSING for longer than the threshold (worker
    crashed mid-processing) are reset to FAILED so they can be retried.

    Returns:
        Dict with count of webhooks reset
    """
    threshold = timezone.now() - timedelta(minutes=STUCK_PROCESSING_THRESHOLD_MINUTES)

    stuck_webhooks = WebhookEvent.objects.filter(
        status=WebhookEventStatus.PROCESSING,
        updated_at__lt=threshold,
    )

    reset_count = 0
    for webhook in stuck_webhooks:
        webhook.mark_failed("Processing timed out - reset for retry")
        webhook.save()
        reset_count += 1
        logger.warning(
            "Reset stuck webhook",
            extra={
                "webhook_event_id": str(webhook.id),
                "event_id": webhook.event_id,
            },
        )

    if reset_count > 0:
        logger.info(
            f"Reset {reset_count} stuck webhooks",
            extra={"reset_count": reset_count},
        )

    return {"reset_count": reset_count}


# =============================================================================
# Re-exported Worker Tasks
# =============================================================================
# Defined in payments.workers, re-exported so Celery autodiscover finds them.

from payments.workers import (  # noqa: E402, F401
    sweep_expired_payment_intents,
    warn_expiring_payment_intents,
)

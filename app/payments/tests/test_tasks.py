"""
Tests for payment Celery tasks.
"""

from datetime import timedelta
from unittest.mock import patch
from uuid import uuid4

import pytest
from django.utils import timezone

from payments.models import PaymentIntent, WebhookEvent
from payments.state_machines import PaymentIntentStatus, WebhookEventStatus
from payments.tasks import (
    MAX_WEBHOOK_RETRIES,
    cleanup_stuck_webhooks,
    process_webhook_event,
    retry_failed_webhooks,
)
from payments.tests.factories import WebhookEventFactory


@pytest.fixture(autouse=True)
def silence_channel_layer(mocker):
    return mocker.patch("payments.events.ChannelLayerNotifier.publish")


@pytest.mark.django_db
class TestProcessWebhookEvent:
    def test_processes_stored_event(self, pending_intent):
        event = WebhookEventFactory(
            payload={
                "transactionId": "FT1",
                "reference": f"ACTA {pending_intent.order.code}",
                "amount": "150000",
            },
            event_id="FT1",
        )

        result = process_webhook_event(str(event.id))

        assert result["status"] == "processed"
        assert WebhookEvent.objects.get(pk=event.pk).is_processed
        assert PaymentIntent.objects.get(pk=pending_intent.pk).status == PaymentIntentStatus.SUCCEEDED

    def test_handler_failure_is_recorded(self):
        event = WebhookEventFactory(status=WebhookEventStatus.FAILED, retry_count=1)

        result = process_webhook_event(str(event.id))

        assert result["status"] == "handler_failed"
        event = WebhookEvent.objects.get(pk=event.pk)
        assert event.status == WebhookEventStatus.FAILED
        assert event.retry_count == 2

    def test_already_processed_is_skipped(self):
        event = WebhookEventFactory(status=WebhookEventStatus.PROCESSED)

        assert process_webhook_event(str(event.id))["status"] == "already_processed"
        assert WebhookEvent.objects.get(pk=event.pk).retry_count == 0

    def test_missing_event(self):
        assert process_webhook_event(str(uuid4()))["status"] == "not_found"


@pytest.mark.django_db
class TestRetryFailedWebhooks:
    def test_queues_retryable_events(self):
        retryable = WebhookEventFactory(status=WebhookEventStatus.FAILED, retry_count=1)
        WebhookEventFactory(status=WebhookEventStatus.FAILED, retry_count=MAX_WEBHOOK_RETRIES)
        WebhookEventFactory(status=WebhookEventStatus.PROCESSED)

        with patch("payments.tasks.process_webhook_event.delay") as delay:
            result = retry_failed_webhooks()

        assert result == {"queued_count": 1}
        delay.assert_called_once_with(str(retryable.id))

    def test_broker_error_does_not_stop_the_batch(self):
        WebhookEventFactory(status=WebhookEventStatus.FAILED)
        WebhookEventFactory(status=WebhookEventStatus.FAILED)

        with patch(
            "payments.tasks.process_webhook_event.delay",
            side_effect=[ConnectionError("broker down"), None],
        ):
            result = retry_failed_webhooks()

        assert result == {"queued_count": 1}


@pytest.mark.django_db
class TestCleanupStuckWebhooks:
    def test_resets_old_processing_events(self):
        stuck = WebhookEventFactory(status=WebhookEventStatus.PROCESSING)
        recent = WebhookEventFactory(status=WebhookEventStatus.PROCESSING)
        WebhookEvent.objects.filter(pk=stuck.pk).update(updated_at=timezone.now() - timedelta(minutes=31))

        result = cleanup_stuck_webhooks()

        assert result == {"reset_count": 1}
        stuck = WebhookEvent.objects.get(pk=stuck.pk)
        assert stuck.status == WebhookEventStatus.FAILED
        assert stuck.error_message == "Processing timed out - reset for retry"
        assert WebhookEvent.objects.get(pk=recent.pk).status == WebhookEventStatus.PROCESSING

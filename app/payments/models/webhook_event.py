"""
WebhookEvent model for inbound payment notifications.

Every delivery from a bank or payment gateway is stored here before it is
processed. The (provider, event_id) unique constraint detects re-deliveries,
and failed rows are picked up again by the retry tasks.

Usage:
    from payments.models import WebhookEvent
    from payments.state_machines import WebhookEventStatus

    event, created = WebhookEvent.objects.get_or_create(
        provider="vietqr",
        event_id=payload["transaction_id"],
        defaults={"event_type": "payment.received", "payload": payload},
    )

    if not created and event.is_processed:
        # Re-delivery of an event we already applied
        return JsonResponse({"success": True, ...})
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils import timezone

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from payments.state_machines import WebhookEventStatus


class WebhookEvent(UUIDPrimaryKeyMixin, BaseModel):
    """
    Tracks webhook deliveries for idempotent processing.

    Processing Flow:
        1. Webhook arrives, verify signature
        2. Insert/get WebhookEvent with (provider, event_id)
        3. If exists and PROCESSED -> answer success (duplicate)
        4. Mark PROCESSING and dispatch to the provider handler
        5. Mark PROCESSED or FAILED
        6. If FAILED, retry_failed_webhooks picks it up later

    Fields:
        provider: Handler key (vietqr, sepay)
        event_id: Provider transaction id
        event_type: Kind of notification
        payload: Parsed JSON body
        status: Processing status
        processed_at: When the event was successfully processed
        error_message: Error details if processing failed
        retry_count: Number of processing attempts
    """

    # ==========================================================================
    # Event Identification
    # ==========================================================================

    provider = models.CharField(
        max_length=32,
        db_index=True,
        help_text="Webhook source, used to pick the handler",
    )
    event_id = models.CharField(
        max_length=255,
        help_text="Provider transaction id - unique per provider for idempotency",
    )
    event_type = models.CharField(
        max_length=100,
        db_index=True,
        default="payment.received",
    )

    payload = models.JSONField(help_text="Parsed webhook body")

    # ==========================================================================
    # Processing Status
    # ==========================================================================

    status = models.CharField(
        max_length=20,
        choices=WebhookEventStatus.choices,
        default=WebhookEventStatus.PENDING,
        db_index=True,
    )
    processed_at = models.DateTimeField(null=True, blank=True)
    error_message = models.TextField(null=True, blank=True)
    retry_count = models.PositiveSmallIntegerField(
        default=0,
        help_text="Number of processing attempts",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Webhook Event"
        verbose_name_plural = "Webhook Events"
        indexes = [
            models.Index(fields=["status", "created_at"], name="webhook_status_created_idx"),
            models.Index(fields=["status", "retry_count"], name="webhook_status_retry_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["provider", "event_id"],
                name="webhook_event_unique_provider_event",
            ),
        ]

    def __str__(self) -> str:
        return f"WebhookEvent({self.provider}:{self.event_id}, {self.status})"

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_processed(self) -> bool:
        return self.status == WebhookEventStatus.PROCESSED

    @property
    def is_failed(self) -> bool:
        return self.status == WebhookEventStatus.FAILED

    @property
    def can_retry(self) -> bool:
        """Check if event can be retried (failed with retry count < max)."""
        max_retries = getattr(settings, "MAX_WEBHOOK_RETRIES", 5)
        return self.is_failed and self.retry_count < max_retries

    # ==========================================================================
    # Helper Methods
    # ==========================================================================

    def mark_processing(self) -> None:
        """
        Mark event as being processed.

        Note: Does not save - caller must save after calling.
        """
        self.status = WebhookEventStatus.PROCESSING
        self.retry_count += 1

    def mark_processed(self) -> None:
        self.status = WebhookEventStatus.PROCESSED
        self.processed_at = timezone.now()
        self.error_message = None

    def mark_failed(self, error_message: str) -> None:
        self.status = WebhookEventStatus.FAILED
        self.error_message = error_message

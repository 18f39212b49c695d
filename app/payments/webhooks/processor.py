"""
Inbound payment notification processing.

WebhookProcessor is the single path a bank or gateway notification takes
once its transport has been authenticated:

1. Required fields are checked
2. The delivery is stored as a WebhookEvent (get_or_create on provider and
   transaction id); a re-delivery of a processed event short-circuits
3. The event is marked processing and dispatched to its provider handler
4. The event is marked processed or failed

The Celery retry tasks feed failed events back through ``process``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from core.exceptions import BaseApplicationError
from core.services import BaseService, ServiceResult

from payments.conf import get_payment_settings
from payments.exceptions import PaymentValidationError
from payments.models import WebhookEvent
from payments.services.intent_manager import PaymentIntentManager
from payments.state_machines import PaymentProvider, WebhookEventStatus
from payments.webhooks.handlers import EXTERNAL_GATEWAY, dispatch_webhook
from payments.webhooks.signature import verify_webhook

if TYPE_CHECKING:
    from collections.abc import Mapping
    from typing import Any

    from payments.conf import PaymentSettings
    from payments.services import PaymentCompletion
    from payments.webhooks.signature import WebhookHeaders


# (required fields, transaction id field candidates) per webhook source
WEBHOOK_FIELDS: dict[str, tuple[tuple[str, ...], tuple[str, ...]]] = {
    PaymentProvider.VIETQR: (("reference", "amount"), ("transactionId", "transaction_id")),
    EXTERNAL_GATEWAY: (("transferAmount",), ("id",)),
}


@dataclass
class WebhookOutcome:
    """
    What happened to one delivery.

    Attributes:
        webhook_event: The stored delivery
        completion: Payment outcome, None for duplicates and unhandled sources
        duplicate: The delivery had already been processed
    """

    webhook_event: WebhookEvent
    completion: PaymentCompletion | None = None
    duplicate: bool = False


class WebhookProcessor(BaseService):
    def __init__(
        self,
        manager: PaymentIntentManager | None = None,
        config: PaymentSettings | None = None,
    ) -> None:
        self.config = config or get_payment_settings()
        self.manager = manager or PaymentIntentManager(config=self.config)
        self.logger = self.get_logger()

    def verify(self, body: bytes | str, headers: Mapping[str, str]) -> WebhookHeaders:
        """Raise WebhookSignatureError unless the delivery is signed and fresh."""
        return verify_webhook(
            body,
            headers,
            secret=self.config.webhook_secret,
            tolerance_seconds=self.config.webhook_tolerance_seconds,
        )

    def receive(self, provider: str, payload: dict[str, Any]) -> ServiceResult[WebhookOutcome]:
        """Store and process one authenticated delivery."""
        try:
            event_id = self._event_id(provider, payload)
        except BaseApplicationError as e:
            return self.handle_exception(e, f"Rejected {provider} webhook")

        webhook_event, created = WebhookEvent.objects.get_or_create(
            provider=str(provider),
            event_id=event_id,
            defaults={"payload": payload, "status": WebhookEventStatus.PENDING},
        )

        self.logger.info(
            f"Received {provider} webhook",
            extra={"event_id": event_id, "created": created, "webhook_event_id": str(webhook_event.pk)},
        )

        if not created and webhook_event.is_processed:
            self.logger.info(
                "Webhook already processed, returning success",
                extra={"event_id": event_id},
            )
            return ServiceResult.success(WebhookOutcome(webhook_event=webhook_event, duplicate=True))

        result = self.process(webhook_event)
        if not result.success:
            return result
        return ServiceResult.success(WebhookOutcome(webhook_event=webhook_event, completion=result.data))

    def process(self, webhook_event: WebhookEvent) -> ServiceResult:
        """
        Dispatch a stored event and record the outcome on it.

        Each payment service owns its own transaction, so dispatch is not
        wrapped in an outer atomic block. Unexpected exceptions mark the
        event failed and propagate.
        """
        webhook_event.mark_processing()
        webhook_event.save()

        try:
            result = dispatch_webhook(webhook_event, self.manager)
        except Exception as e:
            error_msg = f"{type(e).__name__}: {e}"
            webhook_event.mark_failed(error_msg)
            webhook_event.save()
            self.logger.exception(
                "Webhook processing failed with exception",
                extra={"webhook_event_id": str(webhook_event.pk), "error": error_msg},
            )
            raise

        if result.success:
            webhook_event.mark_processed()
            webhook_event.save()
            self.logger.info(
                "Webhook processed successfully",
                extra={"webhook_event_id": str(webhook_event.pk), "event_id": webhook_event.event_id},
            )
        else:
            error_msg = result.error or "Handler returned failure"
            webhook_event.mark_failed(error_msg)
            webhook_event.save()
            self.logger.warning(
                f"Webhook handler failed: {error_msg}",
                extra={
                    "webhook_event_id": str(webhook_event.pk),
                    "event_id": webhook_event.event_id,
                    "error_code": result.error_code,
                },
            )
        return result

    @staticmethod
    def _event_id(provider: str, payload: Any) -> str:
        if not isinstance(payload, dict):
            raise PaymentValidationError("Webhook payload must be a JSON object")

        required, id_fields = WEBHOOK_FIELDS.get(provider, ((), ("id",)))
        event_id = next((payload[name] for name in id_fields if payload.get(name) not in (None, "")), None)
        missing = [name for name in required if payload.get(name) in (None, "")]
        if event_id is None:
            missing.append(id_fields[0])

        if missing:
            raise PaymentValidationError(
                "Missing required webhook fields",
                details={"missing_fields": missing},
            )
        return str(event_id)

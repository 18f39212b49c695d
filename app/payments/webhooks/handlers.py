"""
Webhook handlers for bank and gateway payment notifications.

Handlers are registered per webhook source and receive the stored
WebhookEvent plus the PaymentIntentManager to complete payments with.

Usage:
    from payments.webhooks.handlers import dispatch_webhook, register_handler

    @register_handler("mybank")
    def handle_mybank(webhook_event: WebhookEvent, manager: PaymentIntentManager) -> ServiceResult:
        ...

    result = dispatch_webhook(webhook_event, manager)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable

from core.exceptions import BaseApplicationError
from core.services import ServiceResult

from payments.events import PaymentEvent, PaymentEventType
from payments.references import parse_reference
from payments.services.intent_manager import VERIFICATION_WEBHOOK, PaymentIntentManager
from payments.state_machines import PaymentProvider
from payments.webhooks.external import extract_order_code

if TYPE_CHECKING:
    from payments.models import PaymentIntent, WebhookEvent


logger = logging.getLogger(__name__)

EXTERNAL_GATEWAY = "sepay"


# =============================================================================
# Handler Registry
# =============================================================================

WEBHOOK_HANDLERS: dict[str, Callable[[WebhookEvent, PaymentIntentManager], ServiceResult]] = {}


def register_handler(provider: str) -> Callable:
    """
    Decorator to register a webhook handler for a webhook source.

    Args:
        provider: WebhookEvent.provider value (e.g., "vietqr")
    """

    def decorator(func: Callable[[WebhookEvent, PaymentIntentManager], ServiceResult]) -> Callable:
        WEBHOOK_HANDLERS[str(provider)] = func
        logger.debug(f"Registered webhook handler for {provider}")
        return func

    return decorator


def dispatch_webhook(webhook_event: WebhookEvent, manager: PaymentIntentManager | None = None) -> ServiceResult:
    """
    Dispatch a webhook event to the handler registered for its provider.

    Unknown providers are logged and answered with success so a stray
    delivery is not retried forever.
    """
    handler = WEBHOOK_HANDLERS.get(webhook_event.provider)

    if not handler:
        logger.info(
            f"No handler registered for webhook provider: {webhook_event.provider}",
            extra={"event_id": webhook_event.event_id},
        )
        return ServiceResult.success(None)

    if manager is None:
        manager = PaymentIntentManager()

    logger.info(
        f"Dispatching {webhook_event.provider} webhook to handler",
        extra={"event_id": webhook_event.event_id, "webhook_event_id": str(webhook_event.pk)},
    )
    return handler(webhook_event, manager)


# =============================================================================
# Bank Transfer Handlers
# =============================================================================


@register_handler(PaymentProvider.VIETQR)
def handle_vietqr_transfer(webhook_event: WebhookEvent, manager: PaymentIntentManager) -> ServiceResult:
    """
    Complete the intent named by the remittance description of a transfer.

    Emits webhook_received before completion and webhook_processed or
    webhook_error afterwards.
    """
    payload = webhook_event.payload
    parsed = parse_reference(payload.get("reference"), prefix=manager.config.reference_prefix)
    if not parsed.is_payment:
        logger.warning(
            f"Invalid reference format in webhook: {payload.get('reference')}",
            extra={"event_id": webhook_event.event_id},
        )
        return ServiceResult.failure(
            "Invalid reference format in webhook",
            error_code="INVALID_REFERENCE",
            details={"reference": payload.get("reference")},
        )

    try:
        intent = manager.resolve_intent(parsed.order_code, PaymentProvider.VIETQR, parsed.payment_id)
    except BaseApplicationError as e:
        return ServiceResult.from_exception(e)

    _publish(manager, PaymentEventType.WEBHOOK_RECEIVED, intent, webhook_data=payload)

    result = manager.complete_checked(
        intent,
        amount=payload.get("amount"),
        currency=payload.get("currency"),
        provider_ref=webhook_event.event_id,
        raw_payload=payload,
        verification_method=VERIFICATION_WEBHOOK,
    )

    if result.success:
        _publish(
            manager,
            PaymentEventType.WEBHOOK_PROCESSED,
            intent,
            status=result.data.status,
            message=result.data.message,
        )
    else:
        _publish(manager, PaymentEventType.WEBHOOK_ERROR, intent, error=result.error)
    return result


@register_handler(EXTERNAL_GATEWAY)
def handle_external_transfer(webhook_event: WebhookEvent, manager: PaymentIntentManager) -> ServiceResult:
    """Complete an order reported paid by the external gateway."""
    payload = webhook_event.payload
    try:
        order_code = extract_order_code(payload)
    except BaseApplicationError as e:
        logger.error(str(e), extra={"event_id": webhook_event.event_id})
        return ServiceResult.from_exception(e)

    logger.info(
        f"Extracted order code: {order_code} from {EXTERNAL_GATEWAY} webhook",
        extra={"event_id": webhook_event.event_id},
    )
    return manager.complete_by_order_code(
        order_code,
        payload.get("transferAmount"),
        provider_ref=str(payload.get("referenceCode") or webhook_event.event_id),
        raw_payload=payload,
    )


def _publish(manager: PaymentIntentManager, event_type: PaymentEventType, intent: PaymentIntent, **data) -> None:
    manager.notifier.publish(PaymentEvent.for_intent(event_type, intent, **data))

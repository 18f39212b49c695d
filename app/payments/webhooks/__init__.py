"""
Webhook handling for bank and gateway payment notifications.

This module provides views, the processor and provider handlers for
inbound payment notifications. Deliveries are authenticated, stored
idempotently as WebhookEvents and dispatched to the handler registered for
their source.

Usage:
    # In urls.py
    from payments.webhooks.views import vietqr_webhook

    urlpatterns = [
        path("webhooks/vietqr/", vietqr_webhook, name="vietqr_webhook"),
    ]
"""

from payments.webhooks.handlers import dispatch_webhook, register_handler
from payments.webhooks.processor import WebhookOutcome, WebhookProcessor
from payments.webhooks.views import external_payment_complete, vietqr_webhook

__all__ = [
    "WebhookOutcome",
    "WebhookProcessor",
    "dispatch_webhook",
    "external_payment_complete",
    "register_handler",
    "vietqr_webhook",
]

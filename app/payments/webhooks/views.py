"""
Webhook endpoint views for bank and gateway notifications.

The views:
1. Authenticate the delivery (HMAC signature or static API key) before any
   database read or write
2. Hand the payload to WebhookProcessor
3. Answer with the outcome

The bank webhook always answers 200 once authenticated, with
``success: false`` when processing failed, so the sender does not retry a
delivery we already recorded; failed events are retried by Celery instead.

Usage:
    # In urls.py
    from payments.webhooks.views import external_payment_complete, vietqr_webhook

    urlpatterns = [
        path("webhooks/vietqr/", vietqr_webhook, name="vietqr_webhook"),
        path("webhooks/external/", external_payment_complete, name="external_payment_complete"),
    ]
"""

from __future__ import annotations

import json
import logging

from django.http import HttpRequest, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from core.helpers import get_client_ip
from payments.exceptions import WebhookSignatureError
from payments.permissions import is_valid_api_key
from payments.state_machines import PaymentProvider
from payments.webhooks.handlers import EXTERNAL_GATEWAY
from payments.webhooks.processor import WebhookProcessor

logger = logging.getLogger(__name__)


def _error_body(error: str) -> dict:
    return {"success": False, "message": "Webhook processed with errors", "error": error}


def _load_json(request: HttpRequest):
    try:
        return json.loads(request.body or b"{}")
    except (UnicodeDecodeError, ValueError):
        return None


@csrf_exempt
@require_POST
def vietqr_webhook(request: HttpRequest) -> JsonResponse:
    """
    Receive a VietQR bank transfer notification.

    Returns:
        JsonResponse with status:
        - 200: Delivery processed, duplicate, or processed with errors
        - 401: Signature or timestamp rejected
    """
    processor = WebhookProcessor()

    try:
        processor.verify(request.body, request.headers)
    except WebhookSignatureError as e:
        logger.warning(
            "Webhook signature verification failed",
            extra={"error": e.message, "client_ip": get_client_ip(request)},
        )
        return JsonResponse(
            {"success": False, "message": "Invalid webhook signature", "error": e.message},
            status=401,
        )

    payload = _load_json(request)
    if not isinstance(payload, dict):
        logger.warning("Webhook body is not a JSON object")
        return JsonResponse(_error_body("Invalid JSON payload"), status=200)

    logger.info(
        f"VietQR webhook received with reference {payload.get('reference')}",
        extra={"reference": payload.get("reference")},
    )

    try:
        result = processor.receive(PaymentProvider.VIETQR, payload)
    except Exception as e:
        logger.error(
            f"Error processing VietQR webhook: {type(e).__name__}",
            exc_info=True,
        )
        return JsonResponse(_error_body(str(e)), status=200)

    if not result.success:
        logger.error(f"Error processing VietQR webhook: {result.error}")
        return JsonResponse(_error_body(result.error), status=200)

    outcome = result.data
    if outcome.duplicate:
        return JsonResponse(
            {"success": True, "message": "Webhook already processed", "event_id": outcome.webhook_event.event_id},
            status=200,
        )

    completion = outcome.completion
    return JsonResponse(
        {
            "success": True,
            "message": "Webhook processed successfully",
            "payment_status": completion.status if completion else None,
            "payment_id": completion.payment_id if completion else None,
            "order_id": completion.order_id if completion else None,
        },
        status=200,
    )


@csrf_exempt
@require_POST
def external_payment_complete(request: HttpRequest) -> JsonResponse:
    """
    Complete a payment reported by the external gateway.

    Authenticated with the static key in ``X-API-Key`` or
    ``Authorization: Apikey <key>``.
    """
    if not is_valid_api_key(request):
        logger.warning(
            "External payment completion rejected: invalid API key",
            extra={"client_ip": get_client_ip(request)},
        )
        return JsonResponse(
            {"success": False, "error": "Invalid or missing API key", "error_code": "INVALID_API_KEY"},
            status=401,
        )

    payload = _load_json(request)
    if not isinstance(payload, dict):
        return JsonResponse(
            {"success": False, "error": "Invalid JSON payload", "error_code": "INVALID_PAYLOAD"},
            status=400,
        )

    logger.info(
        f"{EXTERNAL_GATEWAY} webhook received",
        extra={"transaction_id": payload.get("id")},
    )

    processor = WebhookProcessor()
    result = processor.receive(EXTERNAL_GATEWAY, payload)
    if not result.success:
        return JsonResponse(result.to_response(), status=result.status_code)

    outcome = result.data
    completion = outcome.completion
    return JsonResponse(
        {
            "success": True,
            "order_id": completion.order_id if completion else None,
            "payment_id": completion.payment_id if completion else None,
            "status": completion.status if completion else None,
            "message": (
                "Webhook already processed"
                if outcome.duplicate
                else completion.message or "Payment and order completed via external gateway"
            ),
            "transaction_id": payload.get("id"),
            "transfer_amount": payload.get("transferAmount"),
        },
        status=200,
    )

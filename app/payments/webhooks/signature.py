"""
HMAC verification of bank webhook deliveries.

The sender signs the raw request body with the shared secret and sends:

    X-Signature: <hex>  or  sha256=<hex>
    X-Timestamp: unix seconds at send time
    X-Nonce:     optional, logged for tracing

A delivery is rejected when the signature does not match or the timestamp
is further than the tolerance from the server clock. Verification happens
before any database read or write.

Usage:
    from payments.webhooks.signature import verify_webhook

    headers = verify_webhook(request.body, request.headers, secret, tolerance_seconds=300)
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

from payments.exceptions import WebhookSignatureError

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Signature"
TIMESTAMP_HEADER = "X-Timestamp"
NONCE_HEADER = "X-Nonce"


@dataclass(frozen=True)
class WebhookHeaders:
    signature: str
    timestamp: str
    nonce: str | None = None


def compute_signature(body: bytes | str, secret: str) -> str:
    """Hex HMAC-SHA256 of ``body``."""
    if isinstance(body, str):
        body = body.encode("utf-8")
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def extract_signature(header: str) -> str:
    """Strip an optional ``sha256=`` scheme prefix."""
    header = header.strip()
    if "=" in header:
        return header.split("=", 1)[1]
    return header


def verify_timestamp(timestamp: str, tolerance_seconds: int, now: float | None = None) -> bool:
    try:
        sent_at = int(timestamp)
    except (TypeError, ValueError):
        return False
    now = time.time() if now is None else now
    return abs(now - sent_at) <= tolerance_seconds


def verify_signature(body: bytes | str, signature: str, secret: str) -> bool:
    expected = compute_signature(body, secret)
    return hmac.compare_digest(extract_signature(signature), expected)


def verify_webhook(
    body: bytes | str,
    headers: Mapping[str, str],
    secret: str,
    tolerance_seconds: int = 300,
    now: float | None = None,
) -> WebhookHeaders:
    """
    Check the signature headers of a delivery.

    Raises:
        WebhookSignatureError: Missing headers, unconfigured secret, stale
            timestamp or signature mismatch
    """
    signature = headers.get(SIGNATURE_HEADER)
    timestamp = headers.get(TIMESTAMP_HEADER)
    nonce = headers.get(NONCE_HEADER)

    if not signature or not timestamp:
        logger.warning("Missing required webhook headers")
        raise WebhookSignatureError("Missing webhook signature headers")

    if not secret:
        logger.error("Webhook secret not configured, rejecting delivery")
        raise WebhookSignatureError("Webhook secret not configured")

    if not verify_timestamp(timestamp, tolerance_seconds, now=now):
        logger.warning(
            "Webhook timestamp is too old or invalid",
            extra={"timestamp": timestamp, "nonce": nonce},
        )
        raise WebhookSignatureError(
            "Webhook timestamp outside tolerance",
            details={"timestamp": timestamp},
        )

    if not verify_signature(body, signature, secret):
        logger.warning("Invalid webhook signature", extra={"nonce": nonce})
        raise WebhookSignatureError("Invalid webhook signature")

    logger.debug("Webhook signature verified", extra={"nonce": nonce})
    return WebhookHeaders(signature=extract_signature(signature), timestamp=timestamp, nonce=nonce)

"""
Authentication of the external payment gateway.

The gateway presents a static API key. Staff-only endpoints use DRF's
IsAdminUser; ownership of a payment is checked by the services, which answer
403 through ServiceResult.
"""

from __future__ import annotations

import hmac

from payments.conf import get_payment_settings


def extract_api_key(request) -> str | None:
    """Read the key from ``X-API-Key`` or ``Authorization: Apikey <key>``."""
    key = request.headers.get("X-API-Key")
    if key:
        return key.strip()
    authorization = request.headers.get("Authorization", "")
    scheme, _, value = authorization.partition(" ")
    if scheme.lower() == "apikey" and value:
        return value.strip()
    return None


def is_valid_api_key(request) -> bool:
    expected = get_payment_settings().external_api_key
    provided = extract_api_key(request)
    if not expected or not provided:
        return False
    return hmac.compare_digest(provided, expected)

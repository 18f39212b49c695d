"""
Payload helpers for the external (SePay-style) completion gateway.

The gateway posts every incoming bank transfer. The order code is taken from,
in order of preference:

    1. the ``code`` field the gateway recognised itself
    2. an ``ORD...`` token in the SMS ``description``
    3. an ``ACT...`` or ``ORD...`` token in the transfer ``content``
"""

from __future__ import annotations

import re
from typing import Any

from payments.exceptions import PaymentValidationError

_DESCRIPTION_CODE = re.compile(r"\b(ORD\w+)", re.IGNORECASE)
_CONTENT_CODE = re.compile(r"\b(ACT\w+|ORD\w+)", re.IGNORECASE)


def extract_order_code(payload: dict[str, Any]) -> str:
    if payload.get("code"):
        return str(payload["code"])

    match = _DESCRIPTION_CODE.search(payload.get("description") or "")
    if match is None:
        match = _CONTENT_CODE.search(payload.get("content") or "")
    if match is None:
        raise PaymentValidationError(
            "Cannot extract order code from webhook payload",
            details={
                "content": payload.get("content"),
                "description": payload.get("description"),
            },
        )
    return match.group(1)

"""
Helper functions for common infrastructure operations.

- Human-readable document codes (invoice, refund and payment references)
- HTTP request helpers (client IP extraction)

Usage:
    from core.helpers import make_reference_code, get_client_ip

    code = make_reference_code("INV")  # "INV-1718000000000-K3J9QZ"
    ip = get_client_ip(request)
"""

from __future__ import annotations

import secrets
import string
from typing import TYPE_CHECKING

from django.utils import timezone

if TYPE_CHECKING:
    from django.http import HttpRequest

_CODE_ALPHABET = string.ascii_uppercase + string.digits


def random_suffix(length: int = 6) -> str:
    """Return ``length`` uppercase alphanumeric characters from a secure RNG."""
    return "".join(secrets.choice(_CODE_ALPHABET) for _ in range(length))


def timestamp_ms() -> int:
    """Current time in epoch milliseconds."""
    return int(timezone.now().timestamp() * 1000)


def make_reference_code(prefix: str, suffix_length: int = 6) -> str:
    """
    Build a ``<PREFIX>-<epoch ms>-<RANDOM>`` document code.

    Used for invoice codes, invoice payment codes and refund references.
    """
    return f"{prefix}-{timestamp_ms()}-{random_suffix(suffix_length)}"


def get_client_ip(request: HttpRequest) -> str:
    """
    Extract client IP from request, handling proxies.

    Takes the first address of X-Forwarded-For when present.
    """
    x_forwarded_for = request.META.get("HTTP_X_FORWARDED_FOR")
    if x_forwarded_for:
        ip = x_forwarded_for.split(",")[0].strip()
    else:
        ip = request.META.get("REMOTE_ADDR", "")
    return ip

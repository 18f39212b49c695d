"""
Remittance description grammar.

Customers paying by bank transfer type (or scan) a description that ties the
money to an order; refunds sent back by the shop carry a refund marker.

    ACTA <orderCode>                    payment for an order
    ACTA <orderCode> | pay:<paymentId>  payment naming the intent explicitly
    ACTA REF <refundId>                 refund paid out to a customer

Banks often wrap the description in a longer memo
(``MBVCB.1234.ACTA ORD123.CT tu ...``), so the grammar is searched for,
not anchored. Parsing never raises: anything unrecognised comes back as
``ReferenceKind.UNKNOWN``.
"""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass

DEFAULT_PREFIX = "ACTA"

_TOKEN = r"[A-Za-z0-9_-]+"


class ReferenceKind(str, enum.Enum):
    PAYMENT = "payment"
    REFUND = "refund"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ParsedReference:
    kind: ReferenceKind
    raw: str = ""
    order_code: str | None = None
    payment_id: str | None = None
    refund_id: str | None = None

    @property
    def is_payment(self) -> bool:
        return self.kind is ReferenceKind.PAYMENT

    @property
    def is_refund(self) -> bool:
        return self.kind is ReferenceKind.REFUND


def _patterns(prefix: str) -> tuple[re.Pattern, re.Pattern]:
    escaped = re.escape(prefix)
    refund = re.compile(rf"(?<![A-Za-z0-9]){escaped} REF ({_TOKEN})")
    payment = re.compile(rf"(?<![A-Za-z0-9]){escaped} ({_TOKEN})(?: \| pay:({_TOKEN}))?")
    return refund, payment


_DEFAULT_PATTERNS = _patterns(DEFAULT_PREFIX)


def parse_reference(text: str | None, prefix: str = DEFAULT_PREFIX) -> ParsedReference:
    """
    Classify a remittance description.

    The refund grammar is tried first so ``ACTA REF x`` is never read as a
    payment for an order called ``REF``.
    """
    if not text or not isinstance(text, str):
        return ParsedReference(kind=ReferenceKind.UNKNOWN, raw=text or "")

    raw = text.strip()
    refund_re, payment_re = _DEFAULT_PATTERNS if prefix == DEFAULT_PREFIX else _patterns(prefix)

    match = refund_re.search(raw)
    if match:
        return ParsedReference(kind=ReferenceKind.REFUND, raw=raw, refund_id=match.group(1))

    match = payment_re.search(raw)
    if match:
        return ParsedReference(
            kind=ReferenceKind.PAYMENT,
            raw=raw,
            order_code=match.group(1),
            payment_id=match.group(2),
        )

    return ParsedReference(kind=ReferenceKind.UNKNOWN, raw=raw)


def build_payment_reference(
    order_code: str,
    payment_id: str | None = None,
    prefix: str = DEFAULT_PREFIX,
) -> str:
    """Description customers put on a bank transfer for ``order_code``."""
    if payment_id:
        return f"{prefix} {order_code} | pay:{payment_id}"
    return f"{prefix} {order_code}"


def build_refund_reference(refund_id: str, prefix: str = DEFAULT_PREFIX) -> str:
    return f"{prefix} REF {refund_id}"

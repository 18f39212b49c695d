"""
Typed metadata stored on payment intents and refund requests.

Each metadata shape is a frozen dataclass with a ``kind`` tag. Intents and
refunds persist them in JSON fields as sections keyed by kind, so several
stages (QR issued, completion, expiry) can coexist on one record:

    {
        "vietqr_qr": {"kind": "vietqr_qr", "qr_content": "...", ...},
        "completion": {"kind": "completion", "verification_method": "webhook", ...}
    }

Unknown kinds read back as OpaqueMeta so older or foreign sections survive a
round trip. Every shape also carries ``extra`` for provider fields that have
no typed slot yet.

Usage:
    from payments.types import CompletionMeta, parse_meta

    intent.attach_response_meta(CompletionMeta(verification_method="webhook", ...))
    meta = parse_meta(intent.response_meta["completion"])
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from typing import Any, ClassVar, Union


@dataclass(frozen=True)
class _Meta:
    kind: ClassVar[str] = ""

    def to_json(self) -> dict[str, Any]:
        data = asdict(self)
        data["kind"] = self.kind
        return data

    @classmethod
    def from_json(cls, data: dict[str, Any]):
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        return cls(**values)


# =============================================================================
# Intent request metadata
# =============================================================================


@dataclass(frozen=True)
class VietQRRequestMeta(_Meta):
    """What was asked of the bank when a transfer QR was issued."""

    kind: ClassVar[str] = "vietqr_request"

    amount: str
    description: str
    order_code: str
    bank_bin: str
    account_number: str
    account_name: str
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CashRequestMeta(_Meta):
    kind: ClassVar[str] = "cash_request"

    order_code: str
    extra: dict[str, Any] = field(default_factory=dict)


# =============================================================================
# Intent response metadata
# =============================================================================


@dataclass(frozen=True)
class VietQRResponseMeta(_Meta):
    kind: ClassVar[str] = "vietqr_qr"

    qr_content: str
    generated_at: str
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CompletionMeta(_Meta):
    """
    How a payment was confirmed.

    verification_method is one of ``webhook``, ``manual`` or ``external``.
    """

    kind: ClassVar[str] = "completion"

    verification_method: str
    verified_at: str
    raw_payload: dict[str, Any] = field(default_factory=dict)
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ExpirationMeta(_Meta):
    kind: ClassVar[str] = "expiration"

    expired_at: str
    reason: str = "payment_timeout"
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CancellationMeta(_Meta):
    """
    Why a live intent was cancelled.

    ``cancelled_by_retry`` is set when an expired pending intent is replaced
    by a fresh one.
    """

    kind: ClassVar[str] = "cancellation"

    reason: str
    cancelled_by_retry: bool = False
    cancelled_by: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)


# =============================================================================
# Refund metadata
# =============================================================================


@dataclass(frozen=True)
class RefundRequestMeta(_Meta):
    """Amounts as they stood when the refund was requested."""

    kind: ClassVar[str] = "refund_request"

    original_amount: str
    refunded_amount: str
    refundable_amount: str
    items: list[Any] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class OpaqueMeta:
    """A section whose kind this code base does not know."""

    kind: str
    data: dict[str, Any]

    def to_json(self) -> dict[str, Any]:
        return {**self.data, "kind": self.kind}


PaymentMeta = Union[
    VietQRRequestMeta,
    CashRequestMeta,
    VietQRResponseMeta,
    CompletionMeta,
    ExpirationMeta,
    CancellationMeta,
    RefundRequestMeta,
    OpaqueMeta,
]

META_TYPES: dict[str, type[_Meta]] = {
    meta_type.kind: meta_type
    for meta_type in (
        VietQRRequestMeta,
        CashRequestMeta,
        VietQRResponseMeta,
        CompletionMeta,
        ExpirationMeta,
        CancellationMeta,
        RefundRequestMeta,
    )
}


def parse_meta(data: dict[str, Any]) -> PaymentMeta:
    """Rebuild a typed metadata section from its stored JSON."""
    kind = data.get("kind", "")
    meta_type = META_TYPES.get(kind)
    if meta_type is None:
        return OpaqueMeta(kind=kind, data={k: v for k, v in data.items() if k != "kind"})
    return meta_type.from_json(data)

"""
State machine enums and helpers for payment models.
"""

from payments.state_machines.states import (
    COMMITTED_REFUND_STATUSES,
    LIVE_INTENT_STATUSES,
    METHOD_PROVIDERS,
    SETTLEABLE_REFUND_STATUSES,
    PaymentIntentStatus,
    PaymentLinkStatus,
    PaymentMethod,
    PaymentProvider,
    RefundStatus,
    TransactionKind,
    WebhookEventStatus,
)

__all__ = [
    "COMMITTED_REFUND_STATUSES",
    "LIVE_INTENT_STATUSES",
    "METHOD_PROVIDERS",
    "PaymentIntentStatus",
    "PaymentLinkStatus",
    "PaymentMethod",
    "PaymentProvider",
    "RefundStatus",
    "SETTLEABLE_REFUND_STATUSES",
    "TransactionKind",
    "WebhookEventStatus",
]

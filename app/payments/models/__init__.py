"""
Payment domain models.

- OrderPaymentLink: Payable snapshot of an order (amount, method, provider)
- PaymentIntent: One attempt to collect the link amount through a provider
- TransactionRecord: Append-only charge/refund ledger
- RefundRequest: Two-step refund approval and settlement
- WebhookEvent: Inbound webhook delivery log for idempotent processing
"""

from payments.models.payment_intent import PaymentIntent
from payments.models.payment_link import OrderPaymentLink
from payments.models.refund_request import RefundRequest
from payments.models.transaction_record import TransactionRecord
from payments.models.webhook_event import WebhookEvent

__all__ = [
    "OrderPaymentLink",
    "PaymentIntent",
    "RefundRequest",
    "TransactionRecord",
    "WebhookEvent",
]

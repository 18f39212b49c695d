"""
State and choice enums for payment models.

State Machines Overview:

PaymentIntent:
    created -> pending -> succeeded -> refunded
    created/pending -> failed (expired) / cancelled (user or retry replacement)
    Terminal states (failed, cancelled, refunded) are never reopened.

RefundRequest:
    requested -> approved -> succeeded / failed
    requested/approved -> cancelled

OrderPaymentLink mirrors the intent:
    pending -> paid -> refunded
    pending -> failed / canceled
"""

from django.db import models


class PaymentProvider(models.TextChoices):
    """Providers a payment intent can be routed to."""

    VIETQR = "vietqr", "VietQR bank transfer"
    CASH = "cash", "Cash on delivery"
    STRIPE = "stripe", "Card (Stripe)"


class PaymentMethod(models.TextChoices):
    TRANSFER = "transfer", "Bank transfer"
    CASH = "cash", "Cash"
    CARD = "card", "Card"


# Only these method/provider pairs are accepted when creating an intent
METHOD_PROVIDERS = {
    PaymentMethod.TRANSFER: PaymentProvider.VIETQR,
    PaymentMethod.CASH: PaymentProvider.CASH,
    PaymentMethod.CARD: PaymentProvider.STRIPE,
}


class PaymentIntentStatus(models.TextChoices):
    """
    States for the PaymentIntent lifecycle.

    Live states: CREATED, PENDING
    Terminal states: FAILED, CANCELLED, REFUNDED
    SUCCEEDED is final except for a full refund.
    """

    CREATED = "created", "Created"
    PENDING = "pending", "Pending"
    SUCCEEDED = "succeeded", "Succeeded"
    FAILED = "failed", "Failed"
    CANCELLED = "cancelled", "Cancelled"
    REFUNDED = "refunded", "Refunded"


LIVE_INTENT_STATUSES = frozenset([PaymentIntentStatus.CREATED, PaymentIntentStatus.PENDING])


class PaymentLinkStatus(models.TextChoices):
    """Status mirrored on OrderPaymentLink from its latest intent."""

    PENDING = "pending", "Pending"
    PAID = "paid", "Paid"
    FAILED = "failed", "Failed"
    CANCELED = "canceled", "Canceled"
    REFUNDED = "refunded", "Refunded"


class RefundStatus(models.TextChoices):
    """
    States for the RefundRequest lifecycle.

    PROCESSING marks a provider-side refund in flight. It counts against the
    refundable amount together with SUCCEEDED and settles or fails like an
    approved refund.
    """

    REQUESTED = "requested", "Requested"
    APPROVED = "approved", "Approved"
    PROCESSING = "processing", "Processing"
    SUCCEEDED = "succeeded", "Succeeded"
    CANCELLED = "cancelled", "Cancelled"
    FAILED = "failed", "Failed"


# Refund states whose amount is already committed against the payment
COMMITTED_REFUND_STATUSES = frozenset([RefundStatus.SUCCEEDED, RefundStatus.PROCESSING])

# Refund states a payout can still settle or fail from
SETTLEABLE_REFUND_STATUSES = frozenset([RefundStatus.APPROVED, RefundStatus.PROCESSING])


class TransactionKind(models.TextChoices):
    CHARGE = "charge", "Charge"
    REFUND = "refund", "Refund"


class WebhookEventStatus(models.TextChoices):
    """
    Processing status for inbound webhook deliveries.

    PENDING -> PROCESSING -> PROCESSED
    PENDING -> PROCESSING -> FAILED -> PROCESSING (retry)
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    PROCESSED = "processed", "Processed"
    FAILED = "failed", "Failed"

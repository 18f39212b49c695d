"""
Factory Boy factories for payment test data.

This module provides factories for creating test instances of payment models.
Factories generate realistic test data while allowing easy customization.

Usage:
    from payments.tests.factories import (
        OrderPaymentLinkFactory,
        PaymentIntentFactory,
        RefundRequestFactory,
        WebhookEventFactory,
    )

    # A pending VietQR intent for a fresh draft order
    intent = PaymentIntentFactory()

    # An intent in a specific state
    intent = PaymentIntentFactory(succeeded=True)

    # An intent for an existing link
    intent = PaymentIntentFactory(order_link=link)
"""

from datetime import timedelta
from decimal import Decimal

import factory
from django.utils import timezone

from orders.tests.factories import OrderFactory
from payments.models import (
    OrderPaymentLink,
    PaymentIntent,
    RefundRequest,
    WebhookEvent,
)
from payments.state_machines import (
    PaymentIntentStatus,
    PaymentLinkStatus,
    PaymentMethod,
    PaymentProvider,
    RefundStatus,
    WebhookEventStatus,
)


class OrderPaymentLinkFactory(factory.django.DjangoModelFactory):
    """
    Payable snapshot of an order, routed to VietQR by default.

    The amount is copied from the order like OrderPaymentLink.snapshot does.
    """

    class Meta:
        model = OrderPaymentLink

    order = factory.SubFactory(OrderFactory)
    method = PaymentMethod.TRANSFER
    provider = PaymentProvider.VIETQR
    amount = factory.SelfAttribute("order.total_amount")
    currency = "VND"
    status = PaymentLinkStatus.PENDING


class PaymentIntentFactory(factory.django.DjangoModelFactory):
    """
    Factory for creating PaymentIntent instances.

    Defaults to a PENDING intent expiring 15 minutes from now.

    Traits:
        succeeded: Paid intent with a provider reference
        expired: Pending intent whose QR expired a minute ago
    """

    class Meta:
        model = PaymentIntent

    order_link = factory.SubFactory(OrderPaymentLinkFactory)
    order = factory.SelfAttribute("order_link.order")
    code = factory.Sequence(lambda n: f"PAY-TEST-{n:06d}")
    provider = factory.SelfAttribute("order_link.provider")
    method = factory.SelfAttribute("order_link.method")
    amount = factory.SelfAttribute("order_link.amount")
    currency = "VND"
    status = PaymentIntentStatus.PENDING
    pending_at = factory.LazyFunction(timezone.now)
    expires_at = factory.LazyFunction(lambda: timezone.now() + timedelta(minutes=15))

    class Params:
        succeeded = factory.Trait(
            status=PaymentIntentStatus.SUCCEEDED,
            succeeded_at=factory.LazyFunction(timezone.now),
            provider_ref=factory.Sequence(lambda n: f"FT{n:08d}"),
        )
        expired = factory.Trait(
            expires_at=factory.LazyFunction(lambda: timezone.now() - timedelta(minutes=1)),
        )


class RefundRequestFactory(factory.django.DjangoModelFactory):
    """Requested refund of part of a succeeded payment."""

    class Meta:
        model = RefundRequest

    payment_intent = factory.SubFactory(PaymentIntentFactory, succeeded=True)
    amount = Decimal("50000.00")
    currency = "VND"
    reason = "Damaged item"
    reference = factory.Sequence(lambda n: f"REF-1700000000000-T{n:05d}")
    status = RefundStatus.REQUESTED


class WebhookEventFactory(factory.django.DjangoModelFactory):
    """
    Stored VietQR delivery.

    Pass ``payload`` to match an existing order; the default reference
    points at no order.
    """

    class Meta:
        model = WebhookEvent

    provider = PaymentProvider.VIETQR
    event_id = factory.Sequence(lambda n: f"FT{n:08d}")
    event_type = "payment.received"
    payload = factory.LazyAttribute(
        lambda o: {
            "transactionId": o.event_id,
            "reference": "ACTA ORD999999",
            "amount": "150000",
            "currency": "VND",
        }
    )
    status = WebhookEventStatus.PENDING

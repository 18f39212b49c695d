"""
Pytest fixtures for payment tests.

This module provides fixtures for creating payment-related test data and
recording fakes for the collaborators payment services depend on.
Fixtures are designed to provide objects in various states for testing
state transitions and business logic.

Usage:
    def test_complete_payment(manager, pending_intent, inventory):
        result = manager.verify_payment(pending_intent.id, amount=pending_intent.amount)
        assert result.success
        assert inventory.committed == [pending_intent.order_id]
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from authentication.tests.factories import StaffUserFactory, UserFactory
from orders.models import OrderStatus
from orders.tests.factories import OrderFactory
from payments.conf import PaymentSettings
from payments.services import PaymentIntentManager, ReconciliationEngine, RefundWorkflow
from payments.state_machines import PaymentLinkStatus, PaymentMethod, PaymentProvider
from payments.tests.factories import OrderPaymentLinkFactory, PaymentIntentFactory


# =============================================================================
# Collaborator Fakes
# =============================================================================


class RecordingNotifier:
    """PaymentNotifier keeping every published event."""

    def __init__(self):
        self.events = []

    def publish(self, event):
        self.events.append(event)

    @property
    def types(self):
        return [event.type for event in self.events]

    def of_type(self, event_type):
        return [event for event in self.events if event.type == event_type]


class FakeInventory:
    """InventoryGateway recording which orders were committed or restored."""

    def __init__(self):
        self.committed = []
        self.restored = []
        self.re_reserved = []
        self.error = None

    def commit_on_success(self, order):
        if self.error:
            raise self.error
        if order.pk in self.committed:
            return False
        self.committed.append(order.pk)
        return True

    def restore_on_failure(self, order):
        if self.error:
            raise self.error
        if order.pk in self.restored:
            return False
        self.restored.append(order.pk)
        return True

    def re_reserve(self, order):
        if order.pk not in self.restored:
            return False
        self.restored.remove(order.pk)
        self.re_reserved.append(order.pk)
        return True


class FakeCommissionScheduler:
    def __init__(self):
        self.enqueued = []

    def enqueue(self, order):
        self.enqueued.append(order.pk)


# =============================================================================
# User Fixtures
# =============================================================================


@pytest.fixture
def customer(db):
    """The customer who owns the order under test."""
    return UserFactory()


@pytest.fixture
def other_customer(db):
    return UserFactory()


@pytest.fixture
def staff_user(db):
    return StaffUserFactory()


@pytest.fixture
def second_staff_user(db):
    """A second operator, for approvals that must not be self-approvals."""
    return StaffUserFactory()


# =============================================================================
# Service Fixtures
# =============================================================================


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def inventory():
    return FakeInventory()


@pytest.fixture
def commission_scheduler():
    return FakeCommissionScheduler()


@pytest.fixture
def payment_config():
    """Payment settings with test credentials and the default timings."""
    return PaymentSettings(
        account_number="0123456789",
        account_name="ACTA SHOP",
        webhook_secret="test-webhook-secret",
        external_api_key="test-external-key",
    )


@pytest.fixture
def manager(inventory, notifier, commission_scheduler, payment_config):
    """PaymentIntentManager wired to recording fakes."""
    return PaymentIntentManager(
        inventory=inventory,
        notifier=notifier,
        commission_scheduler=commission_scheduler,
        config=payment_config,
    )


@pytest.fixture
def refund_workflow(notifier):
    return RefundWorkflow(notifier=notifier)


@pytest.fixture
def reconciliation_engine(refund_workflow, notifier):
    return ReconciliationEngine(refund_workflow=refund_workflow, notifier=notifier)


# =============================================================================
# Order and Link Fixtures
# =============================================================================


@pytest.fixture
def order(db, customer):
    """A draft order of 150,000 VND."""
    return OrderFactory(customer=customer, total_amount=Decimal("150000.00"))


@pytest.fixture
def transfer_link(order):
    """The order made payable by VietQR bank transfer."""
    return OrderPaymentLinkFactory(order=order)


@pytest.fixture
def cash_link(order):
    return OrderPaymentLinkFactory(
        order=order,
        method=PaymentMethod.CASH,
        provider=PaymentProvider.CASH,
    )


# =============================================================================
# PaymentIntent State Fixtures
# =============================================================================


@pytest.fixture
def pending_intent(transfer_link):
    """Pending VietQR intent expiring in 15 minutes."""
    return PaymentIntentFactory(order_link=transfer_link)


@pytest.fixture
def expired_intent(transfer_link):
    """Pending VietQR intent whose QR expired a minute ago."""
    return PaymentIntentFactory(order_link=transfer_link, expired=True)


@pytest.fixture
def paid_order(db, customer):
    """A completed order whose link is paid."""
    now = timezone.now()
    return OrderFactory(
        customer=customer,
        total_amount=Decimal("150000.00"),
        status=OrderStatus.COMPLETED,
        paid_at=now,
        completed_at=now,
    )


@pytest.fixture
def succeeded_intent(paid_order):
    """Succeeded 150,000 VND payment of ``paid_order``."""
    link = OrderPaymentLinkFactory(order=paid_order, status=PaymentLinkStatus.PAID)
    return PaymentIntentFactory(
        order_link=link,
        succeeded=True,
        expires_at=timezone.now() - timedelta(minutes=5),
    )

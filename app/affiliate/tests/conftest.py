"""
Pytest fixtures for affiliate tests.

The referral chain used throughout is:

    grandparent (F0) -> parent (F1) -> buyer (F2)
"""

from decimal import Decimal

import pytest
from django.utils import timezone

from affiliate.services import CommissionCalculator
from affiliate.tests.factories import refer
from authentication.tests.factories import UserFactory
from orders.models import CategoryGroup, OrderStatus
from orders.tests.factories import CategoryFactory, OrderFactory, OrderLineFactory, ProductFactory


class RecordingAccounting:
    """AccountingGateway remembering which orders were mirrored."""

    def __init__(self):
        self.mirrored = []

    def mirror_order(self, order):
        self.mirrored.append(order.pk)


@pytest.fixture
def accounting():
    return RecordingAccounting()


@pytest.fixture
def calculator(accounting):
    return CommissionCalculator(accounting=accounting)


@pytest.fixture
def grandparent(db):
    return UserFactory()


@pytest.fixture
def parent(grandparent):
    user = UserFactory()
    refer(user, grandparent)
    return user


@pytest.fixture
def buyer(parent):
    user = UserFactory()
    refer(user, parent)
    return user


@pytest.fixture
def completed_order(buyer):
    """Completed order of one group-a product worth 1,000,000 VND."""
    now = timezone.now()
    order = OrderFactory(
        customer=buyer,
        total_amount=Decimal("1000000.00"),
        status=OrderStatus.COMPLETED,
        paid_at=now,
        completed_at=now,
    )
    product = ProductFactory(
        price=Decimal("1000000.00"),
        category=CategoryFactory(name="Cosmetics", group=CategoryGroup.A),
    )
    OrderLineFactory(order=order, product=product, quantity=1)
    return order

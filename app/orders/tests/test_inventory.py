"""
Tests for StockInventory.
"""

import pytest

from orders.inventory import InsufficientStockError, StockInventory
from orders.models import Order, Product
from orders.tests.factories import OrderFactory, OrderLineFactory, ProductFactory


@pytest.fixture
def inventory():
    return StockInventory()


@pytest.fixture
def product(db):
    return ProductFactory(stock=10, reserved=0)


@pytest.fixture
def reserved_order(inventory, product):
    order = OrderFactory()
    OrderLineFactory(order=order, product=product, quantity=3)
    inventory.reserve(order)
    return order


def stock_of(product):
    product = Product.objects.get(pk=product.pk)
    return product.stock, product.reserved


@pytest.mark.django_db
class TestReserve:
    def test_moves_stock_to_reserved(self, reserved_order, product):
        assert stock_of(product) == (7, 3)

    def test_insufficient_stock(self, inventory, product):
        order = OrderFactory()
        OrderLineFactory(order=order, product=product, quantity=11)

        with pytest.raises(InsufficientStockError) as exc_info:
            inventory.reserve(order)

        assert exc_info.value.error_code == "INSUFFICIENT_STOCK"
        assert exc_info.value.status_code == 409
        assert stock_of(product) == (10, 0)

    def test_partial_reservation_rolls_back(self, inventory, product):
        scarce = ProductFactory(stock=1)
        order = OrderFactory()
        OrderLineFactory(order=order, product=product, quantity=2)
        OrderLineFactory(order=order, product=scarce, quantity=5)

        with pytest.raises(InsufficientStockError):
            inventory.reserve(order)

        assert stock_of(product) == (10, 0)


@pytest.mark.django_db
class TestCommitAndRestore:
    def test_commit_releases_reservation(self, inventory, reserved_order, product):
        assert inventory.commit_on_success(reserved_order) is True

        assert stock_of(product) == (7, 0)
        assert Order.objects.get(pk=reserved_order.pk).inventory_committed_at is not None

    def test_commit_only_once(self, inventory, reserved_order, product):
        inventory.commit_on_success(reserved_order)

        assert inventory.commit_on_success(reserved_order) is False
        assert stock_of(product) == (7, 0)

    def test_restore_returns_stock(self, inventory, reserved_order, product):
        assert inventory.restore_on_failure(reserved_order) is True

        assert stock_of(product) == (10, 0)
        assert Order.objects.get(pk=reserved_order.pk).inventory_restored_at is not None

    def test_restore_only_once(self, inventory, reserved_order, product):
        inventory.restore_on_failure(reserved_order)

        assert inventory.restore_on_failure(reserved_order) is False
        assert stock_of(product) == (10, 0)

    def test_restore_after_commit_is_ignored(self, inventory, reserved_order, product):
        inventory.commit_on_success(reserved_order)

        assert inventory.restore_on_failure(reserved_order) is False
        assert stock_of(product) == (7, 0)

    def test_commit_after_restore_is_ignored(self, inventory, reserved_order, product):
        inventory.restore_on_failure(reserved_order)

        assert inventory.commit_on_success(reserved_order) is False
        assert stock_of(product) == (10, 0)


@pytest.mark.django_db
class TestReReserve:
    def test_takes_restored_stock_back(self, inventory, reserved_order, product):
        inventory.restore_on_failure(reserved_order)

        assert inventory.re_reserve(reserved_order) is True

        assert stock_of(product) == (7, 3)
        assert Order.objects.get(pk=reserved_order.pk).inventory_restored_at is None

    def test_commit_applies_after_re_reserve(self, inventory, reserved_order, product):
        inventory.restore_on_failure(reserved_order)
        inventory.re_reserve(reserved_order)

        assert inventory.commit_on_success(reserved_order) is True
        assert stock_of(product) == (7, 0)

    def test_nothing_restored_is_noop(self, inventory, reserved_order, product):
        assert inventory.re_reserve(reserved_order) is False
        assert stock_of(product) == (7, 3)

    def test_released_stock_sold_meanwhile(self, inventory, reserved_order, product):
        inventory.restore_on_failure(reserved_order)
        Product.objects.filter(pk=product.pk).update(stock=1)

        with pytest.raises(InsufficientStockError):
            inventory.re_reserve(reserved_order)

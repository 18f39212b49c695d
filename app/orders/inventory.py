"""
Stock bookkeeping for orders awaiting payment.

StockInventory is the default inventory collaborator of the payment engine.
Stock moves in three steps:

    reserve(order)            stock -> reserved   (checkout)
    commit_on_success(order)  reserved -> sold    (payment succeeded)
    restore_on_failure(order) reserved -> stock   (payment expired/cancelled)
    re_reserve(order)         stock -> reserved   (payment reopened by a new QR)

commit and restore are each applied at most once per order: the order row
carries ``inventory_committed_at`` / ``inventory_restored_at`` and the guard is
a conditional UPDATE, so concurrent or repeated calls are no-ops. All methods
run inside the caller's transaction.

Usage:
    from orders.inventory import StockInventory

    inventory = StockInventory()
    inventory.commit_on_success(order)
"""

from __future__ import annotations

import logging

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from core.exceptions import ConflictError
from orders.models import Order, Product

logger = logging.getLogger(__name__)


class InsufficientStockError(ConflictError):
    """Raised when a reservation asks for more units than are available."""

    default_error_code = "INSUFFICIENT_STOCK"


class StockInventory:
    """Reserve, commit and restore product stock for an order."""

    def reserve(self, order: Order) -> None:
        """
        Move ordered quantities from available stock to reserved.

        Called by checkout when the order is placed, before any payment
        intent exists, and by re_reserve when a replaced QR reopens payment.

        Raises:
            InsufficientStockError: If any line cannot be covered
        """
        with transaction.atomic():
            for line in order.lines.select_related("product"):
                updated = Product.objects.filter(
                    pk=line.product_id,
                    stock__gte=line.quantity,
                ).update(
                    stock=F("stock") - line.quantity,
                    reserved=F("reserved") + line.quantity,
                )
                if not updated:
                    raise InsufficientStockError(
                        f"Not enough stock for product {line.product.sku}",
                        details={"product_id": str(line.product_id), "requested": line.quantity},
                    )

    def commit_on_success(self, order: Order) -> bool:
        """
        Turn the order's reservation into a sale.

        Returns:
            True if stock moved, False if already committed or restored
        """
        now = timezone.now()
        with transaction.atomic():
            claimed = Order.objects.filter(
                pk=order.pk,
                inventory_committed_at__isnull=True,
                inventory_restored_at__isnull=True,
            ).update(inventory_committed_at=now)
            if not claimed:
                logger.info(
                    "Inventory already settled for order, skipping commit",
                    extra={"order_id": str(order.pk)},
                )
                return False

            order.inventory_committed_at = now
            for line in order.lines.all():
                Product.objects.filter(pk=line.product_id, reserved__gte=line.quantity).update(
                    reserved=F("reserved") - line.quantity,
                )

        logger.info("Inventory committed", extra={"order_id": str(order.pk)})
        return True

    def re_reserve(self, order: Order) -> bool:
        """
        Take back a reservation released by restore_on_failure.

        Used when a new intent reopens payment for the same order, so the
        eventual commit_on_success finds reserved units to sell.

        Returns:
            True if stock moved, False if nothing was restored or the order is committed

        Raises:
            InsufficientStockError: If the released units were sold meanwhile
        """
        with transaction.atomic():
            reopened = Order.objects.filter(
                pk=order.pk,
                inventory_restored_at__isnull=False,
                inventory_committed_at__isnull=True,
            ).update(inventory_restored_at=None)
            if not reopened:
                return False

            order.inventory_restored_at = None
            self.reserve(order)

        logger.info("Inventory re-reserved", extra={"order_id": str(order.pk)})
        return True

    def restore_on_failure(self, order: Order) -> bool:
        """
        Release the order's reservation back to available stock.

        Returns:
            True if stock moved, False if already restored or committed
        """
        now = timezone.now()
        with transaction.atomic():
            claimed = Order.objects.filter(
                pk=order.pk,
                inventory_restored_at__isnull=True,
                inventory_committed_at__isnull=True,
            ).update(inventory_restored_at=now)
            if not claimed:
                logger.info(
                    "Inventory already settled for order, skipping restore",
                    extra={"order_id": str(order.pk)},
                )
                return False

            order.inventory_restored_at = now
            for line in order.lines.all():
                Product.objects.filter(pk=line.product_id, reserved__gte=line.quantity).update(
                    reserved=F("reserved") - line.quantity,
                    stock=F("stock") + line.quantity,
                )

        logger.info("Inventory restored", extra={"order_id": str(order.pk)})
        return True

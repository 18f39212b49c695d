"""
Default collaborators for payment services.

Services take their collaborators as constructor arguments; when one is
omitted the default from this module is used. Imports are local so the
payments app does not import orders/affiliate at module load.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from payments.protocols import (
        AccountingGateway,
        CommissionScheduler,
        InventoryGateway,
        PaymentNotifier,
    )


def default_inventory() -> InventoryGateway:
    from orders.inventory import StockInventory

    return StockInventory()


def default_notifier() -> PaymentNotifier:
    from payments.events import ChannelLayerNotifier

    return ChannelLayerNotifier()


def default_accounting() -> AccountingGateway:
    from orders.accounting import InvoiceMirror

    return InvoiceMirror()


def default_commission_scheduler() -> CommissionScheduler:
    from affiliate.queue import CommissionQueue

    return CommissionQueue()

"""
Collaborator interfaces used by payment services.

Services receive their collaborators in the constructor and only rely on
these protocols, so tests can pass fakes and deployments can swap the
defaults registered in ``payments.collaborators``.

Collaborators are called inside the caller's ``transaction.atomic()``
block. Raising aborts the whole unit of work.

Available Protocols:
    InventoryGateway: Commit, restore or re-reserve stock held for an order
    PaymentNotifier: Publish payment events to listeners
    AccountingGateway: Mirror a completed order into invoices
    CommissionScheduler: Queue affiliate commission calculation

Usage:
    from payments.protocols import PaymentNotifier

    class RecordingNotifier:
        def __init__(self):
            self.events = []

        def publish(self, event):
            self.events.append(event)

    notifier: PaymentNotifier = RecordingNotifier()
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from orders.models import Invoice, Order

    from payments.events import PaymentEvent


@runtime_checkable
class InventoryGateway(Protocol):
    """
    Stock adjustments tied to the payment outcome.

    commit and restore must be exactly-once per order: a second call for the
    same order is a no-op returning False. re_reserve undoes a restore so a
    later commit applies again.
    """

    def commit_on_success(self, order: Order) -> bool:
        """Turn the order's reservation into a sale."""
        ...

    def restore_on_failure(self, order: Order) -> bool:
        """Release the order's reservation back to stock."""
        ...

    def re_reserve(self, order: Order) -> bool:
        """Reserve again after restore_on_failure; False if nothing was restored."""
        ...


@runtime_checkable
class PaymentNotifier(Protocol):
    def publish(self, event: PaymentEvent) -> None:
        ...


@runtime_checkable
class AccountingGateway(Protocol):
    def mirror_order(self, order: Order) -> Invoice:
        """Create (or return the existing) invoice for a completed order."""
        ...


@runtime_checkable
class CommissionScheduler(Protocol):
    def enqueue(self, order: Order) -> None:
        """
        Persist a commission job for ``order``.

        Must write inside the current transaction so the job exists if and
        only if the completion commits.
        """
        ...

"""
OrderPaymentLink: the payable snapshot of an order.

Created once when an order becomes payable. Method, provider and amount are
frozen at that point and are the only source of a PaymentIntent's amount.
Afterwards only ``status`` changes, mirrored from the latest intent.

Usage:
    from payments.models import OrderPaymentLink

    link = OrderPaymentLink.snapshot(order, method="transfer", provider="vietqr")
"""

from __future__ import annotations

from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from payments.state_machines import (
    PaymentLinkStatus,
    PaymentMethod,
    PaymentProvider,
)


class OrderPaymentLink(UUIDPrimaryKeyMixin, BaseModel):
    """
    Join entity between an Order and its payment attempts.

    Fields:
        order: The order this link makes payable (one link per order)
        method: Payment method chosen at checkout
        provider: Provider chosen at checkout
        amount: Authoritative payable amount snapshotted from the order
        currency: Settlement currency
        status: Mirror of the latest intent outcome
    """

    order = models.OneToOneField(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="payment_link",
    )
    method = models.CharField(
        max_length=16,
        choices=PaymentMethod.choices,
        help_text="Payment method selected at checkout",
    )
    provider = models.CharField(
        max_length=16,
        choices=PaymentProvider.choices,
        help_text="Payment provider selected at checkout",
    )
    amount = models.DecimalField(
        max_digits=15,
        decimal_places=2,
        help_text="Payable amount snapshotted from the order (VND)",
    )
    currency = models.CharField(max_length=3, default="VND")
    status = models.CharField(
        max_length=16,
        choices=PaymentLinkStatus.choices,
        default=PaymentLinkStatus.PENDING,
        db_index=True,
        help_text="Mirrors the latest payment intent outcome",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Order Payment Link"
        verbose_name_plural = "Order Payment Links"

    def __str__(self) -> str:
        return f"OrderPaymentLink(order={self.order_id}, {self.provider}, {self.status})"

    @classmethod
    def snapshot(cls, order, method: str, provider: str) -> OrderPaymentLink:
        """Create the link for ``order`` from its current total, or return the existing one."""
        link, _ = cls.objects.get_or_create(
            order=order,
            defaults={
                "method": method,
                "provider": provider,
                "amount": order.total_amount,
                "currency": order.currency,
            },
        )
        return link

    def mirror(self, status: str) -> None:
        """Persist a new mirrored status without touching the snapshot fields."""
        self.status = status
        self.save(update_fields=["status", "updated_at"])

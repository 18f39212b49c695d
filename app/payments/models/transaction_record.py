"""
TransactionRecord: append-only money movement ledger.

One row per charge (payment completed) and per refund request. Rows are
written once and never updated or deleted; corrections are new rows.
"""

from __future__ import annotations

from django.db import models
from django.db.models import Q

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from payments.state_machines import TransactionKind


class TransactionRecordQuerySet(models.QuerySet):
    def update(self, **kwargs):
        raise TypeError("TransactionRecord rows are append-only")

    def delete(self):
        raise TypeError("TransactionRecord rows are append-only")

    def charges(self):
        return self.filter(kind=TransactionKind.CHARGE)

    def refunds(self):
        return self.filter(kind=TransactionKind.REFUND)


class TransactionRecord(UUIDPrimaryKeyMixin, BaseModel):
    """
    Immutable ledger entry.

    Fields:
        kind: charge or refund
        payment_intent: Intent the money moved for
        refund: RefundRequest for refund rows
        amount / currency: Money moved (always positive)
        provider_ref: Bank transaction id when known
        meta: Free-form context (verification method, actor)
    """

    kind = models.CharField(max_length=16, choices=TransactionKind.choices, db_index=True)
    payment_intent = models.ForeignKey(
        "payments.PaymentIntent",
        on_delete=models.PROTECT,
        related_name="transactions",
    )
    refund = models.ForeignKey(
        "payments.RefundRequest",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="transactions",
    )
    amount = models.DecimalField(max_digits=15, decimal_places=2)
    currency = models.CharField(max_length=3, default="VND")
    provider_ref = models.CharField(max_length=255, null=True, blank=True)
    meta = models.JSONField(default=dict, blank=True)

    objects = TransactionRecordQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Transaction Record"
        verbose_name_plural = "Transaction Records"
        constraints = [
            models.CheckConstraint(
                condition=Q(amount__gt=0),
                name="transaction_record_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"TransactionRecord({self.kind}, {self.amount} {self.currency})"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise TypeError("TransactionRecord rows are append-only")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise TypeError("TransactionRecord rows are append-only")

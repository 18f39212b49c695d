"""
Referral tree and commission models.

The referral tree is stored as a closure table: one ReferralClosure row per
(ancestor, descendant) pair with the number of hops between them. Commission
rows are written once per completed order by CommissionCalculator and never
changed afterwards.

Levels:
    F2: the purchaser
    F1: the purchaser's direct referrer (depth 1)
    F0: the referrer's referrer (depth 2)

Usage:
    from affiliate.models import ReferralClosure

    ReferralClosure.objects.add_referral(user=new_user, referrer=inviter)
    ReferralClosure.objects.ancestors_of(new_user, depths=(1, 2))
"""

from __future__ import annotations

from django.conf import settings
from django.db import models, transaction
from django.utils import timezone

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel


# =============================================================================
# Choices
# =============================================================================


class CommissionLevel(models.TextChoices):
    F2 = "f2", "F2 (purchaser)"
    F1 = "f1", "F1 (direct referrer)"
    F0 = "f0", "F0 (indirect referrer)"


class CommissionStatus(models.TextChoices):
    CALCULATED = "calculated", "Calculated"
    PAID = "paid", "Paid"


class CalculationStatus(models.TextChoices):
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"


class CommissionJobStatus(models.TextChoices):
    """
    Lifecycle of a queued commission calculation.

    PENDING -> IN_FLIGHT -> DONE
    IN_FLIGHT -> PENDING (retry with backoff)
    IN_FLIGHT -> DEAD_LETTER (attempts exhausted)
    """

    PENDING = "pending", "Pending"
    IN_FLIGHT = "in_flight", "In flight"
    DONE = "done", "Done"
    DEAD_LETTER = "dead_letter", "Dead letter"


# =============================================================================
# Referral Tree
# =============================================================================


class ReferralClosureManager(models.Manager):
    def add_referral(self, user, referrer) -> list[ReferralClosure]:
        """
        Attach ``user`` below ``referrer``.

        Creates the depth-1 row plus one row per ancestor of the referrer.
        """
        with transaction.atomic():
            rows = [ReferralClosure(ancestor=referrer, descendant=user, depth=1)]
            for closure in self.filter(descendant=referrer).select_related("ancestor"):
                rows.append(
                    ReferralClosure(
                        ancestor=closure.ancestor,
                        descendant=user,
                        depth=closure.depth + 1,
                    )
                )
            return self.bulk_create(rows, ignore_conflicts=True)

    def ancestors_of(self, user, depths=(1, 2)):
        return self.filter(descendant=user, depth__in=depths).select_related("ancestor")


class ReferralClosure(UUIDPrimaryKeyMixin, BaseModel):
    """One ancestor/descendant pair of the referral tree."""

    ancestor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="referral_descendants",
    )
    descendant = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="referral_ancestors",
    )
    depth = models.PositiveSmallIntegerField(help_text="Hops from ancestor to descendant (1 = direct)")

    objects = ReferralClosureManager()

    class Meta:
        ordering = ["depth"]
        constraints = [
            models.UniqueConstraint(
                fields=["ancestor", "descendant"],
                name="referral_closure_unique_pair",
            ),
            models.CheckConstraint(
                condition=models.Q(depth__gte=1),
                name="referral_closure_depth_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"ReferralClosure({self.ancestor_id} -> {self.descendant_id}, depth={self.depth})"


# =============================================================================
# Commissions
# =============================================================================


class CommissionRecord(UUIDPrimaryKeyMixin, BaseModel):
    """
    Commission earned by one beneficiary on one order line.

    ``base_amount`` is the line's available commission (pool minus platform
    cut); ``rate`` is the beneficiary's share of it.
    """

    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="commission_records",
    )
    order_line = models.ForeignKey(
        "orders.OrderLine",
        on_delete=models.PROTECT,
        related_name="commission_records",
    )
    product = models.ForeignKey(
        "orders.Product",
        on_delete=models.PROTECT,
        related_name="+",
    )
    category = models.ForeignKey(
        "orders.Category",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="+",
    )
    beneficiary = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="commissions",
    )
    level = models.CharField(max_length=2, choices=CommissionLevel.choices, db_index=True)
    rate = models.DecimalField(max_digits=5, decimal_places=4)
    base_amount = models.DecimalField(max_digits=15, decimal_places=2)
    quantity = models.PositiveIntegerField()
    amount = models.DecimalField(max_digits=15, decimal_places=2)
    status = models.CharField(
        max_length=16,
        choices=CommissionStatus.choices,
        default=CommissionStatus.CALCULATED,
    )

    class Meta:
        ordering = ["created_at"]
        indexes = [
            models.Index(fields=["beneficiary", "level"], name="commission_beneficiary_idx"),
        ]

    def __str__(self) -> str:
        return f"CommissionRecord({self.level}, {self.beneficiary_id}, {self.amount})"


class CommissionSummary(UUIDPrimaryKeyMixin, BaseModel):
    """Split of one order line's commission pool."""

    order_line = models.OneToOneField(
        "orders.OrderLine",
        on_delete=models.PROTECT,
        related_name="commission_summary",
    )
    total_amount = models.DecimalField(max_digits=15, decimal_places=2, help_text="Line total (qty x price)")
    commission_paid = models.DecimalField(max_digits=15, decimal_places=2)
    platform_cut = models.DecimalField(max_digits=15, decimal_places=2)
    remaining_amount = models.DecimalField(max_digits=15, decimal_places=2)
    category_rate = models.DecimalField(max_digits=5, decimal_places=4)
    f2_commission = models.ForeignKey(
        CommissionRecord, on_delete=models.SET_NULL, null=True, blank=True, related_name="+"
    )
    f1_commission = models.ForeignKey(
        CommissionRecord, on_delete=models.SET_NULL, null=True, blank=True, related_name="+"
    )
    f0_commission = models.ForeignKey(
        CommissionRecord, on_delete=models.SET_NULL, null=True, blank=True, related_name="+"
    )
    notes = models.TextField(blank=True, default="")

    class Meta:
        verbose_name_plural = "Commission summaries"

    def __str__(self) -> str:
        return f"CommissionSummary(line={self.order_line_id}, paid={self.commission_paid})"


class CommissionLog(UUIDPrimaryKeyMixin, BaseModel):
    """One row per order whose commissions were calculated."""

    order = models.OneToOneField(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="commission_log",
    )
    total_commission_amount = models.DecimalField(max_digits=15, decimal_places=2)
    commission_count = models.PositiveIntegerField()
    calculation_status = models.CharField(
        max_length=16,
        choices=CalculationStatus.choices,
        default=CalculationStatus.COMPLETED,
    )
    notes = models.TextField(blank=True, default="")

    def __str__(self) -> str:
        return f"CommissionLog(order={self.order_id}, {self.commission_count} records)"


# =============================================================================
# Durable Queue
# =============================================================================


class CommissionJob(UUIDPrimaryKeyMixin, BaseModel):
    """
    Queued commission calculation for a completed order.

    Written inside the payment completion transaction so the job exists if
    and only if the payment committed.
    """

    order = models.OneToOneField(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="commission_job",
    )
    status = models.CharField(
        max_length=16,
        choices=CommissionJobStatus.choices,
        default=CommissionJobStatus.PENDING,
        db_index=True,
    )
    attempts = models.PositiveSmallIntegerField(default=0)
    next_attempt_at = models.DateTimeField(default=timezone.now, db_index=True)
    last_error = models.TextField(blank=True, default="")
    processed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["created_at"]
        indexes = [
            models.Index(fields=["status", "next_attempt_at"], name="commission_job_due_idx"),
        ]

    def __str__(self) -> str:
        return f"CommissionJob(order={self.order_id}, {self.status}, attempts={self.attempts})"

    @property
    def is_finished(self) -> bool:
        return self.status in (CommissionJobStatus.DONE, CommissionJobStatus.DEAD_LETTER)

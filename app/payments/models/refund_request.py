"""
RefundRequest model for the two-step refund workflow.

A RefundRequest returns part or all of a succeeded PaymentIntent. It is
requested by a customer or staff member, approved by a different staff
member, and then settled once the bank confirms the money went out.
Several partial refunds may exist for one intent; the sum of committed
refunds never exceeds the intent amount.

Usage:
    from payments.models import RefundRequest

    refund = RefundRequest.objects.create(
        payment_intent=intent,
        amount=Decimal("50000"),
        reason="Damaged item",
        reference=RefundRequest.build_reference(),
        requested_by=user,
    )

    refund.approve(actor=staff, note="Checked photos")
    refund.save()

    refund.settle(actor=staff, provider_ref="FT2401")
    refund.save()
"""

from __future__ import annotations

from django.db import models
from django.db.models import F, Q
from django.utils import timezone

from django_fsm import FSMField, transition

from core.helpers import make_reference_code
from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from payments.state_machines import COMMITTED_REFUND_STATUSES, SETTLEABLE_REFUND_STATUSES, RefundStatus


class RefundRequest(UUIDPrimaryKeyMixin, BaseModel):
    """
    Represents money to be returned to a customer.

    State Flow:
        REQUESTED -> APPROVED -> SUCCEEDED
        APPROVED/PROCESSING -> SUCCEEDED/FAILED
        REQUESTED/APPROVED -> CANCELLED

    Fields:
        payment_intent: Succeeded intent being refunded
        amount: Refund amount (VND)
        status: Current FSM state
        reference: Unique ``REF-<ms>-<RAND6>`` code used in bank memos
        items: Optional order lines the refund covers
        requested_by / approved_by / settled_by / cancelled_by: Actors
        provider_ref: Bank transaction id of the settlement
        version: Optimistic locking version
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    payment_intent = models.ForeignKey(
        "payments.PaymentIntent",
        on_delete=models.PROTECT,
        related_name="refunds",
        help_text="Payment intent being refunded",
    )

    # ==========================================================================
    # Amount & Details
    # ==========================================================================

    amount = models.DecimalField(
        max_digits=15,
        decimal_places=2,
        help_text="Refund amount (VND)",
    )
    currency = models.CharField(max_length=3, default="VND")
    reason = models.TextField(
        null=True,
        blank=True,
        help_text="Reason for the refund (visible to customer)",
    )
    reference = models.CharField(
        max_length=64,
        unique=True,
        help_text="Refund reference REF-<ms>-<RAND6>",
    )
    items = models.JSONField(default=list, blank=True)
    request_meta = models.JSONField(default=dict, blank=True)

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=RefundStatus.REQUESTED,
        choices=RefundStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current state of the refund (managed by FSM)",
    )

    version = models.PositiveIntegerField(
        default=1,
        help_text="Version for optimistic locking - incremented on each save",
    )

    # ==========================================================================
    # Actors & Timestamps
    # ==========================================================================

    requested_by = models.ForeignKey(
        "authentication.User",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="requested_refunds",
    )
    approved_by = models.ForeignKey(
        "authentication.User",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="approved_refunds",
    )
    approval_note = models.TextField(null=True, blank=True)
    approved_at = models.DateTimeField(null=True, blank=True)

    settled_by = models.ForeignKey(
        "authentication.User",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="settled_refunds",
        help_text="Staff member who settled; empty when settled by reconciliation",
    )
    provider_ref = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        db_index=True,
        help_text="Bank transaction id of the settlement",
    )
    processed_at = models.DateTimeField(null=True, blank=True)

    cancelled_by = models.ForeignKey(
        "authentication.User",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="cancelled_refunds",
    )
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancel_reason = models.TextField(null=True, blank=True)

    failed_at = models.DateTimeField(null=True, blank=True)
    failure_reason = models.TextField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Refund Request"
        verbose_name_plural = "Refund Requests"
        indexes = [
            models.Index(fields=["payment_intent", "status"], name="refund_intent_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(amount__gt=0),
                name="refund_request_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"RefundRequest({self.reference}, {self.status}, {self.amount} {self.currency})"

    def save(self, *args, **kwargs):
        """Save with version auto-increment for optimistic locking."""
        is_update = self.pk and not self._state.adding and not kwargs.get("force_insert", False)
        if is_update:
            self.version = F("version") + 1
            update_fields = kwargs.get("update_fields")
            if update_fields is not None:
                kwargs["update_fields"] = {*update_fields, "version", "updated_at"}
        super().save(*args, **kwargs)
        if is_update:
            self.refresh_from_db(fields=["version"])

    @staticmethod
    def build_reference() -> str:
        return make_reference_code("REF")

    @property
    def is_committed(self) -> bool:
        """Whether this refund's amount counts against the refundable amount."""
        return self.status in COMMITTED_REFUND_STATUSES

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=RefundStatus.REQUESTED,
        target=RefundStatus.APPROVED,
    )
    def approve(self, actor=None, note: str | None = None):
        self.approved_by = actor
        self.approval_note = note
        self.approved_at = timezone.now()

    @transition(
        field=status,
        source=list(SETTLEABLE_REFUND_STATUSES),
        target=RefundStatus.SUCCEEDED,
    )
    def settle(self, actor=None, provider_ref: str | None = None, settled_at=None):
        """
        Mark the refund as paid out.

        ``actor`` is None when the settlement comes from a bank statement.
        """
        self.settled_by = actor
        self.provider_ref = provider_ref
        self.processed_at = settled_at or timezone.now()

    @transition(
        field=status,
        source=list(SETTLEABLE_REFUND_STATUSES),
        target=RefundStatus.FAILED,
    )
    def fail(self, reason: str | None = None):
        self.failed_at = timezone.now()
        if reason:
            self.failure_reason = reason

    @transition(
        field=status,
        source=[RefundStatus.REQUESTED, RefundStatus.APPROVED],
        target=RefundStatus.CANCELLED,
    )
    def cancel(self, actor=None, reason: str | None = None):
        self.cancelled_by = actor
        self.cancel_reason = reason
        self.cancelled_at = timezone.now()

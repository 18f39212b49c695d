"""
PaymentIntent: one attempt to collect money for an order through a provider.

At most one live (created/pending) intent exists per payment link and
provider; the database enforces this with a partial unique constraint. The
amount is always copied from the OrderPaymentLink.

Usage:
    from payments.models import PaymentIntent

    intent = PaymentIntent.objects.create(
        order_link=link,
        order=link.order,
        code=PaymentIntent.build_code(link.order.code),
        provider=link.provider,
        method=link.method,
        amount=link.amount,
    )

    intent.mark_pending(expires_at=timezone.now() + timedelta(minutes=15))
    intent.save()
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.db import models
from django.db.models import F, Q
from django.utils import timezone

from django_fsm import FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from payments.state_machines import (
    LIVE_INTENT_STATUSES,
    PaymentIntentStatus,
    PaymentMethod,
    PaymentProvider,
)
from payments.types import parse_meta

if TYPE_CHECKING:
    from datetime import datetime

    from payments.types import PaymentMeta


class PaymentIntent(UUIDPrimaryKeyMixin, BaseModel):
    """
    A single payable attempt bound to an order and provider.

    State Flow:
        CREATED -> PENDING -> SUCCEEDED -> REFUNDED
        CREATED/PENDING -> FAILED (expired)
        CREATED/PENDING -> CANCELLED

    Fields:
        order_link: The payable snapshot this intent collects
        order: Denormalised order reference for lookups by order code
        code: Human-readable payment code ``PAY-<orderCode>-<ts>``
        provider / method: Routing of the attempt
        amount / currency: Copied from the link, never from caller input
        status: Current FSM state
        expires_at: Deadline for bank-transfer intents (None for cash)
        idempotency_key: Caller token deduplicating create requests per order
        provider_ref: Provider transaction id once paid
        request_meta / response_meta: Typed metadata sections (see payments.types)
        version: Optimistic locking version
    """

    order_link = models.ForeignKey(
        "payments.OrderPaymentLink",
        on_delete=models.PROTECT,
        related_name="intents",
    )
    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="payment_intents",
    )
    code = models.CharField(
        max_length=100,
        unique=True,
        help_text="Payment code PAY-<orderCode>-<timestamp>",
    )

    # ==========================================================================
    # Routing & Amount
    # ==========================================================================

    provider = models.CharField(max_length=16, choices=PaymentProvider.choices)
    method = models.CharField(max_length=16, choices=PaymentMethod.choices)
    amount = models.DecimalField(
        max_digits=15,
        decimal_places=2,
        help_text="Amount copied from the payment link (VND)",
    )
    currency = models.CharField(max_length=3, default="VND")

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=PaymentIntentStatus.CREATED,
        choices=PaymentIntentStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current state of the payment intent (managed by FSM)",
    )
    expires_at = models.DateTimeField(
        null=True,
        blank=True,
        db_index=True,
        help_text="When an unpaid transfer intent expires",
    )
    idempotency_key = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Caller-supplied key deduplicating create requests for the order",
    )
    provider_ref = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        db_index=True,
        help_text="Provider transaction reference once paid",
    )
    request_meta = models.JSONField(default=dict, blank=True)
    response_meta = models.JSONField(default=dict, blank=True)
    failure_reason = models.TextField(null=True, blank=True)

    version = models.PositiveIntegerField(
        default=1,
        help_text="Version for optimistic locking - incremented on each save",
    )

    # ==========================================================================
    # State Timestamps
    # ==========================================================================

    pending_at = models.DateTimeField(null=True, blank=True)
    succeeded_at = models.DateTimeField(null=True, blank=True)
    failed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    refunded_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payment Intent"
        verbose_name_plural = "Payment Intents"
        indexes = [
            models.Index(fields=["status", "expires_at"], name="intent_status_expiry_idx"),
            models.Index(fields=["order", "provider", "status"], name="intent_order_provider_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(amount__gt=0),
                name="payment_intent_amount_positive",
            ),
            models.UniqueConstraint(
                fields=["order_link", "provider"],
                condition=Q(status__in=["created", "pending"]),
                name="payment_intent_one_live_per_provider",
            ),
            models.UniqueConstraint(
                fields=["order_link", "idempotency_key"],
                condition=Q(idempotency_key__isnull=False),
                name="payment_intent_idempotency_key_per_link",
            ),
        ]

    def __str__(self) -> str:
        return f"PaymentIntent({self.code}, {self.status}, {self.amount} {self.currency})"

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
    def build_code(order_code: str) -> str:
        return f"PAY-{order_code}-{int(timezone.now().timestamp() * 1000)}"

    # ==========================================================================
    # Queries
    # ==========================================================================

    @property
    def is_live(self) -> bool:
        return self.status in LIVE_INTENT_STATUSES

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        return (now or timezone.now()) > self.expires_at

    # ==========================================================================
    # Metadata
    # ==========================================================================

    def attach_request_meta(self, meta: PaymentMeta) -> None:
        self.request_meta = {**self.request_meta, meta.kind: meta.to_json()}

    def attach_response_meta(self, meta: PaymentMeta) -> None:
        self.response_meta = {**self.response_meta, meta.kind: meta.to_json()}

    def get_response_meta(self, kind: str) -> PaymentMeta | None:
        data = self.response_meta.get(kind)
        return parse_meta(data) if data else None

    def get_request_meta(self, kind: str) -> PaymentMeta | None:
        data = self.request_meta.get(kind)
        return parse_meta(data) if data else None

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=PaymentIntentStatus.CREATED,
        target=PaymentIntentStatus.PENDING,
    )
    def mark_pending(self, expires_at: datetime | None = None):
        """Provider accepted the attempt; waiting for money."""
        self.pending_at = timezone.now()
        self.expires_at = expires_at

    @transition(
        field=status,
        source=PaymentIntentStatus.PENDING,
        target=PaymentIntentStatus.SUCCEEDED,
    )
    def succeed(self, provider_ref: str | None = None):
        self.succeeded_at = timezone.now()
        if provider_ref:
            self.provider_ref = provider_ref

    @transition(
        field=status,
        source=[PaymentIntentStatus.CREATED, PaymentIntentStatus.PENDING],
        target=PaymentIntentStatus.FAILED,
    )
    def fail(self, reason: str | None = None):
        self.failed_at = timezone.now()
        if reason:
            self.failure_reason = reason

    @transition(
        field=status,
        source=[PaymentIntentStatus.CREATED, PaymentIntentStatus.PENDING],
        target=PaymentIntentStatus.CANCELLED,
    )
    def cancel(self):
        self.cancelled_at = timezone.now()

    @transition(
        field=status,
        source=PaymentIntentStatus.SUCCEEDED,
        target=PaymentIntentStatus.REFUNDED,
    )
    def refund(self):
        """The full amount has been returned."""
        self.refunded_at = timezone.now()

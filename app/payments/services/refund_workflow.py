"""
Two-step refund workflow.

A refund is requested against a succeeded PaymentIntent, approved by a staff
member other than the requester, and settled once the bank transfer back to
the customer is confirmed (by staff or by a bank statement).

Refund bound:
    refundable = intent.amount - sum(refunds in {succeeded, processing})

The bound is checked when the refund is requested and checked again under
the intent row lock when it is settled, so two partial refunds approved in
parallel can never together exceed the original amount.

Settlement outcome:
    partial refund          Order keeps its status, ``refunded_at`` recorded
    full refund, shipped    intent/link -> refunded, Order -> refunded
    full refund, unshipped  intent/link -> refunded, Order -> cancelled

Usage:
    from payments.services import RefundWorkflow

    workflow = RefundWorkflow()
    result = workflow.create_refund(payment_id, Decimal("50000"), reason="Damaged", actor=user)
    workflow.approve_refund(result.data.id, note="OK", actor=staff)
    workflow.settle_refund(result.data.id, provider_ref="FT24001", actor=staff)
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING
from uuid import UUID

from django.db.models import Sum
from django.utils import timezone

from django_fsm import can_proceed

from core.exceptions import BaseApplicationError, PermissionDeniedError
from core.services import BaseService, ServiceResult

from orders.models import Order
from payments.collaborators import default_notifier
from payments.events import PaymentEvent, PaymentEventType
from payments.exceptions import (
    InvalidAmountError,
    InvalidStateTransitionError,
    PaymentNotFoundError,
    RefundAmountExceededError,
    RefundNotFoundError,
)
from payments.locks import refund_lock
from payments.models import PaymentIntent, RefundRequest, TransactionRecord
from payments.state_machines import (
    COMMITTED_REFUND_STATUSES,
    SETTLEABLE_REFUND_STATUSES,
    PaymentIntentStatus,
    PaymentLinkStatus,
    RefundStatus,
    TransactionKind,
)
from payments.types import RefundRequestMeta

if TYPE_CHECKING:
    from datetime import datetime
    from typing import Any

    from django.db.models import QuerySet

    from payments.protocols import PaymentNotifier


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class RefundableAmount:
    """
    How much of a payment can still be refunded.

    Attributes:
        payment_id: PaymentIntent id
        original_amount: Amount collected
        refunded_amount: Sum of succeeded and processing refunds
        refundable_amount: original_amount - refunded_amount
        currency: Payment currency
        payment_status: Current intent status
    """

    payment_id: str
    original_amount: Decimal
    refunded_amount: Decimal
    refundable_amount: Decimal
    currency: str
    payment_status: str


def committed_refund_total(intent: PaymentIntent, exclude: RefundRequest | None = None) -> Decimal:
    """Sum of refunds already counted against ``intent``."""
    refunds = RefundRequest.objects.filter(payment_intent=intent, status__in=COMMITTED_REFUND_STATUSES)
    if exclude is not None:
        refunds = refunds.exclude(pk=exclude.pk)
    return refunds.aggregate(total=Sum("amount"))["total"] or Decimal("0")


# =============================================================================
# Refund Workflow
# =============================================================================


class RefundWorkflow(BaseService):
    """
    Request, approve, settle, fail and cancel refunds.

    Every mutation runs under ``refund_lock(intent)`` and a row lock on the
    intent so refund bound checks see a stable total.
    """

    def __init__(self, notifier: PaymentNotifier | None = None) -> None:
        self.notifier = notifier or default_notifier()
        self.logger = self.get_logger()

    # =========================================================================
    # Create
    # =========================================================================

    def create_refund(
        self,
        payment_id: Any,
        amount: Any,
        reason: str | None = None,
        items: list | None = None,
        actor: Any = None,
    ) -> ServiceResult[RefundRequest]:
        """
        Request a refund of ``amount`` from a succeeded payment.

        Customers may only refund their own orders; staff may refund any.
        """
        try:
            intent = self._get_intent(payment_id)
            self._check_owner(intent, actor)
            amount = self._to_decimal(amount)

            with refund_lock(intent.pk):
                with self.atomic():
                    intent = PaymentIntent.objects.select_for_update().get(pk=intent.pk)
                    if intent.status != PaymentIntentStatus.SUCCEEDED:
                        raise PaymentNotFoundError(
                            f"Payment {payment_id} not found or not in succeeded status",
                            details={"payment_id": str(payment_id), "status": intent.status},
                        )

                    refunded = committed_refund_total(intent)
                    refundable = intent.amount - refunded

                    if amount <= 0:
                        raise InvalidAmountError(
                            "Refund amount must be greater than 0",
                            details={"amount": str(amount)},
                        )
                    if amount > refundable:
                        raise RefundAmountExceededError(
                            f"Refund amount {amount} exceeds refundable amount {refundable}",
                            details={"amount": str(amount), "refundable_amount": str(refundable)},
                        )

                    has_prior_requests = RefundRequest.objects.filter(payment_intent=intent).exists()

                    meta = RefundRequestMeta(
                        original_amount=str(intent.amount),
                        refunded_amount=str(refunded),
                        refundable_amount=str(refundable),
                        items=items or [],
                    )
                    refund = RefundRequest.objects.create(
                        payment_intent=intent,
                        amount=amount,
                        currency=intent.currency,
                        reason=reason,
                        reference=RefundRequest.build_reference(),
                        items=items or [],
                        requested_by=actor if getattr(actor, "pk", None) else None,
                        request_meta={meta.kind: meta.to_json()},
                    )

                    TransactionRecord.objects.create(
                        kind=TransactionKind.REFUND,
                        payment_intent=intent,
                        refund=refund,
                        amount=amount,
                        currency=intent.currency,
                        meta={"status": RefundStatus.REQUESTED, "reason": reason, "items": items or []},
                    )

                    if not has_prior_requests:
                        Order.objects.filter(pk=intent.order_id).update(
                            refund_requested_at=timezone.now(),
                            updated_at=timezone.now(),
                        )

            self.logger.info(
                f"Refund request created: {refund.pk} for payment {intent.pk}, amount: {amount}",
                extra={"refund_id": str(refund.pk), "payment_id": str(intent.pk)},
            )
            return ServiceResult.success(refund)

        except BaseApplicationError as e:
            return self.handle_exception(e, f"Refund request failed for payment {payment_id}")

    # =========================================================================
    # Approve
    # =========================================================================

    def approve_refund(self, refund_id: Any, note: str | None = None, actor: Any = None) -> ServiceResult[RefundRequest]:
        """Approve a requested refund. The approver must not be the requester."""
        try:
            with self.atomic():
                refund = self._lock_refund(refund_id)
                if refund.status != RefundStatus.REQUESTED:
                    raise InvalidStateTransitionError(
                        f"Refund {refund.pk} is not in requested status (current: {refund.status})",
                        details={"refund_id": str(refund.pk), "current_status": refund.status},
                    )
                actor_id = getattr(actor, "pk", None)
                if actor_id is not None and actor_id == refund.requested_by_id:
                    raise PermissionDeniedError(
                        "A refund must be approved by someone other than its requester",
                        error_code="SELF_APPROVAL_NOT_ALLOWED",
                        details={"refund_id": str(refund.pk)},
                    )

                refund.approve(actor=actor if actor_id else None, note=note)
                refund.save()

            self.logger.info(
                f"Refund {refund.pk} approved",
                extra={"refund_id": str(refund.pk), "approved_by": str(actor_id)},
            )
            return ServiceResult.success(refund)

        except BaseApplicationError as e:
            return self.handle_exception(e, f"Refund approval failed for {refund_id}")

    # =========================================================================
    # Settle
    # =========================================================================

    def settle_refund(
        self,
        refund_id: Any,
        provider_ref: str | None = None,
        settled_at: datetime | None = None,
        actor: Any = None,
    ) -> ServiceResult[RefundRequest]:
        """
        Mark an approved or processing refund as paid out.

        ``actor`` is None when a bank statement settles the refund.
        """
        try:
            refund = self._get_refund(refund_id)
            events: list[PaymentEvent] = []

            with refund_lock(refund.payment_intent_id):
                with self.atomic():
                    intent = (
                        PaymentIntent.objects.select_for_update()
                        .select_related("order_link")
                        .get(pk=refund.payment_intent_id)
                    )
                    refund = self._lock_refund(refund.pk)
                    if refund.status not in SETTLEABLE_REFUND_STATUSES:
                        raise InvalidStateTransitionError(
                            f"Refund {refund.pk} is not in approved or processing status (current: {refund.status})",
                            details={"refund_id": str(refund.pk), "current_status": refund.status},
                        )

                    already_refunded = committed_refund_total(intent, exclude=refund)
                    total_refunded = already_refunded + refund.amount
                    if total_refunded > intent.amount:
                        raise RefundAmountExceededError(
                            f"Refund amount {refund.amount} exceeds refundable amount "
                            f"{intent.amount - already_refunded}",
                            details={
                                "refund_id": str(refund.pk),
                                "refundable_amount": str(intent.amount - already_refunded),
                            },
                        )

                    settled_at = settled_at or timezone.now()
                    refund.settle(
                        actor=actor if getattr(actor, "pk", None) else None,
                        provider_ref=provider_ref,
                        settled_at=settled_at,
                    )
                    refund.save()

                    is_full_refund = total_refunded >= intent.amount
                    order = Order.objects.select_for_update().get(pk=intent.order_id)

                    if is_full_refund:
                        self._apply_full_refund(intent, order, settled_at)
                        intent.order = order
                        events.append(
                            PaymentEvent.for_intent(
                                PaymentEventType.PAYMENT_STATUS_UPDATE,
                                intent,
                                status=intent.status,
                                message="Payment refunded",
                            )
                        )
                    else:
                        order.refunded_at = settled_at
                        order.save(update_fields=["refunded_at", "updated_at"])

            self.logger.info(
                f"Refund {refund.pk} settled successfully. Full refund: {is_full_refund}",
                extra={"refund_id": str(refund.pk), "payment_id": str(intent.pk)},
            )
            for event in events:
                self.notifier.publish(event)
            return ServiceResult.success(refund)

        except BaseApplicationError as e:
            return self.handle_exception(e, f"Refund settlement failed for {refund_id}")

    def _apply_full_refund(self, intent: PaymentIntent, order: Order, settled_at: datetime) -> None:
        intent.refund()
        intent.refunded_at = settled_at
        intent.save()
        intent.order_link.mirror(PaymentLinkStatus.REFUNDED)

        if order.has_shipped and can_proceed(order.refund):
            order.refund(refunded_at=settled_at)
            order.save(update_fields=["status", "refunded_at", "updated_at"])
        elif can_proceed(order.cancel):
            order.cancel(note=f"Order cancelled after full refund ({settled_at.isoformat()})")
            order.refunded_at = settled_at
            order.save(update_fields=["status", "cancelled_at", "refunded_at", "admin_note", "updated_at"])
        else:
            self.logger.warning(
                f"Order {order.pk} in status {order.status} left unchanged by full refund",
                extra={"order_id": str(order.pk), "payment_id": str(intent.pk)},
            )

    # =========================================================================
    # Fail / Cancel
    # =========================================================================

    def fail_refund(self, refund_id: Any, reason: str | None = None, actor: Any = None) -> ServiceResult[RefundRequest]:
        """Record that an approved or processing refund transfer could not be made."""
        try:
            with self.atomic():
                refund = self._lock_refund(refund_id)
                if refund.status not in SETTLEABLE_REFUND_STATUSES:
                    raise InvalidStateTransitionError(
                        f"Refund {refund.pk} is not in approved or processing status (current: {refund.status})",
                        details={"refund_id": str(refund.pk), "current_status": refund.status},
                    )
                refund.fail(reason=reason)
                refund.save()

            self.logger.info(
                f"Refund {refund.pk} marked as failed",
                extra={"refund_id": str(refund.pk), "actor": str(getattr(actor, "pk", None))},
            )
            return ServiceResult.success(refund)

        except BaseApplicationError as e:
            return self.handle_exception(e, f"Refund failure update failed for {refund_id}")

    def cancel_refund(self, refund_id: Any, reason: str | None = None, actor: Any = None) -> ServiceResult[RefundRequest]:
        """Cancel a refund that has not been settled."""
        try:
            with self.atomic():
                refund = self._lock_refund(refund_id)
                if refund.status not in (RefundStatus.REQUESTED, RefundStatus.APPROVED):
                    raise InvalidStateTransitionError(
                        f"Refund {refund.pk} cannot be cancelled in status {refund.status}",
                        details={"refund_id": str(refund.pk), "current_status": refund.status},
                    )
                refund.cancel(actor=actor if getattr(actor, "pk", None) else None, reason=reason)
                refund.save()

            self.logger.info(f"Refund {refund.pk} cancelled", extra={"refund_id": str(refund.pk)})
            return ServiceResult.success(refund)

        except BaseApplicationError as e:
            return self.handle_exception(e, f"Refund cancellation failed for {refund_id}")

    # =========================================================================
    # Queries
    # =========================================================================

    def get_refundable_amount(self, payment_id: Any, actor: Any = None) -> ServiceResult[RefundableAmount]:
        try:
            intent = self._get_intent(payment_id)
            self._check_owner(intent, actor)
            if intent.status not in (PaymentIntentStatus.SUCCEEDED, PaymentIntentStatus.REFUNDED):
                raise PaymentNotFoundError(
                    f"Payment {payment_id} not found or not in succeeded status",
                    details={"payment_id": str(payment_id), "status": intent.status},
                )

            refunded = committed_refund_total(intent)
            return ServiceResult.success(
                RefundableAmount(
                    payment_id=str(intent.pk),
                    original_amount=intent.amount,
                    refunded_amount=refunded,
                    refundable_amount=max(intent.amount - refunded, Decimal("0")),
                    currency=intent.currency,
                    payment_status=intent.status,
                )
            )
        except BaseApplicationError as e:
            return self.handle_exception(e, f"Refundable amount lookup failed for {payment_id}")

    def get_refund(self, refund_id: Any) -> ServiceResult[RefundRequest]:
        try:
            return ServiceResult.success(self._get_refund(refund_id))
        except BaseApplicationError as e:
            return ServiceResult.from_exception(e)

    def get_refunds_for_payment(self, payment_id: Any) -> QuerySet[RefundRequest]:
        return (
            RefundRequest.objects.select_related("payment_intent", "requested_by", "approved_by")
            .filter(payment_intent_id=payment_id)
            .order_by("-created_at")
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _to_decimal(value: Any) -> Decimal:
        try:
            return Decimal(str(value))
        except (InvalidOperation, TypeError, ValueError):
            raise InvalidAmountError(f"Invalid amount: {value}", details={"amount": str(value)})

    @staticmethod
    def _get_intent(payment_id: Any) -> PaymentIntent:
        intent = None
        if _is_uuid(payment_id):
            intent = PaymentIntent.objects.select_related("order").filter(pk=payment_id).first()
        if intent is None:
            raise PaymentNotFoundError(
                f"Payment {payment_id} not found or not in succeeded status",
                details={"payment_id": str(payment_id)},
            )
        return intent

    @staticmethod
    def _refund_lookup(refund_id: Any) -> dict:
        """Refunds are addressed by id or by their REF-... reference."""
        if _is_uuid(refund_id):
            return {"pk": refund_id}
        return {"reference": str(refund_id)}

    def _get_refund(self, refund_id: Any) -> RefundRequest:
        refund = RefundRequest.objects.filter(**self._refund_lookup(refund_id)).first()
        if refund is None:
            raise RefundNotFoundError(f"Refund {refund_id} not found", details={"refund_id": str(refund_id)})
        return refund

    def _lock_refund(self, refund_id: Any) -> RefundRequest:
        refund = RefundRequest.objects.select_for_update().filter(**self._refund_lookup(refund_id)).first()
        if refund is None:
            raise RefundNotFoundError(f"Refund {refund_id} not found", details={"refund_id": str(refund_id)})
        return refund

    @staticmethod
    def _check_owner(intent: PaymentIntent, actor: Any) -> None:
        if actor is None or getattr(actor, "is_staff", False):
            return
        if intent.order.customer_id != getattr(actor, "pk", None):
            raise PermissionDeniedError(
                "You do not have access to this payment",
                details={"payment_id": str(intent.pk)},
            )


def _is_uuid(value: Any) -> bool:
    if isinstance(value, UUID):
        return True
    try:
        UUID(str(value))
    except (TypeError, ValueError):
        return False
    return True

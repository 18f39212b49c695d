"""
Payment intent lifecycle: create, complete, expire, cancel.

PaymentIntentManager owns every state change of a PaymentIntent together with
the matching changes to its Order, OrderPaymentLink, inventory and commission
queue. Each change runs as one unit of work:

    intent_lock(intent.id)              # Redis, across workers
      transaction.atomic()              # the unit of work
        select_for_update(intent)       # row lock
        FSM transition + related rows
    publish events                      # after commit

Usage:
    from payments.services import PaymentIntentManager

    manager = PaymentIntentManager()

    result = manager.create_or_reuse(
        order_id=order.id,
        method="transfer",
        provider="vietqr",
        idempotency_key=request.headers.get("Idempotency-Key"),
        actor=request.user,
    )
    if result.success:
        qr_url = result.data.payment_code

    # Manual verification by staff
    result = manager.verify_payment(payment_id, provider="vietqr", amount=Decimal("150000"))
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING
from urllib.parse import quote
from uuid import UUID

from django.utils import timezone

from django_fsm import can_proceed

from core.exceptions import BaseApplicationError, NotFoundError, PermissionDeniedError
from core.services import BaseService, ServiceResult

from orders.models import Order
from payments.collaborators import (
    default_commission_scheduler,
    default_inventory,
    default_notifier,
)
from payments.conf import get_payment_settings
from payments.events import PaymentEvent, PaymentEventType
from payments.exceptions import (
    CollaboratorError,
    InvalidAmountError,
    InvalidStateTransitionError,
    OrderNotPayableError,
    OrderPayableStateInvalidError,
    PaymentExpiredError,
    PaymentNotFoundError,
    PaymentValidationError,
    ProviderNotImplementedError,
)
from payments.locks import intent_lock
from payments.models import OrderPaymentLink, PaymentIntent, TransactionRecord
from payments.references import build_payment_reference
from payments.state_machines import (
    LIVE_INTENT_STATUSES,
    METHOD_PROVIDERS,
    PaymentIntentStatus,
    PaymentLinkStatus,
    PaymentMethod,
    PaymentProvider,
    TransactionKind,
)
from payments.types import (
    CancellationMeta,
    CashRequestMeta,
    CompletionMeta,
    ExpirationMeta,
    VietQRRequestMeta,
    VietQRResponseMeta,
)

if TYPE_CHECKING:
    from typing import Any

    from payments.conf import PaymentSettings
    from payments.protocols import CommissionScheduler, InventoryGateway, PaymentNotifier


STATUS_MESSAGES = {
    PaymentIntentStatus.CREATED: "Payment created",
    PaymentIntentStatus.PENDING: "Payment pending - please complete payment",
    PaymentIntentStatus.SUCCEEDED: "Payment completed successfully",
    PaymentIntentStatus.FAILED: "Payment failed - please try again",
    PaymentIntentStatus.CANCELLED: "Payment cancelled",
    PaymentIntentStatus.REFUNDED: "Payment refunded",
}

CASH_PAYMENT_MESSAGE = "Cash payment initiated. Please complete payment at pickup location."

VERIFICATION_WEBHOOK = "webhook"
VERIFICATION_MANUAL = "manual"
VERIFICATION_EXTERNAL = "external"


def status_url(payment_id: Any) -> str:
    return f"/api/v1/payments/{payment_id}/status/"


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class PaymentIntentResult:
    """
    Outcome of create_or_reuse.

    Attributes:
        intent: The live intent
        payment_code: VietQR image URL for transfers, empty otherwise
        polling_url: Where the client polls for the outcome
        reused: True when an existing live intent was returned
        message: Customer-facing instruction
    """

    intent: PaymentIntent
    payment_code: str
    polling_url: str
    reused: bool
    message: str


@dataclass
class PaymentCompletion:
    """
    Outcome of completing, expiring or cancelling a payment.

    ``already_completed`` marks an idempotent answer to a duplicate delivery.
    """

    success: bool
    payment_id: str
    order_id: str
    status: str
    message: str
    already_completed: bool = False


@dataclass
class PaymentStatusInfo:
    payment_id: str
    order_id: str
    order_code: str
    provider: str
    status: str
    amount: Decimal
    currency: str
    expires_at: datetime | None
    message: str


# =============================================================================
# Payment Intent Manager
# =============================================================================


class PaymentIntentManager(BaseService):
    """
    Creates and drives PaymentIntents through their lifecycle.

    Collaborators default to the production implementations; tests pass
    fakes through the constructor.
    """

    def __init__(
        self,
        inventory: InventoryGateway | None = None,
        notifier: PaymentNotifier | None = None,
        commission_scheduler: CommissionScheduler | None = None,
        config: PaymentSettings | None = None,
    ) -> None:
        self.inventory = inventory or default_inventory()
        self.notifier = notifier or default_notifier()
        self.commission_scheduler = commission_scheduler or default_commission_scheduler()
        self.config = config or get_payment_settings()
        self.logger = self.get_logger()

    # =========================================================================
    # Create
    # =========================================================================

    def create_or_reuse(
        self,
        order_id: Any,
        method: str,
        provider: str,
        idempotency_key: str | None = None,
        actor: Any = None,
    ) -> ServiceResult[PaymentIntentResult]:
        """
        Return the live intent for the order and provider, creating it if needed.

        The amount always comes from the order's OrderPaymentLink. Repeating a
        call with the same idempotency key returns the intent it created.
        """
        try:
            if idempotency_key:
                existing = (
                    PaymentIntent.objects.select_related("order")
                    .filter(order_id=order_id, idempotency_key=idempotency_key)
                    .first()
                )
                if existing is not None:
                    self._check_access(existing.order, actor)
                    self.logger.info(
                        "Returning intent for repeated idempotency key",
                        extra={"payment_id": str(existing.pk), "order_id": str(order_id)},
                    )
                    return ServiceResult.success(self._intent_result(existing, reused=True))

            order = Order.objects.filter(pk=order_id).first()
            if order is None:
                raise NotFoundError("Order not found", details={"order_id": str(order_id)})
            self._check_access(order, actor)

            link = OrderPaymentLink.objects.filter(order=order).first()
            if link is None:
                raise OrderPayableStateInvalidError(
                    "Order has no payment link; it was not created as payable",
                    details={"order_id": str(order.pk)},
                )
            if not order.is_payable:
                raise OrderNotPayableError(
                    f"Order is not payable in status {order.status}",
                    details={"order_id": str(order.pk), "status": order.status},
                )

            self._validate_method(method, provider)

            if link.amount is None or link.amount <= 0:
                raise InvalidAmountError(
                    "Payment amount must be greater than 0",
                    details={"amount": str(link.amount)},
                )

            events: list[PaymentEvent] = []
            with self.atomic():
                link = OrderPaymentLink.objects.select_for_update().select_related("order").get(pk=link.pk)
                intent = (
                    PaymentIntent.objects.select_for_update()
                    .filter(order_link=link, provider=provider, status__in=LIVE_INTENT_STATUSES)
                    .order_by("-created_at")
                    .first()
                )

                if provider == PaymentProvider.VIETQR:
                    result = self._handle_vietqr(link, intent, method, idempotency_key, events)
                elif provider == PaymentProvider.CASH:
                    result = self._handle_cash(link, intent, method, idempotency_key, events)
                else:
                    raise ProviderNotImplementedError(
                        f"Payment provider {provider} is not implemented yet",
                        details={"provider": provider},
                    )

            self._publish(events)
            return ServiceResult.success(result)

        except BaseApplicationError as e:
            return self.handle_exception(e, f"Payment creation failed for order {order_id}")

    def _validate_method(self, method: str, provider: str) -> None:
        if method not in PaymentMethod.values or provider not in PaymentProvider.values:
            raise PaymentValidationError(
                f"Unsupported payment method {method} or provider {provider}",
                details={"method": method, "provider": provider},
            )
        if METHOD_PROVIDERS[method] != provider:
            raise PaymentValidationError(
                f"Payment method {method} is not supported by provider {provider}",
                details={"method": method, "provider": provider},
            )

    def _new_intent(self, link: OrderPaymentLink, method: str, idempotency_key: str | None) -> PaymentIntent:
        intent = PaymentIntent.objects.create(
            order_link=link,
            order=link.order,
            code=PaymentIntent.build_code(link.order.code),
            provider=METHOD_PROVIDERS[method],
            method=method,
            amount=link.amount,
            currency=link.currency,
            idempotency_key=idempotency_key,
        )
        self.logger.info(
            "Created payment intent",
            extra={"payment_id": str(intent.pk), "order_id": str(link.order_id), "provider": intent.provider},
        )
        return intent

    def _handle_vietqr(
        self,
        link: OrderPaymentLink,
        intent: PaymentIntent | None,
        method: str,
        idempotency_key: str | None,
        events: list[PaymentEvent],
    ) -> PaymentIntentResult:
        now = timezone.now()
        order = link.order

        if intent is not None and intent.status == PaymentIntentStatus.PENDING:
            if not intent.is_expired(now):
                self.logger.info(
                    "Returning existing pending VietQR payment",
                    extra={"payment_id": str(intent.pk), "order_id": str(order.pk)},
                )
                return self._intent_result(intent, reused=True)

            # A retry after expiry replaces the stale QR
            intent.cancel()
            intent.attach_response_meta(
                CancellationMeta(reason="expired_pending_replaced_by_retry", cancelled_by_retry=True)
            )
            intent.save()
            link.mirror(PaymentLinkStatus.CANCELED)
            self._call_collaborator("inventory.restore_on_failure", self.inventory.restore_on_failure, order)
            self.logger.info(
                "Cancelled expired pending payment before retry",
                extra={"payment_id": str(intent.pk), "order_id": str(order.pk)},
            )
            intent = None
            # The new QR sells the same goods; take the released stock back
            self._call_collaborator("inventory.re_reserve", self.inventory.re_reserve, order)

        reused = intent is not None
        if intent is None:
            intent = self._new_intent(link, method, idempotency_key)

        description = f"Thanh toan don hang {order.code}"
        qr_content = self._build_qr_url(intent.amount, order.code)
        expires_at = now + timedelta(minutes=self.config.qr_expiry_minutes)

        intent.attach_request_meta(
            VietQRRequestMeta(
                amount=str(intent.amount),
                description=description,
                order_code=order.code,
                bank_bin=self.config.bank_bin,
                account_number=self.config.account_number,
                account_name=self.config.account_name,
            )
        )
        intent.attach_response_meta(VietQRResponseMeta(qr_content=qr_content, generated_at=now.isoformat()))
        if idempotency_key and not intent.idempotency_key:
            intent.idempotency_key = idempotency_key
        intent.mark_pending(expires_at=expires_at)
        intent.save()

        if link.status != PaymentLinkStatus.PENDING:
            link.mirror(PaymentLinkStatus.PENDING)

        message = (
            "VietQR payment created successfully. Please scan QR code to complete "
            f"payment within {self.config.qr_expiry_minutes} minutes."
        )
        events.append(
            PaymentEvent.for_intent(
                PaymentEventType.PAYMENT_STATUS_UPDATE,
                intent,
                status=intent.status,
                message=message,
                expires_at=expires_at,
            )
        )
        events.append(
            PaymentEvent.for_intent(
                PaymentEventType.PAYMENT_PENDING,
                intent,
                amount=intent.amount,
                expires_at=expires_at,
                qr_content=qr_content,
            )
        )

        result = self._intent_result(intent, reused=reused)
        result.message = message
        return result

    def _handle_cash(
        self,
        link: OrderPaymentLink,
        intent: PaymentIntent | None,
        method: str,
        idempotency_key: str | None,
        events: list[PaymentEvent],
    ) -> PaymentIntentResult:
        if intent is not None and intent.status == PaymentIntentStatus.PENDING:
            return self._intent_result(intent, reused=True)

        reused = intent is not None
        if intent is None:
            intent = self._new_intent(link, method, idempotency_key)

        intent.attach_request_meta(CashRequestMeta(order_code=link.order.code))
        intent.mark_pending(expires_at=None)
        intent.save()

        order = Order.objects.select_for_update().get(pk=link.order_id)
        order.confirm(cash_on_delivery=True)
        order.save(update_fields=["status", "is_cod", "updated_at"])

        events.append(
            PaymentEvent.for_intent(
                PaymentEventType.PAYMENT_STATUS_UPDATE,
                intent,
                status=intent.status,
                message=CASH_PAYMENT_MESSAGE,
            )
        )

        result = self._intent_result(intent, reused=reused)
        result.message = CASH_PAYMENT_MESSAGE
        return result

    def _build_qr_url(self, amount: Decimal, order_code: str) -> str:
        add_info = quote(build_payment_reference(order_code, prefix=self.config.reference_prefix), safe="")
        account_name = quote(self.config.account_name, safe="")
        return (
            f"{self.config.qr_image_base_url}/{self.config.bank_bin}-{self.config.account_number}"
            f"-qr_only.png?amount={int(amount)}&addInfo={add_info}&accountName={account_name}"
        )

    def _intent_result(self, intent: PaymentIntent, reused: bool) -> PaymentIntentResult:
        qr = intent.get_response_meta(VietQRResponseMeta.kind)
        return PaymentIntentResult(
            intent=intent,
            payment_code=qr.qr_content if isinstance(qr, VietQRResponseMeta) else "",
            polling_url=status_url(intent.pk),
            reused=reused,
            message="Payment retrieved successfully" if reused else STATUS_MESSAGES[intent.status],
        )

    # =========================================================================
    # Complete
    # =========================================================================

    def verify_payment(
        self,
        payment_id: Any,
        provider: str | None = None,
        amount: Any = None,
        currency: str | None = None,
        provider_ref: str | None = None,
        raw_payload: dict | None = None,
    ) -> ServiceResult[PaymentCompletion]:
        """Manually confirm that money for ``payment_id`` arrived."""
        try:
            intent = self._get_intent(payment_id)
            if provider and provider != intent.provider:
                raise PaymentValidationError(
                    f"Payment provider mismatch: expected {intent.provider}, got {provider}",
                    details={"expected": intent.provider, "received": provider},
                )
            return self.complete_checked(
                intent,
                amount=amount,
                currency=currency,
                provider_ref=provider_ref,
                raw_payload=raw_payload,
                verification_method=VERIFICATION_MANUAL,
            )
        except BaseApplicationError as e:
            return self.handle_exception(e, f"Payment verification failed for {payment_id}")

    def complete_checked(
        self,
        intent: PaymentIntent,
        amount: Any = None,
        currency: str | None = None,
        provider_ref: str | None = None,
        raw_payload: dict | None = None,
        verification_method: str = VERIFICATION_WEBHOOK,
    ) -> ServiceResult[PaymentCompletion]:
        """
        Validate an incoming confirmation, then complete the intent.

        Order of checks: already succeeded (idempotent success), not pending
        (conflict), expired (expire and report failure), amount/currency
        mismatch (reject without mutation).
        """
        try:
            if intent.status == PaymentIntentStatus.SUCCEEDED:
                return ServiceResult.success(self._already_completed(intent))

            if intent.status != PaymentIntentStatus.PENDING:
                raise InvalidStateTransitionError(
                    f"Payment is not in pending state. Current status: {intent.status}",
                    details={"payment_id": str(intent.pk), "current_status": intent.status},
                )

            if intent.is_expired():
                self.logger.warning(
                    "Payment has expired, marking as failed",
                    extra={"payment_id": str(intent.pk)},
                )
                self._expire(intent)
                return ServiceResult.from_exception(
                    PaymentExpiredError(
                        "Payment has expired",
                        details={
                            "payment_id": str(intent.pk),
                            "order_id": str(intent.order_id),
                            "status": PaymentIntentStatus.FAILED,
                        },
                    )
                )

            self._check_amount(intent, amount, currency)

            return ServiceResult.success(
                self._complete(intent, provider_ref, raw_payload, verification_method)
            )
        except BaseApplicationError as e:
            return self.handle_exception(e, f"Payment completion failed for {intent.pk}")

    def complete(
        self,
        intent: PaymentIntent,
        provider_ref: str | None = None,
        raw_payload: dict | None = None,
        verification_method: str = VERIFICATION_WEBHOOK,
    ) -> ServiceResult[PaymentCompletion]:
        """Run the completion transaction without the pre-checks of complete_checked."""
        try:
            return ServiceResult.success(
                self._complete(intent, provider_ref, raw_payload, verification_method)
            )
        except BaseApplicationError as e:
            return self.handle_exception(e, f"Payment completion failed for {intent.pk}")

    def complete_by_order_code(
        self,
        order_code: str,
        transfer_amount: Any,
        provider_ref: str | None = None,
        raw_payload: dict | None = None,
    ) -> ServiceResult[PaymentCompletion]:
        """
        Complete the latest live intent of an order confirmed by an external gateway.

        Answers success when the order was already paid. The transfer amount
        may differ from the intent amount by at most the configured tolerance.
        """
        try:
            order = Order.objects.filter(code=order_code).first()
            if order is None:
                raise NotFoundError(
                    f"Order with code {order_code} not found",
                    details={"order_code": order_code},
                )

            intent = (
                PaymentIntent.objects.filter(order=order, status__in=LIVE_INTENT_STATUSES)
                .order_by("-created_at")
                .first()
            )
            if intent is None:
                succeeded = (
                    PaymentIntent.objects.filter(order=order, status=PaymentIntentStatus.SUCCEEDED)
                    .order_by("-created_at")
                    .first()
                )
                if succeeded is not None:
                    result = self._already_completed(succeeded)
                    result.message = "Payment already completed for this order"
                    return ServiceResult.success(result)
                raise PaymentNotFoundError(
                    "No payable payment found for order",
                    details={"order_code": order_code},
                )

            expected = intent.amount
            received = self._to_decimal(transfer_amount)
            if abs(expected - received) > Decimal(self.config.amount_tolerance):
                raise InvalidAmountError(
                    f"Transfer amount {received} does not match expected amount {expected}",
                    details={"expected": str(expected), "received": str(received)},
                )

            return ServiceResult.success(
                self._complete(
                    intent,
                    provider_ref,
                    raw_payload,
                    VERIFICATION_EXTERNAL,
                    allow_created=True,
                )
            )
        except BaseApplicationError as e:
            return self.handle_exception(e, f"External completion failed for order {order_code}")

    def resolve_intent(
        self,
        order_code: str,
        provider: str,
        payment_id: str | None = None,
    ) -> PaymentIntent:
        """
        Find the intent a bank reference points at.

        Prefers the pending intent of the order for ``provider``; falls back to
        the order's latest intent so duplicate deliveries can be answered.

        Raises:
            PaymentNotFoundError: No intent exists for the order
        """
        intents = PaymentIntent.objects.select_related("order", "order_link").filter(order__code=order_code)
        if payment_id:
            named = intents.filter(pk=payment_id).first() if _looks_like_uuid(payment_id) else None
            if named is not None:
                return named

        intent = (
            intents.filter(provider=provider, status=PaymentIntentStatus.PENDING)
            .order_by("-created_at")
            .first()
        )
        if intent is None:
            intent = intents.order_by("-created_at").first()
        if intent is None:
            raise PaymentNotFoundError(
                f"Payment not found for order {order_code}",
                details={"order_code": order_code, "provider": provider},
            )
        return intent

    def _check_amount(self, intent: PaymentIntent, amount: Any, currency: str | None) -> None:
        if amount is not None:
            received = self._to_decimal(amount)
            if received != intent.amount:
                self.logger.warning(
                    f"Amount mismatch: expected {intent.amount}, got {received}",
                    extra={"payment_id": str(intent.pk)},
                )
                raise InvalidAmountError(
                    "Payment amount does not match order total",
                    details={"expected": str(intent.amount), "received": str(received)},
                )
        if currency and currency.upper() != intent.currency:
            raise PaymentValidationError(
                f"Payment currency must be {intent.currency}",
                details={"expected": intent.currency, "received": currency},
            )

    @staticmethod
    def _to_decimal(value: Any) -> Decimal:
        try:
            return Decimal(str(value))
        except (InvalidOperation, TypeError, ValueError):
            raise InvalidAmountError(
                f"Invalid amount: {value}",
                details={"amount": str(value)},
            )

    def _complete(
        self,
        intent: PaymentIntent,
        provider_ref: str | None,
        raw_payload: dict | None,
        verification_method: str,
        allow_created: bool = False,
    ) -> PaymentCompletion:
        events: list[PaymentEvent] = []

        with intent_lock(intent.pk):
            with self.atomic():
                intent = (
                    PaymentIntent.objects.select_for_update()
                    .select_related("order_link")
                    .get(pk=intent.pk)
                )

                # A concurrent delivery may have completed it while we waited
                if intent.status == PaymentIntentStatus.SUCCEEDED:
                    return self._already_completed(intent)

                if allow_created and intent.status == PaymentIntentStatus.CREATED:
                    intent.mark_pending(expires_at=intent.expires_at)

                if intent.status != PaymentIntentStatus.PENDING:
                    raise InvalidStateTransitionError(
                        f"Payment is not in pending state. Current status: {intent.status}",
                        details={"payment_id": str(intent.pk), "current_status": intent.status},
                    )

                order = Order.objects.select_for_update().get(pk=intent.order_id)
                if not order.is_payable:
                    raise OrderNotPayableError(
                        f"Order is not payable in status {order.status}",
                        details={"order_id": str(order.pk), "status": order.status},
                    )

                intent.succeed(provider_ref=provider_ref)
                intent.attach_response_meta(
                    CompletionMeta(
                        verification_method=verification_method,
                        verified_at=intent.succeeded_at.isoformat(),
                        raw_payload=raw_payload or {},
                    )
                )
                intent.save()

                order.complete(paid_at=intent.succeeded_at)
                order.save(update_fields=["status", "paid_at", "completed_at", "updated_at"])

                intent.order_link.mirror(PaymentLinkStatus.PAID)

                TransactionRecord.objects.create(
                    kind=TransactionKind.CHARGE,
                    payment_intent=intent,
                    amount=intent.amount,
                    currency=intent.currency,
                    provider_ref=provider_ref,
                    meta={"verification_method": verification_method},
                )

                self._call_collaborator("inventory.commit_on_success", self.inventory.commit_on_success, order)
                self._call_collaborator("commission.enqueue", self.commission_scheduler.enqueue, order)

                intent.order = order
                events.append(
                    PaymentEvent.for_intent(
                        PaymentEventType.PAYMENT_SUCCEEDED,
                        intent,
                        amount=intent.amount,
                        message="Payment completed successfully",
                    )
                )
                events.append(
                    PaymentEvent.for_intent(
                        PaymentEventType.ORDER_PAYMENT_RECEIVED,
                        intent,
                        order_code=order.code,
                        amount=intent.amount,
                    )
                )

        self.logger.info(
            f"Payment {intent.pk} completed successfully for order {intent.order_id}",
            extra={
                "payment_id": str(intent.pk),
                "order_id": str(intent.order_id),
                "verification_method": verification_method,
            },
        )
        self._publish(events)

        return PaymentCompletion(
            success=True,
            payment_id=str(intent.pk),
            order_id=str(intent.order_id),
            status=intent.status,
            message="Payment completed successfully",
        )

    def _already_completed(self, intent: PaymentIntent) -> PaymentCompletion:
        self.logger.info(
            "Payment already succeeded, returning success",
            extra={"payment_id": str(intent.pk)},
        )
        return PaymentCompletion(
            success=True,
            payment_id=str(intent.pk),
            order_id=str(intent.order_id),
            status=PaymentIntentStatus.SUCCEEDED,
            message="Payment already completed successfully",
            already_completed=True,
        )

    # =========================================================================
    # Expire
    # =========================================================================

    def expire(self, intent: PaymentIntent, blocking: bool = True) -> ServiceResult[PaymentCompletion]:
        """
        Fail an unpaid intent whose QR expired.

        A no-op (``success`` with the current status) when the intent is no
        longer pending or not yet past its expiry.
        """
        try:
            return ServiceResult.success(self._expire(intent, blocking=blocking))
        except BaseApplicationError as e:
            return self.handle_exception(e, f"Payment expiration failed for {intent.pk}")

    def _expire(self, intent: PaymentIntent, blocking: bool = True) -> PaymentCompletion:
        events: list[PaymentEvent] = []
        now = timezone.now()

        with intent_lock(intent.pk, blocking=blocking):
            with self.atomic():
                intent = (
                    PaymentIntent.objects.select_for_update()
                    .select_related("order_link")
                    .get(pk=intent.pk)
                )
                if intent.status != PaymentIntentStatus.PENDING or not intent.is_expired(now):
                    return PaymentCompletion(
                        success=False,
                        payment_id=str(intent.pk),
                        order_id=str(intent.order_id),
                        status=intent.status,
                        message=STATUS_MESSAGES[intent.status],
                    )

                intent.fail(reason="payment_timeout")
                intent.attach_response_meta(ExpirationMeta(expired_at=now.isoformat()))
                intent.save()

                intent.order_link.mirror(PaymentLinkStatus.FAILED)

                order = Order.objects.select_for_update().get(pk=intent.order_id)
                self._call_collaborator("inventory.restore_on_failure", self.inventory.restore_on_failure, order)
                if can_proceed(order.cancel):
                    order.cancel(note="Payment expired")
                    order.save(update_fields=["status", "cancelled_at", "admin_note", "updated_at"])

                intent.order = order
                events.append(
                    PaymentEvent.for_intent(
                        PaymentEventType.PAYMENT_FAILED,
                        intent,
                        reason="Payment expired",
                        message="Payment failed",
                    )
                )
                events.append(
                    PaymentEvent.for_intent(
                        PaymentEventType.PAYMENT_EXPIRED,
                        intent,
                        expired_at=now,
                    )
                )

        self.logger.info(
            f"Payment {intent.pk} expired and inventory restored for order {intent.order_id}",
            extra={"payment_id": str(intent.pk), "order_id": str(intent.order_id)},
        )
        self._publish(events)

        return PaymentCompletion(
            success=True,
            payment_id=str(intent.pk),
            order_id=str(intent.order_id),
            status=intent.status,
            message="Payment has expired",
        )

    # =========================================================================
    # Cancel
    # =========================================================================

    def cancel_payment(
        self,
        payment_id: Any,
        order_id: Any = None,
        actor: Any = None,
    ) -> ServiceResult[PaymentCompletion]:
        """Cancel a created or pending intent on the customer's request."""
        try:
            queryset = PaymentIntent.objects.select_related("order")
            if order_id is not None:
                queryset = queryset.filter(order_id=order_id)
            intent = queryset.filter(pk=payment_id).first()
            if intent is None:
                raise PaymentNotFoundError("Payment not found", details={"payment_id": str(payment_id)})
            self._check_access(intent.order, actor)

            events: list[PaymentEvent] = []
            with intent_lock(intent.pk):
                with self.atomic():
                    intent = (
                        PaymentIntent.objects.select_for_update()
                        .select_related("order_link")
                        .get(pk=intent.pk)
                    )
                    if intent.status not in LIVE_INTENT_STATUSES:
                        raise InvalidStateTransitionError(
                            f"Payment cannot be cancelled in status {intent.status}",
                            details={"payment_id": str(intent.pk), "current_status": intent.status},
                        )

                    intent.cancel()
                    intent.attach_response_meta(
                        CancellationMeta(
                            reason="user_cancelled",
                            cancelled_by=str(actor.pk) if getattr(actor, "pk", None) else None,
                        )
                    )
                    intent.save()

                    intent.order_link.mirror(PaymentLinkStatus.CANCELED)

                    order = Order.objects.select_for_update().get(pk=intent.order_id)
                    if can_proceed(order.cancel):
                        order.cancel(note="Payment cancelled by customer")
                        order.save(update_fields=["status", "cancelled_at", "admin_note", "updated_at"])
                    self._call_collaborator(
                        "inventory.restore_on_failure", self.inventory.restore_on_failure, order
                    )

                    intent.order = order
                    events.append(PaymentEvent.for_intent(PaymentEventType.PAYMENT_CANCELLED, intent))
                    events.append(
                        PaymentEvent.for_intent(
                            PaymentEventType.USER_PAYMENT_CANCELLATION,
                            intent,
                            user_id=str(actor.pk) if getattr(actor, "pk", None) else None,
                            message="User cancelled payment",
                        )
                    )

            self._publish(events)
            return ServiceResult.success(
                PaymentCompletion(
                    success=True,
                    payment_id=str(intent.pk),
                    order_id=str(intent.order_id),
                    status=intent.status,
                    message="Payment cancelled successfully",
                )
            )
        except BaseApplicationError as e:
            return self.handle_exception(e, f"Payment cancellation failed for {payment_id}")

    # =========================================================================
    # Queries
    # =========================================================================

    def get_status(self, payment_id: Any, actor: Any = None) -> ServiceResult[PaymentStatusInfo]:
        try:
            intent = self._get_intent(payment_id)
            self._check_access(intent.order, actor)

            message = STATUS_MESSAGES[intent.status]
            if intent.status == PaymentIntentStatus.PENDING and intent.is_expired():
                message = "Payment expired"

            return ServiceResult.success(
                PaymentStatusInfo(
                    payment_id=str(intent.pk),
                    order_id=str(intent.order_id),
                    order_code=intent.order.code,
                    provider=intent.provider,
                    status=intent.status,
                    amount=intent.amount,
                    currency=intent.currency,
                    expires_at=intent.expires_at if intent.status == PaymentIntentStatus.PENDING else None,
                    message=message,
                )
            )
        except BaseApplicationError as e:
            return self.handle_exception(e, f"Payment status lookup failed for {payment_id}")

    # =========================================================================
    # Helpers
    # =========================================================================

    def _get_intent(self, payment_id: Any) -> PaymentIntent:
        intent = None
        if _looks_like_uuid(payment_id):
            intent = PaymentIntent.objects.select_related("order", "order_link").filter(pk=payment_id).first()
        if intent is None:
            raise PaymentNotFoundError("Payment not found", details={"payment_id": str(payment_id)})
        return intent

    @staticmethod
    def _check_access(order: Order, actor: Any) -> None:
        """Customers may only touch their own orders; staff and system calls may touch any."""
        if actor is None or getattr(actor, "is_staff", False):
            return
        if order.customer_id != getattr(actor, "pk", None):
            raise PermissionDeniedError(
                "You do not have access to this payment",
                details={"order_id": str(order.pk)},
            )

    def _call_collaborator(self, name: str, func, *args):
        """Run a collaborator call, wrapping unexpected failures so the unit of work aborts."""
        try:
            return func(*args)
        except BaseApplicationError:
            raise
        except Exception as e:
            self.logger.error(f"Collaborator {name} failed: {e}", exc_info=True)
            raise CollaboratorError(
                f"{name} failed: {e}",
                details={"collaborator": name},
            ) from e

    def _publish(self, events: list[PaymentEvent]) -> None:
        for event in events:
            self.notifier.publish(event)


def _looks_like_uuid(value: Any) -> bool:
    if isinstance(value, UUID):
        return True
    try:
        UUID(str(value))
    except (TypeError, ValueError):
        return False
    return True

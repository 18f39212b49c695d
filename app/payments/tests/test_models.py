"""
Tests for payment models.

Covers the django-fsm transitions of PaymentIntent and RefundRequest,
optimistic version increments, the typed metadata sections, the append-only
TransactionRecord ledger and WebhookEvent bookkeeping.
"""

import re
from datetime import timedelta
from decimal import Decimal

import pytest
from django.db import IntegrityError, transaction
from django.utils import timezone
from django_fsm import TransitionNotAllowed

from orders.tests.factories import OrderFactory
from payments.models import OrderPaymentLink, PaymentIntent, TransactionRecord
from payments.state_machines import (
    PaymentIntentStatus,
    PaymentLinkStatus,
    RefundStatus,
    TransactionKind,
    WebhookEventStatus,
)
from payments.tests.factories import (
    OrderPaymentLinkFactory,
    PaymentIntentFactory,
    RefundRequestFactory,
    WebhookEventFactory,
)
from payments.types import CompletionMeta, OpaqueMeta, VietQRResponseMeta


@pytest.mark.django_db
class TestPaymentIntentTransitions:
    def test_mark_pending_from_created(self):
        intent = PaymentIntentFactory(status=PaymentIntentStatus.CREATED, expires_at=None, pending_at=None)
        expires_at = timezone.now() + timedelta(minutes=15)

        intent.mark_pending(expires_at=expires_at)
        intent.save()

        intent = PaymentIntent.objects.get(pk=intent.pk)
        assert intent.status == PaymentIntentStatus.PENDING
        assert intent.pending_at is not None
        assert intent.expires_at == expires_at

    def test_succeed_from_pending(self):
        intent = PaymentIntentFactory()

        intent.succeed(provider_ref="FT123")

        assert intent.status == PaymentIntentStatus.SUCCEEDED
        assert intent.provider_ref == "FT123"
        assert intent.succeeded_at is not None

    def test_succeed_from_created_not_allowed(self):
        intent = PaymentIntentFactory(status=PaymentIntentStatus.CREATED)

        with pytest.raises(TransitionNotAllowed):
            intent.succeed()

    def test_fail_records_reason(self):
        intent = PaymentIntentFactory()

        intent.fail(reason="payment_timeout")

        assert intent.status == PaymentIntentStatus.FAILED
        assert intent.failure_reason == "payment_timeout"
        assert intent.failed_at is not None

    @pytest.mark.parametrize(
        "status",
        [PaymentIntentStatus.FAILED, PaymentIntentStatus.CANCELLED, PaymentIntentStatus.REFUNDED],
    )
    def test_terminal_states_are_never_reopened(self, status):
        intent = PaymentIntentFactory(status=status)

        for transition in (intent.mark_pending, intent.succeed, intent.fail, intent.cancel):
            with pytest.raises(TransitionNotAllowed):
                transition()

    def test_refund_only_from_succeeded(self):
        pending = PaymentIntentFactory()
        with pytest.raises(TransitionNotAllowed):
            pending.refund()

        paid = PaymentIntentFactory(succeeded=True)
        paid.refund()
        assert paid.status == PaymentIntentStatus.REFUNDED
        assert paid.refunded_at is not None

    def test_status_cannot_be_assigned_directly(self):
        intent = PaymentIntentFactory()

        with pytest.raises(AttributeError):
            intent.status = PaymentIntentStatus.SUCCEEDED


@pytest.mark.django_db
class TestPaymentIntent:
    def test_version_increments_on_save(self):
        intent = PaymentIntentFactory()
        assert intent.version == 1

        intent.failure_reason = "note"
        intent.save()
        assert intent.version == 2

        intent.save(update_fields=["failure_reason"])
        assert intent.version == 3
        assert PaymentIntent.objects.get(pk=intent.pk).version == 3

    def test_is_expired(self):
        now = timezone.now()
        intent = PaymentIntentFactory(expires_at=now + timedelta(minutes=1))

        assert intent.is_expired(now) is False
        assert intent.is_expired(now + timedelta(minutes=2)) is True

    def test_intent_without_expiry_never_expires(self):
        intent = PaymentIntentFactory(expires_at=None)

        assert intent.is_expired(timezone.now() + timedelta(days=365)) is False

    def test_is_live(self):
        assert PaymentIntentFactory().is_live
        assert not PaymentIntentFactory(succeeded=True).is_live

    def test_build_code(self):
        assert re.fullmatch(r"PAY-ORD1-\d{13}", PaymentIntent.build_code("ORD1"))

    def test_one_live_intent_per_link_and_provider(self):
        intent = PaymentIntentFactory()

        with pytest.raises(IntegrityError):
            with transaction.atomic():
                PaymentIntentFactory(order_link=intent.order_link)

    def test_terminal_intent_does_not_block_new_live_intent(self):
        intent = PaymentIntentFactory(status=PaymentIntentStatus.CANCELLED)

        replacement = PaymentIntentFactory(order_link=intent.order_link)

        assert replacement.order_link_id == intent.order_link_id

    def test_metadata_sections_round_trip(self):
        intent = PaymentIntentFactory()
        meta = CompletionMeta(verification_method="webhook", verified_at="2026-01-01T00:00:00+00:00")

        intent.attach_response_meta(meta)
        intent.attach_response_meta(VietQRResponseMeta(qr_content="https://qr", generated_at="t"))
        intent.save()

        intent = PaymentIntent.objects.get(pk=intent.pk)
        assert intent.get_response_meta("completion") == meta
        assert intent.get_response_meta("vietqr_qr").qr_content == "https://qr"
        assert intent.get_request_meta("completion") is None

    def test_unknown_metadata_kind_reads_back_opaque(self):
        intent = PaymentIntentFactory(response_meta={"legacy": {"kind": "legacy", "foo": 1}})

        meta = intent.get_response_meta("legacy")

        assert isinstance(meta, OpaqueMeta)
        assert meta.data == {"foo": 1}


@pytest.mark.django_db
class TestOrderPaymentLink:
    def test_snapshot_copies_order_total(self):
        order = OrderFactory(total_amount=Decimal("250000.00"))

        link = OrderPaymentLink.snapshot(order, method="transfer", provider="vietqr")

        assert link.amount == Decimal("250000.00")
        assert link.status == PaymentLinkStatus.PENDING

    def test_snapshot_is_frozen(self):
        order = OrderFactory(total_amount=Decimal("250000.00"))
        link = OrderPaymentLink.snapshot(order, method="transfer", provider="vietqr")

        order.total_amount = Decimal("1.00")
        order.save()
        again = OrderPaymentLink.snapshot(order, method="cash", provider="cash")

        assert again.pk == link.pk
        assert again.amount == Decimal("250000.00")
        assert again.provider == "vietqr"

    def test_mirror_persists_status(self):
        link = OrderPaymentLinkFactory()

        link.mirror(PaymentLinkStatus.PAID)

        assert OrderPaymentLink.objects.get(pk=link.pk).status == PaymentLinkStatus.PAID


@pytest.mark.django_db
class TestRefundRequest:
    def test_build_reference_format(self):
        from payments.models import RefundRequest

        assert re.fullmatch(r"REF-\d{13}-[A-Z0-9]{6}", RefundRequest.build_reference())

    def test_lifecycle(self, staff_user):
        refund = RefundRequestFactory()

        refund.approve(actor=staff_user, note="ok")
        assert refund.status == RefundStatus.APPROVED
        assert refund.approved_by == staff_user
        assert refund.is_committed is False

        refund.settle(provider_ref="FT-R1")
        assert refund.status == RefundStatus.SUCCEEDED
        assert refund.provider_ref == "FT-R1"
        assert refund.processed_at is not None
        assert refund.is_committed is True

    def test_settle_requires_approval(self):
        refund = RefundRequestFactory()

        with pytest.raises(TransitionNotAllowed):
            refund.settle()

    def test_cancel_from_requested_or_approved(self, staff_user):
        requested = RefundRequestFactory()
        requested.cancel(actor=staff_user, reason="duplicate")
        assert requested.status == RefundStatus.CANCELLED
        assert requested.cancel_reason == "duplicate"

        settled = RefundRequestFactory(status=RefundStatus.SUCCEEDED)
        with pytest.raises(TransitionNotAllowed):
            settled.cancel()

    def test_fail_only_from_approved(self):
        refund = RefundRequestFactory(status=RefundStatus.APPROVED)

        refund.fail(reason="Account closed")

        assert refund.status == RefundStatus.FAILED
        assert refund.failure_reason == "Account closed"

    def test_version_increments_on_save(self):
        refund = RefundRequestFactory()

        refund.reason = "changed"
        refund.save()

        assert refund.version == 2


@pytest.mark.django_db
class TestTransactionRecord:
    def test_rows_are_append_only(self):
        intent = PaymentIntentFactory(succeeded=True)
        record = TransactionRecord.objects.create(
            kind=TransactionKind.CHARGE,
            payment_intent=intent,
            amount=intent.amount,
        )

        record.amount = Decimal("1.00")
        with pytest.raises(TypeError):
            record.save()
        with pytest.raises(TypeError):
            record.delete()
        with pytest.raises(TypeError):
            TransactionRecord.objects.filter(pk=record.pk).update(amount=Decimal("1.00"))
        with pytest.raises(TypeError):
            TransactionRecord.objects.all().delete()

    def test_charges_and_refunds(self):
        refund = RefundRequestFactory()
        intent = refund.payment_intent
        TransactionRecord.objects.create(kind=TransactionKind.CHARGE, payment_intent=intent, amount=intent.amount)
        TransactionRecord.objects.create(
            kind=TransactionKind.REFUND,
            payment_intent=intent,
            refund=refund,
            amount=refund.amount,
        )

        assert TransactionRecord.objects.charges().count() == 1
        assert TransactionRecord.objects.refunds().get().refund == refund


@pytest.mark.django_db
class TestWebhookEvent:
    def test_mark_processing_counts_attempts(self):
        event = WebhookEventFactory()

        event.mark_processing()
        event.mark_processing()

        assert event.status == WebhookEventStatus.PROCESSING
        assert event.retry_count == 2

    def test_mark_processed_clears_error(self):
        event = WebhookEventFactory(status=WebhookEventStatus.FAILED, error_message="boom")

        event.mark_processed()

        assert event.is_processed
        assert event.processed_at is not None
        assert event.error_message is None

    def test_can_retry_respects_max_retries(self, settings):
        settings.MAX_WEBHOOK_RETRIES = 2

        assert WebhookEventFactory(status=WebhookEventStatus.FAILED, retry_count=1).can_retry
        assert not WebhookEventFactory(status=WebhookEventStatus.FAILED, retry_count=2).can_retry
        assert not WebhookEventFactory(status=WebhookEventStatus.PROCESSED, retry_count=0).can_retry

    def test_provider_and_event_id_unique(self):
        event = WebhookEventFactory()

        with pytest.raises(IntegrityError):
            with transaction.atomic():
                WebhookEventFactory(provider=event.provider, event_id=event.event_id)

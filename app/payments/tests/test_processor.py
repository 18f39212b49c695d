"""
Tests for WebhookProcessor and the provider handlers.
"""

import pytest

from core.services import ServiceResult
from orders.models import OrderStatus
from payments.events import PaymentEventType
from payments.exceptions import PaymentValidationError
from payments.models import PaymentIntent, TransactionRecord, WebhookEvent
from payments.state_machines import PaymentIntentStatus, WebhookEventStatus
from payments.webhooks import handlers
from payments.webhooks.external import extract_order_code
from payments.webhooks.handlers import EXTERNAL_GATEWAY, dispatch_webhook
from payments.webhooks.processor import WebhookProcessor
from payments.tests.factories import WebhookEventFactory


@pytest.fixture
def processor(manager, payment_config):
    return WebhookProcessor(manager=manager, config=payment_config)


def vietqr_payload(intent, transaction_id="FT24001", amount="150000", with_payment_id=False):
    reference = f"ACTA {intent.order.code}"
    if with_payment_id:
        reference += f" | pay:{intent.pk}"
    return {
        "transactionId": transaction_id,
        "reference": reference,
        "amount": amount,
        "currency": "VND",
    }


def sepay_payload(order_code, transfer_amount=150000, **extra):
    return {
        "id": 92704,
        "gateway": "Vietcombank",
        "content": f"{order_code} chuyen tien",
        "transferAmount": transfer_amount,
        "referenceCode": "MBVCB.3278907687",
        **extra,
    }


@pytest.mark.django_db
class TestReceiveVietQR:
    def test_completes_payment(self, processor, pending_intent, notifier):
        result = processor.receive("vietqr", vietqr_payload(pending_intent))

        assert result.success
        outcome = result.data
        assert outcome.duplicate is False
        assert outcome.completion.status == PaymentIntentStatus.SUCCEEDED

        event = WebhookEvent.objects.get(provider="vietqr", event_id="FT24001")
        assert event.status == WebhookEventStatus.PROCESSED
        assert event.retry_count == 1

        intent = PaymentIntent.objects.get(pk=pending_intent.pk)
        assert intent.status == PaymentIntentStatus.SUCCEEDED
        assert intent.provider_ref == "FT24001"
        assert notifier.types == [
            PaymentEventType.WEBHOOK_RECEIVED,
            PaymentEventType.PAYMENT_SUCCEEDED,
            PaymentEventType.ORDER_PAYMENT_RECEIVED,
            PaymentEventType.WEBHOOK_PROCESSED,
        ]

    def test_reference_with_payment_id(self, processor, pending_intent):
        result = processor.receive("vietqr", vietqr_payload(pending_intent, with_payment_id=True))

        assert result.success
        assert result.data.completion.payment_id == str(pending_intent.pk)

    def test_transaction_id_snake_case(self, processor, pending_intent):
        payload = vietqr_payload(pending_intent)
        payload["transaction_id"] = payload.pop("transactionId")

        assert processor.receive("vietqr", payload).success
        assert WebhookEvent.objects.filter(event_id="FT24001").exists()

    def test_redelivery_is_acknowledged_once(self, processor, pending_intent, inventory):
        processor.receive("vietqr", vietqr_payload(pending_intent))

        result = processor.receive("vietqr", vietqr_payload(pending_intent))

        assert result.success
        assert result.data.duplicate is True
        assert WebhookEvent.objects.count() == 1
        assert TransactionRecord.objects.charges().count() == 1
        assert inventory.committed == [pending_intent.order_id]

    def test_second_transfer_for_paid_intent(self, processor, pending_intent):
        processor.receive("vietqr", vietqr_payload(pending_intent, transaction_id="FT1"))

        result = processor.receive("vietqr", vietqr_payload(pending_intent, transaction_id="FT2"))

        assert result.success
        assert result.data.completion.already_completed is True
        assert TransactionRecord.objects.charges().count() == 1

    @pytest.mark.parametrize(
        "missing,expected",
        [
            ("reference", ["reference"]),
            ("amount", ["amount"]),
            ("transactionId", ["transactionId"]),
        ],
    )
    def test_missing_fields_rejected_before_storage(self, processor, pending_intent, missing, expected):
        payload = vietqr_payload(pending_intent)
        del payload[missing]

        result = processor.receive("vietqr", payload)

        assert result.error_code == "PAYMENT_VALIDATION_ERROR"
        assert result.details == {"missing_fields": expected}
        assert not WebhookEvent.objects.exists()

    def test_non_object_payload_rejected(self, processor):
        assert processor.receive("vietqr", ["not", "a", "dict"]).error_code == "PAYMENT_VALIDATION_ERROR"

    def test_reference_not_a_payment(self, processor, notifier):
        payload = {"transactionId": "FT9", "reference": "coffee money", "amount": "1"}

        result = processor.receive("vietqr", payload)

        assert result.error_code == "INVALID_REFERENCE"
        event = WebhookEvent.objects.get(event_id="FT9")
        assert event.status == WebhookEventStatus.FAILED
        assert event.error_message == "Invalid reference format in webhook"
        assert notifier.events == []

    def test_unknown_order(self, processor):
        payload = {"transactionId": "FT9", "reference": "ACTA ORDNOPE", "amount": "1"}

        result = processor.receive("vietqr", payload)

        assert result.error_code == "PAYMENT_NOT_FOUND"
        assert WebhookEvent.objects.get(event_id="FT9").is_failed

    def test_amount_mismatch_leaves_payment_pending(self, processor, pending_intent, notifier):
        result = processor.receive("vietqr", vietqr_payload(pending_intent, amount="1000"))

        assert result.error_code == "INVALID_AMOUNT"
        assert PaymentIntent.objects.get(pk=pending_intent.pk).status == PaymentIntentStatus.PENDING
        assert WebhookEvent.objects.get(event_id="FT24001").is_failed
        assert notifier.types == [PaymentEventType.WEBHOOK_RECEIVED, PaymentEventType.WEBHOOK_ERROR]

    def test_failed_event_is_reprocessed_on_redelivery(self, processor, pending_intent):
        processor.receive("vietqr", vietqr_payload(pending_intent, amount="1000"))

        result = processor.receive("vietqr", vietqr_payload(pending_intent))

        assert result.success
        event = WebhookEvent.objects.get(event_id="FT24001")
        assert event.status == WebhookEventStatus.PROCESSED
        assert event.retry_count == 2

    def test_expired_intent_reports_expiry(self, processor, expired_intent):
        result = processor.receive("vietqr", vietqr_payload(expired_intent))

        assert result.error_code == "PAYMENT_EXPIRED"
        assert PaymentIntent.objects.get(pk=expired_intent.pk).status == PaymentIntentStatus.FAILED


@pytest.mark.django_db
class TestReceiveExternalGateway:
    def test_completes_order_from_content(self, processor, pending_intent):
        result = processor.receive(EXTERNAL_GATEWAY, sepay_payload(pending_intent.order.code))

        assert result.success
        intent = PaymentIntent.objects.get(pk=pending_intent.pk)
        assert intent.status == PaymentIntentStatus.SUCCEEDED
        assert intent.provider_ref == "MBVCB.3278907687"
        assert intent.order.status == OrderStatus.COMPLETED
        assert WebhookEvent.objects.get(provider=EXTERNAL_GATEWAY, event_id="92704").is_processed

    def test_event_id_used_without_reference_code(self, processor, pending_intent):
        payload = sepay_payload(pending_intent.order.code)
        del payload["referenceCode"]

        processor.receive(EXTERNAL_GATEWAY, payload)

        assert PaymentIntent.objects.get(pk=pending_intent.pk).provider_ref == "92704"

    def test_missing_transfer_amount(self, processor, pending_intent):
        payload = sepay_payload(pending_intent.order.code)
        del payload["transferAmount"]

        result = processor.receive(EXTERNAL_GATEWAY, payload)

        assert result.details == {"missing_fields": ["transferAmount"]}

    def test_no_order_code(self, processor):
        result = processor.receive(EXTERNAL_GATEWAY, sepay_payload("", content="tien nha"))

        assert result.error_code == "PAYMENT_VALIDATION_ERROR"
        assert WebhookEvent.objects.get(event_id="92704").is_failed


@pytest.mark.django_db
class TestProcess:
    def test_unknown_provider_is_acknowledged(self, processor):
        event = WebhookEventFactory(provider="mystery", payload={"id": "1"})

        result = processor.process(event)

        assert result.success
        assert WebhookEvent.objects.get(pk=event.pk).is_processed

    def test_handler_exception_marks_event_failed(self, processor, mocker):
        def explode(webhook_event, manager):
            raise RuntimeError("database gone")

        mocker.patch.dict(handlers.WEBHOOK_HANDLERS, {"vietqr": explode})
        event = WebhookEventFactory()

        with pytest.raises(RuntimeError):
            processor.process(event)

        event = WebhookEvent.objects.get(pk=event.pk)
        assert event.status == WebhookEventStatus.FAILED
        assert event.error_message == "RuntimeError: database gone"
        assert event.retry_count == 1

    def test_registered_handler_receives_manager(self, processor, mocker, manager):
        handler = mocker.Mock(return_value=ServiceResult.success(None))
        mocker.patch.dict(handlers.WEBHOOK_HANDLERS, {"mybank": handler})
        event = WebhookEventFactory(provider="mybank")

        dispatch_webhook(event, manager)

        handler.assert_called_once_with(event, manager)


class TestExtractOrderCode:
    def test_code_field_wins(self):
        assert extract_order_code({"code": "ORD1", "content": "ORD2"}) == "ORD1"

    def test_description_before_content(self):
        payload = {"description": "BankAPINotify ORD777 ck", "content": "ORD888"}

        assert extract_order_code(payload) == "ORD777"

    def test_content_token(self):
        assert extract_order_code({"content": "thanh toan ACT2024X nhe"}) == "ACT2024X"

    def test_token_must_start_a_word(self):
        with pytest.raises(PaymentValidationError):
            extract_order_code({"content": "XORD1 and more"})

    def test_nothing_found(self):
        with pytest.raises(PaymentValidationError, match="Cannot extract order code"):
            extract_order_code({"content": "hello"})

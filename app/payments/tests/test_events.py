"""
Tests for payment events and the Channels notifier.
"""

from decimal import Decimal

import pytest

from payments.events import (
    ADMIN_PAYMENTS_ROOM,
    ChannelLayerNotifier,
    PaymentEvent,
    PaymentEventType,
)
from payments.tests.factories import PaymentIntentFactory


class RecordingChannelLayer:
    def __init__(self, fail_on=None):
        self.sent = []
        self.fail_on = fail_on

    async def group_send(self, group, message):
        if group == self.fail_on:
            raise RuntimeError("layer down")
        self.sent.append((group, message))


@pytest.mark.django_db
class TestPaymentEvent:
    def test_for_intent_fills_ids_and_serializes_data(self):
        intent = PaymentIntentFactory()

        event = PaymentEvent.for_intent(
            PaymentEventType.PAYMENT_PENDING,
            intent,
            amount=Decimal("150000.00"),
            expires_at=intent.expires_at,
        )

        assert event.payment_id == str(intent.pk)
        assert event.order_id == str(intent.order_id)
        assert event.user_id == str(intent.order.customer_id)
        assert event.data["amount"] == "150000.00"
        assert event.data["expires_at"] == intent.expires_at.isoformat()

    def test_rooms(self):
        intent = PaymentIntentFactory()
        event = PaymentEvent.for_intent(PaymentEventType.PAYMENT_SUCCEEDED, intent)

        assert event.rooms() == [
            f"user_payments_{intent.order.customer_id}",
            f"order_payments_{intent.order_id}",
            f"payment_monitoring_{intent.pk}",
            ADMIN_PAYMENTS_ROOM,
        ]

    def test_event_without_payment_goes_to_admin_room_only(self):
        event = PaymentEvent(type=PaymentEventType.PAYMENT_RECONCILIATION, data={"total_rows": 3})

        assert event.rooms() == [ADMIN_PAYMENTS_ROOM]

    def test_to_message(self):
        intent = PaymentIntentFactory()
        event = PaymentEvent.for_intent(PaymentEventType.PAYMENT_FAILED, intent, reason="Payment expired")

        message = event.to_message()

        assert message["type"] == "payment_failed"
        assert message["data"] == {
            "payment_id": str(intent.pk),
            "order_id": str(intent.order_id),
            "reason": "Payment expired",
        }
        assert message["timestamp"] == event.timestamp


@pytest.mark.django_db
class TestChannelLayerNotifier:
    def test_publishes_to_every_room(self):
        layer = RecordingChannelLayer()
        intent = PaymentIntentFactory()
        event = PaymentEvent.for_intent(PaymentEventType.PAYMENT_SUCCEEDED, intent)

        ChannelLayerNotifier(channel_layer=layer).publish(event)

        assert [group for group, _ in layer.sent] == event.rooms()
        _, message = layer.sent[0]
        assert message["type"] == ChannelLayerNotifier.MESSAGE_TYPE
        assert message["event"]["type"] == "payment_succeeded"

    def test_broken_room_does_not_stop_delivery(self):
        layer = RecordingChannelLayer(fail_on=ADMIN_PAYMENTS_ROOM)
        event = PaymentEvent(
            type=PaymentEventType.PAYMENT_SUCCEEDED,
            payment_id="p1",
            order_id="o1",
        )

        ChannelLayerNotifier(channel_layer=layer).publish(event)

        assert [group for group, _ in layer.sent] == ["order_payments_o1", "payment_monitoring_p1"]

    def test_default_layer_from_settings(self):
        event = PaymentEvent(type=PaymentEventType.PAYMENT_RECONCILIATION)

        ChannelLayerNotifier().publish(event)

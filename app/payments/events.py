"""
Payment events and the Channels notifier.

Services describe what happened as PaymentEvent values and hand them to a
PaymentNotifier after their unit of work commits. The default notifier
fans each event out over the Django Channels layer to the rooms
interested in it:

    user_payments_<userId>         the paying customer
    order_payments_<orderId>       anyone watching the order
    payment_monitoring_<paymentId> a single payment screen
    admin_payments                 back-office dashboards

Usage:
    from payments.events import PaymentEvent, PaymentEventType

    notifier.publish(
        PaymentEvent.for_intent(
            PaymentEventType.PAYMENT_SUCCEEDED,
            intent,
            amount=intent.amount,
            message="Payment completed successfully",
        )
    )
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.utils import timezone

if TYPE_CHECKING:
    from typing import Any

    from payments.models import PaymentIntent

logger = logging.getLogger(__name__)

ADMIN_PAYMENTS_ROOM = "admin_payments"


class PaymentEventType(str, enum.Enum):
    # Payment status
    PAYMENT_CREATED = "payment_created"
    PAYMENT_PENDING = "payment_pending"
    PAYMENT_SUCCEEDED = "payment_succeeded"
    PAYMENT_FAILED = "payment_failed"
    PAYMENT_EXPIRED = "payment_expired"
    PAYMENT_CANCELLED = "payment_cancelled"
    PAYMENT_STATUS_UPDATE = "payment_status_update"
    PAYMENT_EXPIRY_WARNING = "payment_expiry_warning"

    # Order
    ORDER_PAYMENT_RECEIVED = "order_payment_received"

    # Webhooks
    WEBHOOK_RECEIVED = "webhook_received"
    WEBHOOK_PROCESSED = "webhook_processed"
    WEBHOOK_ERROR = "webhook_error"

    # User actions
    USER_PAYMENT_CANCELLATION = "user_payment_cancellation"

    # Back office
    PAYMENT_RECONCILIATION = "payment_reconciliation"


def _jsonable(value: Any) -> Any:
    """Convert values the channel layer serializer cannot encode."""
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


@dataclass(frozen=True)
class PaymentEvent:
    """
    Something observable that happened to a payment.

    ``payment_id`` is empty for events not tied to one payment (for example
    a reconciliation run).
    """

    type: PaymentEventType
    payment_id: str | None = None
    order_id: str | None = None
    user_id: str | None = None
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=lambda: timezone.now().isoformat())

    @classmethod
    def for_intent(cls, event_type: PaymentEventType, intent: PaymentIntent, **data) -> PaymentEvent:
        return cls(
            type=event_type,
            payment_id=str(intent.pk),
            order_id=str(intent.order_id),
            user_id=str(intent.order.customer_id) if intent.order.customer_id else None,
            data=_jsonable(data),
        )

    def rooms(self) -> list[str]:
        rooms = []
        if self.user_id:
            rooms.append(f"user_payments_{self.user_id}")
        if self.order_id:
            rooms.append(f"order_payments_{self.order_id}")
        if self.payment_id:
            rooms.append(f"payment_monitoring_{self.payment_id}")
        rooms.append(ADMIN_PAYMENTS_ROOM)
        return rooms

    def to_message(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "data": {
                "payment_id": self.payment_id,
                "order_id": self.order_id,
                **self.data,
            },
            "timestamp": self.timestamp,
        }


class ChannelLayerNotifier:
    """
    PaymentNotifier that broadcasts over the Channels layer.

    Delivery is best effort: the payment has already been committed when an
    event is published, so a broken channel layer is logged and ignored.
    """

    # Consumers handle this with a ``payment_event`` method
    MESSAGE_TYPE = "payment.event"

    def __init__(self, channel_layer=None):
        self._channel_layer = channel_layer

    @property
    def channel_layer(self):
        if self._channel_layer is None:
            self._channel_layer = get_channel_layer()
        return self._channel_layer

    def publish(self, event: PaymentEvent) -> None:
        layer = self.channel_layer
        if layer is None:
            logger.debug("No channel layer configured, dropping %s", event.type.value)
            return

        message = {"type": self.MESSAGE_TYPE, "event": event.to_message()}
        for room in event.rooms():
            try:
                async_to_sync(layer.group_send)(room, message)
            except Exception as e:
                logger.warning(
                    f"Failed to publish {event.type.value} to {room}: {e}",
                    extra={"payment_id": event.payment_id, "room": room},
                )


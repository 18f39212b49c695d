"""
Model mixins combined with BaseModel.

Available Mixins:
    UUIDPrimaryKeyMixin: UUID primary key instead of an auto-increment integer

Payment, refund and order identifiers travel in webhook payloads, bank memos
and polling URLs, so they must not be guessable or reveal record counts.
"""

from __future__ import annotations

import uuid

from django.db import models


class UUIDPrimaryKeyMixin(models.Model):
    """
    Use a UUID4 as primary key.

    Usage:
        class PaymentIntent(UUIDPrimaryKeyMixin, BaseModel):
            ...

        intent = PaymentIntent.objects.create(...)
        intent.id  # UUID('550e8400-e29b-41d4-a716-446655440000')
    """

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier for this record",
    )

    class Meta:
        abstract = True

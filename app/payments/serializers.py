"""
DRF serializers for payments app.

This module provides serializers for:
- Payment intent creation, verification and status polling
- Refund requests and their workflow actions
- Bank statement reconciliation uploads

Request serializers only validate input; services own every state change.

Usage:
    serializer = CreatePaymentIntentSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
"""

from __future__ import annotations

from decimal import Decimal

from rest_framework import serializers

from payments.models import PaymentIntent, RefundRequest
from payments.state_machines import PaymentMethod, PaymentProvider


# =============================================================================
# Payment Intents
# =============================================================================


class CreatePaymentIntentSerializer(serializers.Serializer):
    order_id = serializers.UUIDField()
    method = serializers.ChoiceField(choices=PaymentMethod.choices)
    provider = serializers.ChoiceField(choices=PaymentProvider.choices)
    idempotency_key = serializers.CharField(max_length=128, required=False, allow_blank=False)


class VerifyPaymentSerializer(serializers.Serializer):
    """Manual confirmation of a transfer by staff."""

    provider = serializers.ChoiceField(choices=PaymentProvider.choices, required=False)
    amount = serializers.DecimalField(max_digits=15, decimal_places=2)
    currency = serializers.CharField(max_length=3, required=False)
    provider_ref = serializers.CharField(max_length=255, required=False, allow_blank=True)
    raw_payload = serializers.JSONField(required=False)


class CancelPaymentSerializer(serializers.Serializer):
    order_id = serializers.UUIDField(required=False)


class PaymentIntentSerializer(serializers.ModelSerializer):
    class Meta:
        model = PaymentIntent
        fields = [
            "id",
            "code",
            "order_id",
            "provider",
            "method",
            "amount",
            "currency",
            "status",
            "expires_at",
            "created_at",
        ]
        read_only_fields = fields


class PaymentIntentResultSerializer(serializers.Serializer):
    payment = PaymentIntentSerializer(source="intent")
    payment_code = serializers.CharField()
    polling_url = serializers.CharField()
    reused = serializers.BooleanField()
    message = serializers.CharField()


class PaymentCompletionSerializer(serializers.Serializer):
    success = serializers.BooleanField()
    payment_id = serializers.CharField()
    order_id = serializers.CharField()
    status = serializers.CharField()
    message = serializers.CharField()
    already_completed = serializers.BooleanField()


class PaymentStatusSerializer(serializers.Serializer):
    payment_id = serializers.CharField()
    order_id = serializers.CharField()
    order_code = serializers.CharField()
    provider = serializers.CharField()
    status = serializers.CharField()
    amount = serializers.DecimalField(max_digits=15, decimal_places=2)
    currency = serializers.CharField()
    expires_at = serializers.DateTimeField(allow_null=True)
    message = serializers.CharField()


# =============================================================================
# Refunds
# =============================================================================


class CreateRefundSerializer(serializers.Serializer):
    payment_id = serializers.UUIDField()
    amount = serializers.DecimalField(max_digits=15, decimal_places=2, min_value=Decimal("0.01"))
    reason = serializers.CharField(max_length=500, required=False, allow_blank=True)
    items = serializers.ListField(child=serializers.JSONField(), required=False)


class ApproveRefundSerializer(serializers.Serializer):
    note = serializers.CharField(max_length=500, required=False, allow_blank=True)


class SettleRefundSerializer(serializers.Serializer):
    provider_ref = serializers.CharField(max_length=255, required=False, allow_blank=True)
    settled_at = serializers.DateTimeField(required=False)


class RefundReasonSerializer(serializers.Serializer):
    """Body of the cancel and fail actions."""

    reason = serializers.CharField(max_length=500, required=False, allow_blank=True)


class RefundRequestSerializer(serializers.ModelSerializer):
    payment_id = serializers.UUIDField(source="payment_intent_id", read_only=True)

    class Meta:
        model = RefundRequest
        fields = [
            "id",
            "reference",
            "payment_id",
            "amount",
            "currency",
            "reason",
            "items",
            "status",
            "requested_by",
            "approved_by",
            "approval_note",
            "approved_at",
            "settled_by",
            "provider_ref",
            "processed_at",
            "cancelled_at",
            "cancel_reason",
            "failed_at",
            "failure_reason",
            "created_at",
        ]
        read_only_fields = fields


class RefundableAmountSerializer(serializers.Serializer):
    payment_id = serializers.CharField()
    original_amount = serializers.DecimalField(max_digits=15, decimal_places=2)
    refunded_amount = serializers.DecimalField(max_digits=15, decimal_places=2)
    refundable_amount = serializers.DecimalField(max_digits=15, decimal_places=2)
    currency = serializers.CharField()
    payment_status = serializers.CharField()


# =============================================================================
# Reconciliation
# =============================================================================


class ReconcileStatementSerializer(serializers.Serializer):
    """
    Bank statement upload.

    ``csv_base64`` carries the file base64-encoded; ``csv_text`` the plain
    CSV. Exactly one is required.
    """

    csv_base64 = serializers.CharField(required=False, trim_whitespace=True)
    csv_text = serializers.CharField(required=False, trim_whitespace=False)

    def validate(self, attrs):
        if bool(attrs.get("csv_base64")) == bool(attrs.get("csv_text")):
            raise serializers.ValidationError("Provide exactly one of csv_base64 or csv_text.")
        return attrs


class UnmatchedRowSerializer(serializers.Serializer):
    row = serializers.IntegerField()
    date = serializers.CharField()
    amount = serializers.DecimalField(max_digits=15, decimal_places=2)
    reference = serializers.CharField()
    reason = serializers.CharField()


class ReconciliationReportSerializer(serializers.Serializer):
    total_rows = serializers.IntegerField()
    matched_rows = serializers.IntegerField()
    unmatched_rows_count = serializers.IntegerField(source="unmatched_count")
    refunds_settled = serializers.IntegerField()
    payments_reconciled = serializers.IntegerField()
    summary = serializers.CharField()
    unmatched_rows = UnmatchedRowSerializer(many=True)

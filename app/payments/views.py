"""
DRF views for payments app.

This module provides API views for:
- Payment intent creation, manual verification, cancellation and status
- Refund requests and the two-step approval workflow
- Bank statement reconciliation

Related files:
    - services/: PaymentIntentManager, RefundWorkflow, ReconciliationEngine
    - serializers.py: Request/response serializers
    - webhooks/views.py: Bank and gateway webhooks
    - urls.py: URL routing

Endpoints:
    POST /api/v1/payments/intents/ - Create or reuse a payment intent
    POST /api/v1/payments/intents/{id}/verify/ - Confirm a transfer (staff)
    POST /api/v1/payments/intents/{id}/cancel/ - Cancel an unpaid intent
    GET  /api/v1/payments/intents/{id}/refundable/ - Refundable amount
    GET  /api/v1/payments/{id}/status/ - Poll payment status
    POST /api/v1/payments/refunds/ - Request a refund
    POST /api/v1/payments/refunds/{id}/approve|settle|cancel|fail/ - Refund workflow (staff)
    POST /api/v1/payments/reconciliation/ - Reconcile a bank statement (staff)

Every response uses the ServiceResult envelope:
    {"success": true, "data": {...}}
    {"success": false, "error": "...", "error_code": "...", "details": {...}}
"""

from __future__ import annotations

import logging

from rest_framework import status
from rest_framework.permissions import IsAdminUser, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from drf_spectacular.utils import OpenApiResponse, extend_schema

from core.services import ServiceResult

from payments.serializers import (
    ApproveRefundSerializer,
    CancelPaymentSerializer,
    CreatePaymentIntentSerializer,
    CreateRefundSerializer,
    PaymentCompletionSerializer,
    PaymentIntentResultSerializer,
    PaymentStatusSerializer,
    ReconcileStatementSerializer,
    ReconciliationReportSerializer,
    RefundableAmountSerializer,
    RefundReasonSerializer,
    RefundRequestSerializer,
    SettleRefundSerializer,
    VerifyPaymentSerializer,
)
from payments.services import PaymentIntentManager, ReconciliationEngine, RefundWorkflow

logger = logging.getLogger(__name__)


def service_response(
    result: ServiceResult,
    serializer_class=None,
    success_status: int = status.HTTP_200_OK,
) -> Response:
    """Render a ServiceResult, serializing ``data`` on success."""
    if not result.success:
        return Response(result.to_response(), status=result.status_code)
    data = serializer_class(result.data).data if serializer_class else result.data
    return Response({"success": True, "data": data}, status=success_status)


# =============================================================================
# Payment Intents
# =============================================================================


class PaymentIntentCreateView(APIView):
    """
    Create a payment intent for an order, or return its live one.

    POST /api/v1/payments/intents/

    Request body:
        {"order_id": "<uuid>", "method": "transfer", "provider": "vietqr"}

    The ``Idempotency-Key`` header (or ``idempotency_key`` field) makes a
    retried request return the intent created by the first one.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="create_payment_intent",
        summary="Create payment intent",
        request=CreatePaymentIntentSerializer,
        responses={
            201: PaymentIntentResultSerializer,
            200: OpenApiResponse(description="Existing live intent returned"),
            404: OpenApiResponse(description="Order not found"),
            409: OpenApiResponse(description="Order not payable"),
            501: OpenApiResponse(description="Provider not implemented"),
        },
        tags=["Payments"],
    )
    def post(self, request):
        serializer = CreatePaymentIntentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = PaymentIntentManager().create_or_reuse(
            order_id=data["order_id"],
            method=data["method"],
            provider=data["provider"],
            idempotency_key=data.get("idempotency_key") or request.headers.get("Idempotency-Key"),
            actor=request.user,
        )
        success_status = status.HTTP_200_OK if result.success and result.data.reused else status.HTTP_201_CREATED
        return service_response(result, PaymentIntentResultSerializer, success_status)


class PaymentVerifyView(APIView):
    """
    Manually confirm that a transfer arrived.

    POST /api/v1/payments/intents/{id}/verify/
    """

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="verify_payment",
        summary="Verify payment",
        request=VerifyPaymentSerializer,
        responses={
            200: PaymentCompletionSerializer,
            400: OpenApiResponse(description="Amount or currency mismatch"),
            409: OpenApiResponse(description="Payment not pending"),
            410: OpenApiResponse(description="Payment has expired"),
        },
        tags=["Payments"],
    )
    def post(self, request, payment_id):
        serializer = VerifyPaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = PaymentIntentManager().verify_payment(
            payment_id,
            provider=data.get("provider"),
            amount=data["amount"],
            currency=data.get("currency"),
            provider_ref=data.get("provider_ref") or None,
            raw_payload=data.get("raw_payload"),
        )
        return service_response(result, PaymentCompletionSerializer)


class PaymentCancelView(APIView):
    """
    Cancel an unpaid intent on the customer's request.

    POST /api/v1/payments/intents/{id}/cancel/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="cancel_payment",
        summary="Cancel payment",
        request=CancelPaymentSerializer,
        responses={200: PaymentCompletionSerializer},
        tags=["Payments"],
    )
    def post(self, request, payment_id):
        serializer = CancelPaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = PaymentIntentManager().cancel_payment(
            payment_id,
            order_id=serializer.validated_data.get("order_id"),
            actor=request.user,
        )
        return service_response(result, PaymentCompletionSerializer)


class PaymentStatusView(APIView):
    """
    Poll the status of a payment.

    GET /api/v1/payments/{id}/status/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_payment_status",
        summary="Payment status",
        responses={200: PaymentStatusSerializer, 404: OpenApiResponse(description="Payment not found")},
        tags=["Payments"],
    )
    def get(self, request, payment_id):
        result = PaymentIntentManager().get_status(payment_id, actor=request.user)
        return service_response(result, PaymentStatusSerializer)


class RefundableAmountView(APIView):
    """GET /api/v1/payments/intents/{id}/refundable/"""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_refundable_amount",
        summary="Refundable amount",
        responses={200: RefundableAmountSerializer},
        tags=["Refunds"],
    )
    def get(self, request, payment_id):
        result = RefundWorkflow().get_refundable_amount(payment_id, actor=request.user)
        return service_response(result, RefundableAmountSerializer)


# =============================================================================
# Refunds
# =============================================================================


class RefundCreateView(APIView):
    """
    Request a refund of a succeeded payment.

    POST /api/v1/payments/refunds/

    Request body:
        {"payment_id": "<uuid>", "amount": "50000", "reason": "Damaged item"}
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="create_refund",
        summary="Request refund",
        request=CreateRefundSerializer,
        responses={
            201: RefundRequestSerializer,
            400: OpenApiResponse(description="Amount exceeds refundable amount"),
            404: OpenApiResponse(description="Payment not found or not succeeded"),
        },
        tags=["Refunds"],
    )
    def post(self, request):
        serializer = CreateRefundSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = RefundWorkflow().create_refund(
            data["payment_id"],
            data["amount"],
            reason=data.get("reason") or None,
            items=data.get("items"),
            actor=request.user,
        )
        return service_response(result, RefundRequestSerializer, status.HTTP_201_CREATED)


class RefundApproveView(APIView):
    """POST /api/v1/payments/refunds/{id}/approve/"""

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="approve_refund",
        summary="Approve refund",
        request=ApproveRefundSerializer,
        responses={
            200: RefundRequestSerializer,
            403: OpenApiResponse(description="Approver is the requester"),
            409: OpenApiResponse(description="Refund not in requested status"),
        },
        tags=["Refunds"],
    )
    def post(self, request, refund_id):
        serializer = ApproveRefundSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = RefundWorkflow().approve_refund(
            refund_id,
            note=serializer.validated_data.get("note") or None,
            actor=request.user,
        )
        return service_response(result, RefundRequestSerializer)


class RefundSettleView(APIView):
    """POST /api/v1/payments/refunds/{id}/settle/"""

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="settle_refund",
        summary="Settle refund",
        request=SettleRefundSerializer,
        responses={200: RefundRequestSerializer},
        tags=["Refunds"],
    )
    def post(self, request, refund_id):
        serializer = SettleRefundSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = RefundWorkflow().settle_refund(
            refund_id,
            provider_ref=data.get("provider_ref") or None,
            settled_at=data.get("settled_at"),
            actor=request.user,
        )
        return service_response(result, RefundRequestSerializer)


class RefundCancelView(APIView):
    """POST /api/v1/payments/refunds/{id}/cancel/"""

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="cancel_refund",
        summary="Cancel refund",
        request=RefundReasonSerializer,
        responses={200: RefundRequestSerializer},
        tags=["Refunds"],
    )
    def post(self, request, refund_id):
        serializer = RefundReasonSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = RefundWorkflow().cancel_refund(
            refund_id,
            reason=serializer.validated_data.get("reason") or None,
            actor=request.user,
        )
        return service_response(result, RefundRequestSerializer)


class RefundFailView(APIView):
    """POST /api/v1/payments/refunds/{id}/fail/"""

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="fail_refund",
        summary="Mark refund failed",
        request=RefundReasonSerializer,
        responses={200: RefundRequestSerializer},
        tags=["Refunds"],
    )
    def post(self, request, refund_id):
        serializer = RefundReasonSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = RefundWorkflow().fail_refund(
            refund_id,
            reason=serializer.validated_data.get("reason") or None,
            actor=request.user,
        )
        return service_response(result, RefundRequestSerializer)


# =============================================================================
# Reconciliation
# =============================================================================


class ReconciliationView(APIView):
    """
    Reconcile a bank statement CSV.

    POST /api/v1/payments/reconciliation/

    Request body:
        {"csv_base64": "ZGF0ZSxhbW91bnQscmVmZXJlbmNlLHR4bl9pZAo..."}
    """

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="reconcile_bank_statement",
        summary="Reconcile bank statement",
        request=ReconcileStatementSerializer,
        responses={
            200: ReconciliationReportSerializer,
            400: OpenApiResponse(description="Invalid CSV format"),
        },
        tags=["Reconciliation"],
    )
    def post(self, request):
        serializer = ReconcileStatementSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        logger.info(
            "Processing bank statement CSV for reconciliation",
            extra={"user_id": str(request.user.pk)},
        )
        engine = ReconciliationEngine()
        if data.get("csv_text"):
            result = engine.reconcile_csv(data["csv_text"], encoding="text")
        else:
            result = engine.reconcile_csv(data["csv_base64"], encoding="base64")
        return service_response(result, ReconciliationReportSerializer)

"""
URL configuration for the payments app.

Routes:
    - POST intents/ - Create or reuse a payment intent
    - POST intents/<id>/verify/ - Manually verify a payment (staff)
    - POST intents/<id>/cancel/ - Cancel a payment
    - GET intents/<id>/refundable/ - Refundable amount
    - GET <id>/status/ - Poll payment status
    - POST refunds/ - Request a refund
    - POST refunds/<id>/approve|settle|cancel|fail/ - Refund workflow (staff)
    - POST reconciliation/ - Reconcile a bank statement (staff)
    - POST webhooks/vietqr/ - Bank webhook (HMAC signed)
    - POST webhooks/external/ - External gateway completion (API key)

All routes are prefixed with /api/v1/payments/ when included in the main URLconf.
"""

from django.urls import path

from payments import views
from payments.webhooks.views import external_payment_complete, vietqr_webhook

app_name = "payments"

urlpatterns = [
    # Payment intents
    path("intents/", views.PaymentIntentCreateView.as_view(), name="intent_create"),
    path("intents/<uuid:payment_id>/verify/", views.PaymentVerifyView.as_view(), name="intent_verify"),
    path("intents/<uuid:payment_id>/cancel/", views.PaymentCancelView.as_view(), name="intent_cancel"),
    path(
        "intents/<uuid:payment_id>/refundable/",
        views.RefundableAmountView.as_view(),
        name="intent_refundable",
    ),
    path("<uuid:payment_id>/status/", views.PaymentStatusView.as_view(), name="payment_status"),
    # Refunds
    path("refunds/", views.RefundCreateView.as_view(), name="refund_create"),
    path("refunds/<str:refund_id>/approve/", views.RefundApproveView.as_view(), name="refund_approve"),
    path("refunds/<str:refund_id>/settle/", views.RefundSettleView.as_view(), name="refund_settle"),
    path("refunds/<str:refund_id>/cancel/", views.RefundCancelView.as_view(), name="refund_cancel"),
    path("refunds/<str:refund_id>/fail/", views.RefundFailView.as_view(), name="refund_fail"),
    # Reconciliation
    path("reconciliation/", views.ReconciliationView.as_view(), name="reconciliation"),
    # Webhook endpoints
    path("webhooks/vietqr/", vietqr_webhook, name="vietqr_webhook"),
    path("webhooks/external/", external_payment_complete, name="external_payment_complete"),
]

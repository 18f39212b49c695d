"""
URL configuration for the payment platform.

URL Structure:
    /                              - ReDoc API documentation
    /admin/                        - Django admin interface
    /health/                       - Health check endpoint (for load balancers, Docker)
    /schema/                       - OpenAPI schema (YAML)
    /api/v1/auth/                  - JWT endpoints (simplejwt)
        token/                     - Obtain access/refresh pair
        token/refresh/             - Refresh access token
    /api/v1/payments/              - Payment endpoints
        intents/                   - Create or reuse a payment intent
        intents/{id}/verify/       - Manual verification (staff)
        intents/{id}/cancel/       - Cancel a pending payment
        intents/{id}/refundable/   - Refundable amount
        {id}/status/               - Poll payment status
        refunds/                   - Request a refund
        refunds/{id}/approve/      - Approve refund (staff)
        refunds/{id}/settle/       - Settle refund (staff)
        refunds/{id}/cancel/       - Cancel refund (staff)
        refunds/{id}/fail/         - Mark refund failed (staff)
        reconciliation/            - Reconcile bank statement (staff)
        webhooks/vietqr/           - Bank transfer webhook (POST)
        webhooks/external/         - External gateway webhook (POST)

For more information, see:
https://docs.djangoproject.com/en/5.2/topics/http/urls/
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from core.views import health_check

# =============================================================================
# API v1 Routes
# =============================================================================
# All routes here are prefixed with /api/v1/ automatically
api_v1_patterns = [
    # Authentication (simplejwt)
    path("auth/token/", TokenObtainPairView.as_view(), name="token_obtain_pair"),
    path("auth/token/refresh/", TokenRefreshView.as_view(), name="token_refresh"),
    # Payments
    path("payments/", include("payments.urls")),
]

urlpatterns = [
    # Documentation
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    # Admin
    path("admin/", admin.site.urls),
    # Health check (Docker, Kubernetes, load balancers)
    path("health/", health_check, name="health_check"),
    # API v1
    path("api/v1/", include(api_v1_patterns)),
]

# =============================================================================
# Admin Site Customization
# =============================================================================
admin.site.site_header = "Payment Platform Admin"
admin.site.site_title = "Payment Admin"
admin.site.index_title = "Orders, payments and commissions"

"""
Payments app configuration.

This app provides the payment lifecycle engine:
- Payment intents for bank transfer (VietQR) and cash on delivery
- Bank and gateway webhook processing
- Refund approval workflow and bank statement reconciliation
"""

from django.apps import AppConfig


class PaymentsConfig(AppConfig):
    """Configuration for the payments application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "payments"
    verbose_name = "Payments"

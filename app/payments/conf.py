"""
Payment engine configuration.

Values come from Django settings (populated from the environment by
django-environ in config/settings.py). Services read them through
``get_payment_settings()`` so tests can pass a different PaymentSettings
to a service constructor instead of patching settings.
"""

from __future__ import annotations

from dataclasses import dataclass

from django.conf import settings


@dataclass(frozen=True)
class PaymentSettings:
    """
    Snapshot of payment configuration.

    Attributes:
        bank_bin: Receiving bank BIN used in the QR image URL
        account_number: Receiving account number
        account_name: Receiving account holder name
        qr_image_base_url: VietQR image endpoint
        reference_prefix: Fixed prefix of every remittance description
        currency: The only settlement currency
        qr_expiry_minutes: Lifetime of a bank-transfer intent
        webhook_secret: HMAC secret shared with the bank webhook sender
        webhook_tolerance_seconds: Accepted clock skew of webhook timestamps
        external_api_key: Static key for the external completion endpoint
        sweep_batch_size: Intents expired per sweep run
        warning_window_minutes: Look-ahead window of the warning sweep
        warning_threshold_minutes: Warn when this many minutes or fewer remain
        amount_tolerance: Accepted difference for external transfer amounts
    """

    bank_bin: str = "970407"
    account_number: str = "19028269053022"
    account_name: str = "NGUYEN MINH TRI"
    qr_image_base_url: str = "https://img.vietqr.io/image"
    reference_prefix: str = "ACTA"
    currency: str = "VND"
    qr_expiry_minutes: int = 15
    webhook_secret: str = ""
    webhook_tolerance_seconds: int = 300
    external_api_key: str = ""
    sweep_batch_size: int = 100
    warning_window_minutes: int = 10
    warning_threshold_minutes: int = 5
    amount_tolerance: str = "0.01"


def get_payment_settings() -> PaymentSettings:
    """Build PaymentSettings from the current Django settings."""
    defaults = PaymentSettings()
    return PaymentSettings(
        bank_bin=getattr(settings, "VIETQR_BANK_BIN", defaults.bank_bin),
        account_number=getattr(settings, "VIETQR_ACCOUNT_NUMBER", defaults.account_number),
        account_name=getattr(settings, "VIETQR_ACCOUNT_NAME", defaults.account_name),
        qr_image_base_url=getattr(settings, "VIETQR_IMAGE_BASE_URL", defaults.qr_image_base_url),
        reference_prefix=getattr(settings, "PAYMENT_REFERENCE_PREFIX", defaults.reference_prefix),
        currency=getattr(settings, "PAYMENT_CURRENCY", defaults.currency),
        qr_expiry_minutes=getattr(settings, "PAYMENT_QR_EXPIRY_MINUTES", defaults.qr_expiry_minutes),
        webhook_secret=getattr(settings, "VIETQR_WEBHOOK_SECRET", defaults.webhook_secret),
        webhook_tolerance_seconds=getattr(
            settings, "PAYMENT_WEBHOOK_TOLERANCE_SECONDS", defaults.webhook_tolerance_seconds
        ),
        external_api_key=getattr(settings, "EXTERNAL_PAYMENT_API_KEY", defaults.external_api_key),
        sweep_batch_size=getattr(settings, "PAYMENT_SWEEP_BATCH_SIZE", defaults.sweep_batch_size),
        warning_window_minutes=getattr(
            settings, "PAYMENT_EXPIRY_WARNING_WINDOW_MINUTES", defaults.warning_window_minutes
        ),
        warning_threshold_minutes=getattr(
            settings, "PAYMENT_EXPIRY_WARNING_MINUTES", defaults.warning_threshold_minutes
        ),
    )

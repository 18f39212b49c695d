"""
Workers for async payment processing.

This module contains Celery tasks for background payment operations:
- ExpirationSweeper: Expires unpaid intents and warns before expiry

Usage:
    from payments.workers import (
        sweep_expired_payment_intents,
        warn_expiring_payment_intents,
    )

    sweep_expired_payment_intents.delay()
"""

from payments.workers.expiration_sweeper import (
    ExpirationSweeper,
    SweepResult,
    sweep_expired_payment_intents,
    warn_expiring_payment_intents,
)

__all__ = [
    "ExpirationSweeper",
    "SweepResult",
    "sweep_expired_payment_intents",
    "warn_expiring_payment_intents",
]

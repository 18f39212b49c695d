"""
Authentication application.

Provides the email-based User model referenced by orders, payments, refunds
and referral commissions.

Usage:
    from authentication.models import User
"""

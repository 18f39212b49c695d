"""
Django app configuration for affiliate.
"""

from django.apps import AppConfig


class AffiliateConfig(AppConfig):
    """Configuration for the affiliate application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "affiliate"
    verbose_name = "Affiliate"

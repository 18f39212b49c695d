"""
Celery configuration for the payment platform.

Workers run the payment lifecycle's background work:
- Expiration and expiry-warning sweeps of pending payment intents
- Retry and cleanup of failed or stuck webhook events
- Affiliate commission jobs queued on payment completion

Periodic schedules live in django-celery-beat's database tables and are
created by data migrations in the payments and affiliate apps.

Redis is both the message broker and result backend. Tasks are
auto-discovered from all installed Django apps.

For more information, see:
https://docs.celeryq.dev/en/stable/django/first-steps-with-django.html
"""

import os

from celery import Celery

# Set the default Django settings module for the Celery worker
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

app.autodiscover_tasks()

"""
Add celery-beat schedules for the payment background jobs.

- Expire overdue payment intents every 5 minutes
- Warn customers about intents close to expiry every minute
- Retry failed webhook events every 5 minutes
- Reset webhook events stuck in processing every 15 minutes
"""

from django.db import migrations


SCHEDULES = [
    {
        "name": "Expire Overdue Payment Intents",
        "task": "payments.workers.expiration_sweeper.sweep_expired_payment_intents",
        "every": 300,
        "period": "seconds",
        "description": "Moves pending payment intents past their expiry to cancelled.",
    },
    {
        "name": "Warn Expiring Payment Intents",
        "task": "payments.workers.expiration_sweeper.warn_expiring_payment_intents",
        "every": 60,
        "period": "seconds",
        "description": "Publishes expiry warnings for intents close to expiring.",
    },
    {
        "name": "Retry Failed Payment Webhooks",
        "task": "payments.tasks.retry_failed_webhooks",
        "every": 5,
        "period": "minutes",
        "description": "Re-queues failed webhook events below the retry limit.",
    },
    {
        "name": "Cleanup Stuck Payment Webhooks",
        "task": "payments.tasks.cleanup_stuck_webhooks",
        "every": 15,
        "period": "minutes",
        "description": "Resets webhook events left in processing after a worker crash.",
    },
]


def create_periodic_tasks(apps, schema_editor):
    """Create the periodic tasks for payment background jobs."""
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    for entry in SCHEDULES:
        schedule, _ = IntervalSchedule.objects.get_or_create(
            every=entry["every"],
            period=entry["period"],
        )
        PeriodicTask.objects.get_or_create(
            name=entry["name"],
            defaults={
                "task": entry["task"],
                "interval": schedule,
                "enabled": True,
                "description": entry["description"],
            },
        )


def remove_periodic_tasks(apps, schema_editor):
    """Remove the periodic tasks on migration rollback."""
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    PeriodicTask.objects.filter(
        name__in=[entry["name"] for entry in SCHEDULES],
    ).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("payments", "0001_initial"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_tasks, remove_periodic_tasks),
    ]

"""
Add celery-beat schedule for draining the commission job queue.

Jobs are normally dispatched when the payment commits; this periodic task
picks up jobs whose dispatch was lost and jobs waiting for a retry.
"""

from django.conf import settings
from django.db import migrations


TASK_NAME = "Drain Commission Jobs"


def create_periodic_task(apps, schema_editor):
    """Create the periodic task for draining commission jobs."""
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    schedule, _ = IntervalSchedule.objects.get_or_create(
        every=getattr(settings, "COMMISSION_DRAIN_INTERVAL_SECONDS", 10),
        period="seconds",
    )

    PeriodicTask.objects.get_or_create(
        name=TASK_NAME,
        defaults={
            "task": "affiliate.tasks.drain_commission_jobs",
            "interval": schedule,
            "enabled": True,
            "description": (
                "Processes due pending commission jobs in batches. "
                "Failed jobs back off exponentially and dead-letter after the max attempts."
            ),
        },
    )


def remove_periodic_task(apps, schema_editor):
    """Remove the periodic task on migration rollback."""
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    PeriodicTask.objects.filter(name=TASK_NAME).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("affiliate", "0001_initial"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_task, remove_periodic_task),
    ]

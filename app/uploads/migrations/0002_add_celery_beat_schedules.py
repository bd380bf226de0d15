"""
Add Celery Beat schedules for upload session maintenance.

This migration creates periodic task schedules for:
- Sweeping abandoned upload sessions and orphaned chunk directories
- Purging old EXPIRED session records
"""

from django.db import migrations


def create_periodic_tasks(apps, schema_editor):
    """Create periodic tasks for upload maintenance."""
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    CrontabSchedule = apps.get_model("django_celery_beat", "CrontabSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    # Every 60 seconds
    schedule_60s, _ = IntervalSchedule.objects.get_or_create(
        every=60,
        period="seconds",
    )

    # Daily at 3 AM UTC
    crontab_daily_3am, _ = CrontabSchedule.objects.get_or_create(
        minute="0",
        hour="3",
        day_of_week="*",
        day_of_month="*",
        month_of_year="*",
    )

    PeriodicTask.objects.get_or_create(
        name="Uploads: Sweep Upload Sessions",
        defaults={
            "task": "uploads.tasks.sweep_upload_sessions",
            "interval": schedule_60s,
            "enabled": True,
            "description": (
                "Expires overdue upload sessions and removes orphaned chunk "
                "directories."
            ),
        },
    )

    PeriodicTask.objects.get_or_create(
        name="Uploads: Purge Expired Upload Sessions",
        defaults={
            "task": "uploads.tasks.purge_expired_upload_sessions",
            "crontab": crontab_daily_3am,
            "enabled": True,
            "description": (
                "Deletes EXPIRED upload session records older than "
                "CHUNKED_UPLOAD_EXPIRED_RETENTION_DAYS."
            ),
        },
    )


def remove_periodic_tasks(apps, schema_editor):
    """Remove upload periodic tasks on migration rollback."""
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    PeriodicTask.objects.filter(
        name__in=[
            "Uploads: Sweep Upload Sessions",
            "Uploads: Purge Expired Upload Sessions",
        ]
    ).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("uploads", "0001_initial"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_tasks, remove_periodic_tasks),
    ]

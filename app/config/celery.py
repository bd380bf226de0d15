"""
Celery configuration for the upload engine.

Celery runs the maintenance side of the engine:
- Periodic sweep of abandoned upload sessions and orphaned chunk directories
- Daily purge of old EXPIRED session records

Schedules live in the database (django-celery-beat DatabaseScheduler) and
are installed by the uploads migrations. Redis is the broker and result
backend. Tasks are auto-discovered from all installed Django apps.

Usage:
    # Worker
    celery -A config worker -l info

    # Scheduler (runs the periodic sweep)
    celery -A config beat -l info

For more information, see:
https://docs.celeryq.dev/en/stable/django/first-steps-with-django.html
"""

import os

from celery import Celery

# Set the default Django settings module for the Celery worker
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

# Create Celery application instance
app = Celery("config")

# Load configuration from Django settings
# All Celery settings should be prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

# Celery will look for a tasks.py module in each installed app
app.autodiscover_tasks()

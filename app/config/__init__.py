# =============================================================================
# Django Project Configuration Package
# =============================================================================
# Settings and Celery configuration for the upload engine.
#
# Import Celery app to ensure it's loaded when Django starts, so shared
# tasks in uploads.tasks bind to it.
# =============================================================================

from config.celery import app as celery_app

__all__ = ("celery_app",)

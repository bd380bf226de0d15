"""
Celery tasks for upload session maintenance.

Tasks:
- sweep_upload_sessions: expire overdue sessions, remove orphaned chunk
  directories (every 60 seconds)
- purge_expired_upload_sessions: delete old EXPIRED records (daily)

Both are scheduled by celery-beat through the DatabaseScheduler; the
schedules are installed by migration 0002_add_celery_beat_schedules.
Stopping beat stops the sweep.

Usage:
    from uploads.tasks import sweep_upload_sessions

    sweep_upload_sessions.delay()
"""

from __future__ import annotations

import logging

from celery import shared_task
from django.conf import settings

logger = logging.getLogger(__name__)


@shared_task
def sweep_upload_sessions() -> dict:
    """
    Periodic sweep of abandoned uploads.

    Returns:
        Dict with expired_count, removed_count and errors.
    """
    from uploads.services import get_expiry_sweeper

    result = get_expiry_sweeper().run_once()

    logger.info(
        "Upload session sweep complete",
        extra={
            "event_type": "upload_sweep_complete",
            "expired_count": result["expired_count"],
            "removed_count": result["removed_count"],
            "error_count": len(result["errors"]),
        },
    )
    return result


@shared_task
def purge_expired_upload_sessions() -> dict:
    """
    Delete EXPIRED session records older than the retention window.

    Returns:
        Dict with deleted_count.
    """
    from uploads.services import get_expiry_sweeper

    retention_days = getattr(settings, "CHUNKED_UPLOAD_EXPIRED_RETENTION_DAYS", 7)
    return get_expiry_sweeper().purge_expired_sessions(retention_days=retention_days)

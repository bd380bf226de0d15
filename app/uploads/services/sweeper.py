"""
Expiry sweeper: garbage collection for abandoned uploads.

Sweeps:
    expire_stale_sessions       PENDING/UPLOADING past expires_at -> EXPIRED,
                                chunks deleted, governor slot released
    cleanup_orphaned_namespaces Chunk directories with no session, or whose
                                session is already terminal
    purge_expired_sessions      Delete EXPIRED records past retention

run_once() runs the first two; it is what the periodic Celery task calls.
Digest cache entries expire through the cache alias TIMEOUT, not here. Failures on one item are logged and left for
the next run.
"""

from __future__ import annotations

import logging
import os
import time
import uuid
from datetime import timedelta
from typing import TYPE_CHECKING

from django.db import transaction
from django.utils import timezone

from uploads.models import UploadSession

if TYPE_CHECKING:
    from uploads.services.chunk_store import ChunkStore
    from uploads.services.governor import UploadGovernor

logger = logging.getLogger(__name__)


class ExpirySweeper:
    """
    Periodic cleanup over the session table and the chunk store.

    Args:
        chunk_store: Chunk store whose namespaces are swept
        governor: Governor whose slots are released. Slots live in process
            memory, so when this runs in a Celery worker it only frees the
            worker's own slots; web processes age theirs out by slot TTL
        orphan_grace_seconds: Minimum age of a session-less chunk directory
            before it is removed (covers the gap between directory creation
            and the session row commit)
    """

    def __init__(
        self,
        chunk_store: ChunkStore,
        governor: UploadGovernor,
        orphan_grace_seconds: float = 3600,
    ):
        self.chunk_store = chunk_store
        self.governor = governor
        self.orphan_grace_seconds = orphan_grace_seconds

    def expire_stale_sessions(self) -> dict:
        """
        Mark overdue PENDING/UPLOADING sessions EXPIRED and free their resources.

        Each session is re-checked under its row lock, so a session that
        completed or was cancelled concurrently is left alone.
        """
        now = timezone.now()
        candidate_ids = list(UploadSession.objects.stale(now).values_list("id", flat=True))

        expired_count = 0
        errors = []

        for session_id in candidate_ids:
            try:
                with self.governor.session_lock(session_id), transaction.atomic():
                    session = (
                        UploadSession.objects.select_for_update()
                        .filter(id=session_id)
                        .first()
                    )
                    if (
                        session is None
                        or session.status not in UploadSession.ACCEPTING_STATUSES
                        or session.expires_at >= now
                    ):
                        continue
                    session.expire()
                    session.save()

                self.chunk_store.delete_namespace(session_id)
                self.governor.release_slot(session_id)
                expired_count += 1

            except Exception as e:
                errors.append(f"Error expiring session {session_id}: {e}")
                logger.error(
                    "Failed to expire upload session",
                    extra={
                        "event_type": "upload_session_expire_error",
                        "session_id": str(session_id),
                        "error": str(e),
                    },
                )

        logger.info(
            "Expired upload sessions swept",
            extra={
                "event_type": "upload_session_expire",
                "expired_count": expired_count,
                "error_count": len(errors),
            },
        )
        return {"expired_count": expired_count, "errors": errors}

    def cleanup_orphaned_namespaces(self) -> dict:
        """
        Remove chunk directories that no live session owns.

        Directories whose name is not a session id are not ours and are
        skipped.
        """
        names = {}
        for name in self.chunk_store.list_namespaces():
            try:
                names[str(uuid.UUID(name))] = name
            except ValueError:
                continue

        statuses = dict(
            UploadSession.objects.filter(id__in=list(names)).values_list("id", "status")
        )
        statuses = {str(k): v for k, v in statuses.items()}
        cutoff = time.time() - self.orphan_grace_seconds

        removed_count = 0
        errors = []

        for session_id, name in names.items():
            status = statuses.get(session_id)
            if status is not None and status not in UploadSession.TERMINAL_STATUSES:
                continue
            if status is None:
                try:
                    mtime = os.stat(self.chunk_store.namespace_path(name)).st_mtime
                except FileNotFoundError:
                    continue
                if mtime > cutoff:
                    continue

            try:
                if self.chunk_store.delete_namespace(name):
                    removed_count += 1
                    logger.info(
                        "Removed orphaned chunk directory",
                        extra={"event_type": "orphaned_chunks_cleanup", "directory": name},
                    )
            except Exception as e:
                errors.append(f"Failed to remove {name}: {e}")

        logger.info(
            "Orphaned chunk directory cleanup complete",
            extra={
                "event_type": "orphaned_chunks_cleanup_complete",
                "removed_count": removed_count,
                "error_count": len(errors),
            },
        )
        return {"removed_count": removed_count, "errors": errors}

    def purge_expired_sessions(self, retention_days: int = 7) -> dict:
        """Delete EXPIRED session records last touched before the retention window."""
        threshold = timezone.now() - timedelta(days=retention_days)
        deleted_count, _ = UploadSession.objects.filter(
            status=UploadSession.Status.EXPIRED,
            updated_at__lt=threshold,
        ).delete()

        logger.info(
            "Purged expired upload sessions",
            extra={"event_type": "upload_session_purge", "deleted_count": deleted_count},
        )
        return {"deleted_count": deleted_count}

    def run_once(self) -> dict:
        """One sweep cycle."""
        expired = self.expire_stale_sessions()
        orphans = self.cleanup_orphaned_namespaces()
        return {
            "expired_count": expired["expired_count"],
            "removed_count": orphans["removed_count"],
            "errors": expired["errors"] + orphans["errors"],
        }

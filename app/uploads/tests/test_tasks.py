"""
Tests for the expiry sweeper and the Celery maintenance tasks.
"""

from __future__ import annotations

import os
import time
import uuid
from datetime import timedelta
from unittest.mock import patch

import pytest
from django.utils import timezone
from django_celery_beat.models import PeriodicTask
from freezegun import freeze_time

from uploads.models import UploadSession
from uploads.services.governor import UploadGovernor
from uploads.services.sweeper import ExpirySweeper
from uploads.tasks import purge_expired_upload_sessions, sweep_upload_sessions
from uploads.tests.factories import UploadSessionFactory

pytestmark = pytest.mark.django_db


def backdate(path, seconds: int = 7200) -> None:
    past = time.time() - seconds
    os.utime(path, (past, past))


@pytest.fixture
def sweeper(chunk_store, governor) -> ExpirySweeper:
    return ExpirySweeper(chunk_store, governor, orphan_grace_seconds=60)


class TestExpireStaleSessions:
    """Tests for ExpirySweeper.expire_stale_sessions()."""

    def test_expires_overdue_sessions(self, sweeper, chunk_store, governor) -> None:
        stale = UploadSessionFactory(expired=True, status=UploadSession.Status.UPLOADING)
        chunk_store.create_namespace(stale.id)
        chunk_store.write_chunk(stale.id, 0, b"abc")
        governor.reserve_slot(stale.id)
        fresh = UploadSessionFactory()

        result = sweeper.expire_stale_sessions()

        assert result == {"expired_count": 1, "errors": []}
        stale.refresh_from_db()
        fresh.refresh_from_db()
        assert stale.status == UploadSession.Status.EXPIRED
        assert fresh.status == UploadSession.Status.PENDING
        assert not chunk_store.namespace_path(stale.id).exists()
        assert not governor.holds_slot(stale.id)

    def test_other_process_slot_is_reclaimed_by_ttl(self, chunk_store) -> None:
        # The worker's governor cannot see slots held by a web process
        now = [1000.0]
        web_governor = UploadGovernor(max_active_sessions=1, slot_ttl_seconds=60, clock=lambda: now[0])
        worker_governor = UploadGovernor(max_active_sessions=1, slot_ttl_seconds=60)
        stale = UploadSessionFactory(expired=True)
        web_governor.reserve_slot(stale.id)

        result = ExpirySweeper(chunk_store, worker_governor).expire_stale_sessions()

        assert result["expired_count"] == 1
        assert web_governor.holds_slot(stale.id)

        now[0] += 61
        assert not web_governor.holds_slot(stale.id)
        web_governor.reserve_slot(uuid.uuid4())

    @pytest.mark.parametrize(
        "status",
        [
            UploadSession.Status.MERGING,
            UploadSession.Status.COMPLETED,
            UploadSession.Status.FAILED,
        ],
    )
    def test_leaves_other_states_alone(self, sweeper, status) -> None:
        session = UploadSessionFactory(expired=True, status=status)

        assert sweeper.expire_stale_sessions()["expired_count"] == 0
        session.refresh_from_db()
        assert session.status == status

    def test_sessions_expire_as_time_passes(self, sweeper) -> None:
        session = UploadSessionFactory()

        assert sweeper.expire_stale_sessions()["expired_count"] == 0
        with freeze_time(timezone.now() + timedelta(hours=25)):
            assert sweeper.expire_stale_sessions()["expired_count"] == 1

        session.refresh_from_db()
        assert session.status == UploadSession.Status.EXPIRED

    def test_error_on_one_session_is_collected(self, sweeper, chunk_store) -> None:
        UploadSessionFactory(expired=True)
        UploadSessionFactory(expired=True)

        with patch.object(chunk_store, "delete_namespace", side_effect=[OSError("disk gone"), True]):
            result = sweeper.expire_stale_sessions()

        assert result["expired_count"] == 1
        assert len(result["errors"]) == 1
        assert "disk gone" in result["errors"][0]


class TestCleanupOrphanedNamespaces:
    """Tests for ExpirySweeper.cleanup_orphaned_namespaces()."""

    def test_removes_old_directory_without_session(self, sweeper, chunk_store) -> None:
        orphan_id = uuid.uuid4()
        path = chunk_store.create_namespace(orphan_id)
        backdate(path)

        result = sweeper.cleanup_orphaned_namespaces()

        assert result == {"removed_count": 1, "errors": []}
        assert not path.exists()

    def test_recent_directory_without_session_is_kept(self, sweeper, chunk_store) -> None:
        path = chunk_store.create_namespace(uuid.uuid4())

        assert sweeper.cleanup_orphaned_namespaces()["removed_count"] == 0
        assert path.exists()

    def test_terminal_session_directory_removed(self, sweeper, chunk_store) -> None:
        session = UploadSessionFactory(status=UploadSession.Status.FAILED)
        path = chunk_store.create_namespace(session.id)

        assert sweeper.cleanup_orphaned_namespaces()["removed_count"] == 1
        assert not path.exists()

    def test_live_session_directory_kept(self, sweeper, chunk_store) -> None:
        session = UploadSessionFactory(status=UploadSession.Status.UPLOADING)
        path = chunk_store.create_namespace(session.id)
        backdate(path)

        assert sweeper.cleanup_orphaned_namespaces()["removed_count"] == 0
        assert path.exists()

    def test_foreign_directories_skipped(self, sweeper, chunk_store) -> None:
        foreign = chunk_store.base_dir / "not-a-session"
        foreign.mkdir(parents=True)
        backdate(foreign)

        assert sweeper.cleanup_orphaned_namespaces()["removed_count"] == 0
        assert foreign.exists()

    def test_missing_base_dir(self, sweeper) -> None:
        assert sweeper.cleanup_orphaned_namespaces() == {"removed_count": 0, "errors": []}


class TestPurgeExpiredSessions:
    """Tests for ExpirySweeper.purge_expired_sessions()."""

    def test_deletes_only_old_expired_records(self, sweeper) -> None:
        with freeze_time(timezone.now() - timedelta(days=10)):
            old = UploadSessionFactory(status=UploadSession.Status.EXPIRED)
            old_failed = UploadSessionFactory(status=UploadSession.Status.FAILED)
        recent = UploadSessionFactory(status=UploadSession.Status.EXPIRED)

        result = sweeper.purge_expired_sessions(retention_days=7)

        assert result == {"deleted_count": 1}
        assert not UploadSession.objects.filter(id=old.id).exists()
        assert UploadSession.objects.filter(id=old_failed.id).exists()
        assert UploadSession.objects.filter(id=recent.id).exists()


class TestRunOnce:
    """Tests for ExpirySweeper.run_once()."""

    def test_reports_every_sweep(self, sweeper) -> None:
        UploadSessionFactory(expired=True)

        result = sweeper.run_once()

        assert result == {"expired_count": 1, "removed_count": 0, "errors": []}


class TestTasks:
    """Tests for the Celery tasks wired through settings."""

    @pytest.fixture(autouse=True)
    def _storage_settings(self, settings, tmp_path):
        settings.MEDIA_ROOT = str(tmp_path / "media")
        settings.CHUNKED_UPLOAD_TEMP_DIR = str(tmp_path / "chunks")
        settings.CHUNKED_UPLOAD_ORPHAN_GRACE_SECONDS = 0
        settings.CHUNKED_UPLOAD_EXPIRED_RETENTION_DAYS = 3

    def test_sweep_task(self) -> None:
        session = UploadSessionFactory(expired=True)

        result = sweep_upload_sessions()

        assert result["expired_count"] == 1
        session.refresh_from_db()
        assert session.status == UploadSession.Status.EXPIRED

    def test_purge_task_uses_retention_setting(self) -> None:
        with freeze_time(timezone.now() - timedelta(days=4)):
            UploadSessionFactory(status=UploadSession.Status.EXPIRED)

        assert purge_expired_upload_sessions() == {"deleted_count": 1}

    def test_beat_schedules_installed(self) -> None:
        sweep = PeriodicTask.objects.get(name="Uploads: Sweep Upload Sessions")
        purge = PeriodicTask.objects.get(name="Uploads: Purge Expired Upload Sessions")

        assert sweep.task == "uploads.tasks.sweep_upload_sessions"
        assert sweep.interval.every == 60
        assert purge.task == "uploads.tasks.purge_expired_upload_sessions"
        assert purge.crontab.hour == "3"

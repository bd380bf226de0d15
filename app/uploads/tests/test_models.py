"""
Tests for the UploadSession model.

Covers chunk bookkeeping, progress rounding, client status mapping and
the django-fsm lifecycle.
"""

from __future__ import annotations

from datetime import timedelta

import pytest
from django.utils import timezone
from django_fsm import TransitionNotAllowed

from uploads.models import DedupEntry, UploadSession
from uploads.tests.factories import DedupEntryFactory, UploadSessionFactory

pytestmark = pytest.mark.django_db


class TestChunkBookkeeping:
    """Tests for total_chunks, record_chunk() and get_missing_chunks()."""

    @pytest.mark.parametrize(
        "declared_size,chunk_size,expected",
        [
            (2560, 1024, 3),
            (2048, 1024, 2),
            (1, 5 * 1024 * 1024, 1),
            (15 * 1024 * 1024, 5 * 1024 * 1024, 3),
        ],
    )
    def test_compute_total_chunks(self, declared_size, chunk_size, expected) -> None:
        assert UploadSession.compute_total_chunks(declared_size, chunk_size) == expected

    def test_record_chunk_keeps_sorted_set(self) -> None:
        session = UploadSessionFactory()

        assert session.record_chunk(2) is True
        assert session.record_chunk(0) is True
        assert session.record_chunk(2) is False

        assert session.received_chunks == [0, 2]

    def test_record_chunk_persists_after_save(self) -> None:
        session = UploadSessionFactory()
        session.record_chunk(1)
        session.save()

        session.refresh_from_db()
        assert session.received_chunks == [1]

    def test_missing_chunks(self) -> None:
        session = UploadSessionFactory(received_chunks=[0, 2])

        assert session.get_missing_chunks() == [1]
        assert not session.all_chunks_received


class TestProgress:
    """Tests for progress_percent rounding and client_status."""

    @pytest.mark.parametrize(
        "received,total,expected",
        [
            ([], 3, 0),
            ([0], 3, 33),
            ([0, 1], 3, 67),
            ([0, 1, 2], 3, 100),
            ([0], 8, 13),  # 12.5 rounds half up
            ([0], 2, 50),
        ],
    )
    def test_progress_percent(self, received, total, expected) -> None:
        session = UploadSessionFactory.build(received_chunks=received, total_chunks=total)
        assert session.progress_percent == expected

    @pytest.mark.parametrize(
        "status,expected",
        [
            (UploadSession.Status.PENDING, "pending"),
            (UploadSession.Status.UPLOADING, "uploading"),
            (UploadSession.Status.MERGING, "uploading"),
            (UploadSession.Status.COMPLETED, "completed"),
            (UploadSession.Status.FAILED, "failed"),
            (UploadSession.Status.EXPIRED, "failed"),
        ],
    )
    def test_client_status(self, status, expected) -> None:
        session = UploadSessionFactory.build(status=status)
        assert session.client_status == expected

    def test_is_expired(self) -> None:
        assert UploadSessionFactory(expired=True).is_expired
        assert not UploadSessionFactory().is_expired


class TestStateTransitions:
    """Tests for the django-fsm lifecycle."""

    def test_happy_path(self) -> None:
        session = UploadSessionFactory()

        session.start_uploading()
        for index in range(session.total_chunks):
            session.record_chunk(index)
        session.begin_merge()
        session.complete("artifacts/video/x.mp4", "artifact-1")
        session.save()

        session.refresh_from_db()
        assert session.status == UploadSession.Status.COMPLETED
        assert session.final_locator == "artifacts/video/x.mp4"
        assert session.linked_artifact_id == "artifact-1"
        assert session.is_terminal

    def test_begin_merge_requires_all_chunks(self) -> None:
        session = UploadSessionFactory(status=UploadSession.Status.UPLOADING, received_chunks=[0, 1])

        with pytest.raises(TransitionNotAllowed):
            session.begin_merge()
        assert session.status == UploadSession.Status.UPLOADING

    def test_cannot_complete_without_merging(self) -> None:
        session = UploadSessionFactory(status=UploadSession.Status.UPLOADING)

        with pytest.raises(TransitionNotAllowed):
            session.complete("locator", "artifact")

    def test_fail_records_detail(self) -> None:
        session = UploadSessionFactory(status=UploadSession.Status.MERGING, received_chunks=[0, 1, 2])

        session.fail("Checksum mismatch")

        assert session.status == UploadSession.Status.FAILED
        assert session.error_detail == "Checksum mismatch"
        assert session.final_locator is None

    @pytest.mark.parametrize("status", [UploadSession.Status.PENDING, UploadSession.Status.UPLOADING])
    def test_cancel_and_expire_from_accepting_states(self, status) -> None:
        cancelled = UploadSessionFactory(status=status)
        expired = UploadSessionFactory(status=status)

        cancelled.cancel()
        expired.expire()

        assert cancelled.status == UploadSession.Status.FAILED
        assert cancelled.error_detail
        assert expired.status == UploadSession.Status.EXPIRED

    @pytest.mark.parametrize(
        "status",
        [
            UploadSession.Status.MERGING,
            UploadSession.Status.COMPLETED,
            UploadSession.Status.FAILED,
            UploadSession.Status.EXPIRED,
        ],
    )
    def test_expire_not_allowed_outside_accepting_states(self, status) -> None:
        session = UploadSessionFactory(status=status)

        with pytest.raises(TransitionNotAllowed):
            session.expire()
        with pytest.raises(TransitionNotAllowed):
            session.cancel()


class TestQuerySet:
    """Tests for UploadSessionQuerySet helpers."""

    def test_live_and_stale(self) -> None:
        live = UploadSessionFactory(status=UploadSession.Status.UPLOADING)
        stale = UploadSessionFactory(expired=True)
        UploadSessionFactory(status=UploadSession.Status.COMPLETED, expired=True)

        assert list(UploadSession.objects.live()) == [live]
        assert list(UploadSession.objects.stale()) == [stale]

    def test_stale_uses_given_time(self) -> None:
        session = UploadSessionFactory()

        later = timezone.now() + timedelta(hours=25)
        assert list(UploadSession.objects.stale(later)) == [session]


class TestDedupEntry:
    def test_lookup_by_digest(self) -> None:
        entry = DedupEntryFactory()

        assert DedupEntry.objects.filter(content_digest=entry.content_digest).count() == 1
        assert str(entry).startswith("DedupEntry(")

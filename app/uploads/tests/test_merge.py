"""
Tests for ChunkStreamReader and MergeEngine.
"""

from __future__ import annotations

import hashlib
import os
from unittest.mock import MagicMock, patch

import pytest

from uploads.exceptions import ChecksumMismatchError, StorageIOError
from uploads.models import Artifact, DedupEntry, UploadSession
from uploads.services.merge import ChunkStreamReader, MergeEngine

pytestmark = pytest.mark.django_db


def stored_files(blob_storage) -> list[str]:
    return [
        os.path.join(dirpath, name)
        for dirpath, _, names in os.walk(blob_storage.location)
        for name in names
    ]


class TestChunkStreamReader:
    def test_reads_chunks_in_order(self, merging_session, chunk_store, file_data) -> None:
        reader = ChunkStreamReader(
            chunk_store, merging_session.id, merging_session.total_chunks, hashlib.md5()
        )

        with reader:
            assert reader.read() == file_data

        assert reader.bytes_read == len(file_data)
        assert reader.hexdigest() == hashlib.md5(file_data).hexdigest()

    def test_opens_chunks_only_on_demand(self, merging_session, chunk_store) -> None:
        reader = ChunkStreamReader(
            chunk_store, merging_session.id, merging_session.total_chunks, hashlib.md5()
        )

        with patch.object(chunk_store, "open_chunk", wraps=chunk_store.open_chunk) as open_chunk:
            reader.read(100)
            assert open_chunk.call_count == 1
            # No read-ahead past the current chunk
            assert len(reader.read(2000)) == 924
            assert open_chunk.call_count == 1
            reader.read(10)
            assert open_chunk.call_count == 2
        reader.close()

    def test_not_seekable(self, merging_session, chunk_store) -> None:
        reader = ChunkStreamReader(chunk_store, merging_session.id, 3, hashlib.md5())

        assert reader.readable()
        assert not reader.seekable()

    def test_missing_chunk_raises(self, merging_session, chunk_store) -> None:
        chunk_store.chunk_path(merging_session.id, 1).unlink()
        reader = ChunkStreamReader(chunk_store, merging_session.id, 3, hashlib.md5())

        with pytest.raises(StorageIOError):
            reader.read()


class TestMergeEngine:
    def test_successful_merge(
        self,
        merge_engine: MergeEngine,
        merging_session: UploadSession,
        chunk_store,
        governor,
        blob_storage,
        file_data: bytes,
        file_digest: str,
    ) -> None:
        session = merge_engine.merge(merging_session)

        session.refresh_from_db()
        assert session.status == UploadSession.Status.COMPLETED
        assert session.final_locator == f"artifacts/video/{file_digest}.mp4"
        assert blob_storage.open(session.final_locator).read() == file_data

        artifact = Artifact.objects.get(id=session.linked_artifact_id)
        assert artifact.size == len(file_data)
        assert artifact.owner_id == session.owner_id
        assert artifact.metadata == {"title": "Sunset"}

        entry = DedupEntry.objects.get(content_digest=file_digest)
        assert entry.artifact_id == session.linked_artifact_id

        assert not chunk_store.namespace_path(session.id).exists()
        assert not governor.holds_slot(session.id)

    def test_checksum_mismatch(
        self,
        merge_engine: MergeEngine,
        merging_session: UploadSession,
        chunk_store,
        governor,
        blob_storage,
    ) -> None:
        merging_session.content_digest = hashlib.md5(b"something else").hexdigest()
        merging_session.save()

        with pytest.raises(ChecksumMismatchError):
            merge_engine.merge(merging_session)

        merging_session.refresh_from_db()
        assert merging_session.status == UploadSession.Status.FAILED
        assert "does not match" in merging_session.error_detail
        assert stored_files(blob_storage) == []
        assert not DedupEntry.objects.exists()
        assert not Artifact.objects.exists()
        assert not chunk_store.namespace_path(merging_session.id).exists()
        assert not governor.holds_slot(merging_session.id)

    def test_catalog_failure_rolls_back(
        self,
        chunk_store,
        blob_store,
        blob_storage,
        hasher,
        dedup_index,
        governor,
        merging_session: UploadSession,
    ) -> None:
        catalog = MagicMock()
        catalog.create_artifact.side_effect = RuntimeError("catalog down")
        engine = MergeEngine(
            chunk_store=chunk_store,
            blob_store=blob_store,
            hasher=hasher,
            dedup_index=dedup_index,
            catalog=catalog,
            governor=governor,
        )

        with pytest.raises(StorageIOError) as exc_info:
            engine.merge(merging_session)

        assert isinstance(exc_info.value.__cause__, RuntimeError)
        merging_session.refresh_from_db()
        assert merging_session.status == UploadSession.Status.FAILED
        assert "catalog down" in merging_session.error_detail
        assert stored_files(blob_storage) == []
        assert not DedupEntry.objects.exists()

    def test_dedup_insert_failure_rolls_back_catalog_record(
        self,
        merge_engine: MergeEngine,
        merging_session: UploadSession,
        dedup_index,
    ) -> None:
        with patch.object(dedup_index, "insert", side_effect=RuntimeError("db error")):
            with pytest.raises(StorageIOError):
                merge_engine.merge(merging_session)

        assert not Artifact.objects.exists()
        merging_session.refresh_from_db()
        assert merging_session.status == UploadSession.Status.FAILED

    def test_missing_chunk_fails_session(
        self,
        merge_engine: MergeEngine,
        merging_session: UploadSession,
        chunk_store,
    ) -> None:
        chunk_store.chunk_path(merging_session.id, 2).unlink()

        with pytest.raises(StorageIOError):
            merge_engine.merge(merging_session)

        merging_session.refresh_from_db()
        assert merging_session.status == UploadSession.Status.FAILED
        assert "Chunk 2" in merging_session.error_detail

"""
Ordered streaming merge of a session's chunks into one artifact.

The blob store pulls bytes from ChunkStreamReader, which opens chunk files
lazily in index order and hashes every byte on the way through. Nothing is
read from disk until the sink asks for more, so memory use is bounded by the
sink's read size regardless of file size.

Merge outcome:
    digest matches  -> artifact kept, catalog record + dedup entry +
                       COMPLETED committed in one transaction
    digest differs  -> artifact deleted, session FAILED, no dedup entry
    any other error -> artifact deleted, session FAILED, StorageIOError

In every case the chunk namespace is deleted and the governor slot is
released once the session is terminal.
"""

from __future__ import annotations

import io
import logging
import os
from typing import TYPE_CHECKING

from django.db import transaction

from uploads.exceptions import ChecksumMismatchError, StorageIOError
from uploads.models import UploadSession
from uploads.services.hashing import normalize_digest

if TYPE_CHECKING:
    from uploads.services.blob_store import BlobStore
    from uploads.services.catalog import ArtifactCatalog
    from uploads.services.chunk_store import ChunkStore
    from uploads.services.dedup_index import DedupIndex
    from uploads.services.governor import UploadGovernor
    from uploads.services.hashing import ContentHasher

logger = logging.getLogger(__name__)


class ChunkStreamReader(io.RawIOBase):
    """
    Read-only, non-seekable stream over chunks 0..total_chunks-1.

    Attributes:
        bytes_read: Bytes handed to the consumer so far
    """

    def __init__(self, chunk_store: ChunkStore, session_id, total_chunks: int, hash_obj):
        super().__init__()
        self.chunk_store = chunk_store
        self.session_id = session_id
        self.total_chunks = total_chunks
        self.bytes_read = 0
        self._hash = hash_obj
        self._next_index = 0
        self._current = None

    def readable(self) -> bool:
        return True

    def _open_next(self) -> bool:
        if self._next_index >= self.total_chunks:
            return False
        index = self._next_index
        if not self.chunk_store.has_chunk(self.session_id, index):
            raise StorageIOError(
                f"Chunk {index} is missing from storage",
                details={"session_id": str(self.session_id), "chunk_index": index},
            )
        self._current = self.chunk_store.open_chunk(self.session_id, index)
        self._next_index += 1
        return True

    def readinto(self, buffer) -> int:
        while True:
            if self._current is None and not self._open_next():
                return 0
            n = self._current.readinto(buffer)
            if n:
                self._hash.update(memoryview(buffer)[:n])
                self.bytes_read += n
                return n
            self._current.close()
            self._current = None

    def hexdigest(self) -> str:
        return self._hash.hexdigest()

    def close(self) -> None:
        if self._current is not None:
            self._current.close()
            self._current = None
        super().close()


class MergeEngine:
    """
    Assembles, verifies and publishes a session that is in MERGING.

    Callers are responsible for exclusivity: merge() must only run for a
    session that was moved to MERGING under the session row lock.
    """

    def __init__(
        self,
        chunk_store: ChunkStore,
        blob_store: BlobStore,
        hasher: ContentHasher,
        dedup_index: DedupIndex,
        catalog: ArtifactCatalog,
        governor: UploadGovernor,
    ):
        self.chunk_store = chunk_store
        self.blob_store = blob_store
        self.hasher = hasher
        self.dedup_index = dedup_index
        self.catalog = catalog
        self.governor = governor

    @staticmethod
    def artifact_name(session: UploadSession) -> str:
        """Content-addressed name: {category}/{digest}{ext}."""
        extension = os.path.splitext(session.filename)[1].lower()
        return f"{session.content_category}/{normalize_digest(session.content_digest)}{extension}"

    def merge(self, session: UploadSession) -> UploadSession:
        """
        Merge, verify and publish ``session``.

        Returns:
            The session in COMPLETED

        Raises:
            ChecksumMismatchError: Merged digest differs from the declared one
            StorageIOError: Chunk, blob store or catalog failure
        """
        expected = normalize_digest(session.content_digest)
        locator = None
        reader = ChunkStreamReader(
            self.chunk_store, session.id, session.total_chunks, self.hasher.new()
        )

        logger.info(
            f"Merging {session.total_chunks} chunks for session {session.id}",
            extra={"event_type": "merge.started", "session_id": str(session.id)},
        )

        try:
            with reader:
                locator = self.blob_store.put(reader, self.artifact_name(session))
            actual = reader.hexdigest()

            if actual != expected:
                raise ChecksumMismatchError(
                    "Merged content does not match the declared digest",
                    details={"expected_digest": expected, "actual_digest": actual},
                )

            with transaction.atomic():
                artifact_id = self.catalog.create_artifact(
                    locator=locator,
                    size=reader.bytes_read,
                    category=session.content_category,
                    owner_id=session.owner_id,
                    metadata=session.metadata,
                )
                self.dedup_index.insert(expected, locator, artifact_id)
                session.complete(locator, artifact_id)
                session.save()

        except ChecksumMismatchError as e:
            self._discard_artifact(locator)
            self._mark_failed(
                session,
                f"{e.message} (expected {expected}, got {e.details['actual_digest']})",
            )
            logger.warning(
                f"Checksum mismatch for session {session.id}",
                extra={"event_type": "merge.checksum_mismatch", "session_id": str(session.id)},
            )
            raise

        except Exception as e:
            self._discard_artifact(locator)
            self._mark_failed(session, f"Merge failed: {e}")
            logger.error(
                f"Merge failed for session {session.id}: {e}",
                extra={"event_type": "merge.failed", "session_id": str(session.id)},
                exc_info=True,
            )
            if isinstance(e, StorageIOError):
                raise
            raise StorageIOError(
                f"Merge failed: {e}",
                details={"session_id": str(session.id)},
            ) from e

        finally:
            self._release(session)

        logger.info(
            f"Merged session {session.id} into {locator}",
            extra={
                "event_type": "merge.completed",
                "session_id": str(session.id),
                "locator": locator,
                "size": reader.bytes_read,
            },
        )
        return session

    def _discard_artifact(self, locator: str | None) -> None:
        if locator is None:
            return
        try:
            self.blob_store.delete(locator)
        except Exception:
            logger.exception(
                f"Failed to delete artifact {locator} after failed merge",
                extra={"event_type": "merge.discard_failed", "locator": locator},
            )

    def _mark_failed(self, session: UploadSession, reason: str) -> None:
        # In-memory state may be ahead of the rolled back transaction
        session.refresh_from_db()
        if session.status != UploadSession.Status.MERGING:
            return
        session.fail(reason)
        session.save()

    def _release(self, session: UploadSession) -> None:
        try:
            self.chunk_store.delete_namespace(session.id)
        except StorageIOError:
            # Orphan sweep removes it later
            logger.exception(
                f"Failed to delete chunks for session {session.id}",
                extra={"event_type": "merge.cleanup_failed", "session_id": str(session.id)},
            )
        self.governor.release_slot(session.id)

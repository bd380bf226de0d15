"""
Temporary on-disk storage for uploaded chunks.

Layout:
    {base_dir}/{session_id}/chunk-{index}

Each session owns one namespace directory. Chunks are written to a temp
file in the same directory and moved into place with os.replace(), so a
reader never sees a partially written chunk and a rewrite of the same
index replaces the previous content in one step.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING

from uploads.exceptions import (
    ChunkParameterMismatchError,
    StorageIOError,
    UploadNotFoundError,
)

if TYPE_CHECKING:
    from collections.abc import Iterator
    from typing import BinaryIO

logger = logging.getLogger(__name__)

CHUNK_FILENAME = "chunk-{index}"


class ChunkStore:
    """
    Filesystem chunk store keyed by session id.

    Args:
        base_dir: Root directory for all chunk namespaces
        buffer_size: Copy size used when writing from a stream
    """

    def __init__(self, base_dir: str | os.PathLike, buffer_size: int = 64 * 1024):
        self.base_dir = Path(base_dir)
        self.buffer_size = buffer_size

    def namespace_path(self, session_id) -> Path:
        return self.base_dir / str(session_id)

    def chunk_path(self, session_id, chunk_index: int) -> Path:
        return self.namespace_path(session_id) / CHUNK_FILENAME.format(index=chunk_index)

    def create_namespace(self, session_id) -> Path:
        """Create the namespace directory for a session (idempotent)."""
        path = self.namespace_path(session_id)
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageIOError(
                f"Failed to create chunk directory: {e}",
                details={"session_id": str(session_id)},
            ) from e
        return path

    def write_chunk(
        self,
        session_id,
        chunk_index: int,
        payload: bytes | BinaryIO,
        hash_obj=None,
        expected_digest: str | None = None,
    ) -> int:
        """
        Persist one chunk, replacing any previous content for the index.

        Args:
            session_id: Owning session
            chunk_index: 0-based chunk index
            payload: Chunk bytes or a readable binary file object
            hash_obj: hashlib object fed with every byte written
            expected_digest: Reject the chunk unless hash_obj matches it;
                the previous content for the index is kept on rejection

        Returns:
            Number of bytes written

        Raises:
            UploadNotFoundError: The namespace does not exist (session gone)
            ChunkParameterMismatchError: Payload digest differs from expected_digest
            StorageIOError: The write failed
        """
        namespace = self.namespace_path(session_id)
        if not namespace.is_dir():
            raise UploadNotFoundError(
                "Upload session not found",
                details={"session_id": str(session_id)},
            )

        target = self.chunk_path(session_id, chunk_index)
        tmp_path = None
        try:
            fd, tmp_path = tempfile.mkstemp(dir=namespace, prefix=".tmp-", suffix=f"-{chunk_index}")
            written = 0
            with os.fdopen(fd, "wb") as out:
                if isinstance(payload, (bytes, bytearray, memoryview)):
                    blocks = [payload]
                else:
                    blocks = iter(lambda: payload.read(self.buffer_size), b"")
                for block in blocks:
                    out.write(block)
                    written += len(block)
                    if hash_obj is not None:
                        hash_obj.update(block)
            if expected_digest is not None and hash_obj.hexdigest() != expected_digest:
                raise ChunkParameterMismatchError(
                    f"Chunk {chunk_index} does not match its digest",
                    details={
                        "chunk_index": chunk_index,
                        "expected_digest": expected_digest,
                        "actual_digest": hash_obj.hexdigest(),
                    },
                )
            os.replace(tmp_path, target)
            tmp_path = None
        except FileNotFoundError as e:
            # Namespace removed underneath us (cancel or sweep)
            raise UploadNotFoundError(
                "Upload session not found",
                details={"session_id": str(session_id)},
            ) from e
        except OSError as e:
            raise StorageIOError(
                f"Failed to write chunk {chunk_index}: {e}",
                details={"session_id": str(session_id), "chunk_index": chunk_index},
            ) from e
        finally:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.remove(tmp_path)

        logger.debug(
            f"Wrote chunk {chunk_index} ({written} bytes) for session {session_id}",
            extra={
                "event_type": "chunk.write",
                "session_id": str(session_id),
                "chunk_index": chunk_index,
            },
        )
        return written

    def has_chunk(self, session_id, chunk_index: int) -> bool:
        return self.chunk_path(session_id, chunk_index).is_file()

    def open_chunk(self, session_id, chunk_index: int) -> BinaryIO:
        """Open a chunk for reading. Caller closes the handle."""
        try:
            return open(self.chunk_path(session_id, chunk_index), "rb")
        except OSError as e:
            raise StorageIOError(
                f"Failed to read chunk {chunk_index}: {e}",
                details={"session_id": str(session_id), "chunk_index": chunk_index},
            ) from e

    def delete_namespace(self, session_id) -> bool:
        """
        Remove a session's namespace and every chunk in it.

        Idempotent: returns False when there was nothing to delete.
        """
        path = self.namespace_path(session_id)
        if not path.exists():
            return False
        try:
            shutil.rmtree(path)
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageIOError(
                f"Failed to delete chunk directory: {e}",
                details={"session_id": str(session_id)},
            ) from e
        logger.debug(
            f"Deleted chunk directory for session {session_id}",
            extra={"event_type": "chunk.namespace_deleted", "session_id": str(session_id)},
        )
        return True

    def list_namespaces(self) -> Iterator[str]:
        """Names of all namespace directories currently on disk."""
        if not self.base_dir.is_dir():
            return
        for entry in os.scandir(self.base_dir):
            if entry.is_dir():
                yield entry.name

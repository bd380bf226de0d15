"""
Streaming content digests.

All digests are lowercase hex. The algorithm defaults to MD5 because that is
what upload clients compute before sending; any hashlib algorithm works.
"""

from __future__ import annotations

import hashlib
import os
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import BinaryIO

    from django.core.cache.backends.base import BaseCache


def normalize_digest(digest: str | None) -> str:
    """Lowercase and strip a caller-supplied hex digest."""
    return (digest or "").strip().lower()


class ContentHasher:
    """
    Compute digests over streams and files without loading them in memory.

    Args:
        algorithm: Any name accepted by hashlib.new()
        buffer_size: Read size used when hashing streams
        cache: Optional Django cache memoizing file digests by (path, mtime)
    """

    def __init__(
        self,
        algorithm: str = "md5",
        buffer_size: int = 64 * 1024,
        cache: BaseCache | None = None,
    ):
        # Fail fast on unknown algorithms
        hashlib.new(algorithm)
        self.algorithm = algorithm
        self.buffer_size = buffer_size
        self.cache = cache

    def new(self):
        """Fresh incremental hash object."""
        return hashlib.new(self.algorithm)

    def digest_bytes(self, data: bytes) -> str:
        h = self.new()
        h.update(data)
        return h.hexdigest()

    def digest_stream(self, stream: BinaryIO) -> str:
        """Hash a binary stream from its current position to EOF."""
        h = self.new()
        while True:
            block = stream.read(self.buffer_size)
            if not block:
                break
            h.update(block)
        return h.hexdigest()

    def _cache_key(self, path: str, mtime_ns: int) -> str:
        # Paths may be long or contain spaces; keep keys backend-safe
        path_hash = hashlib.sha1(path.encode("utf-8")).hexdigest()
        return f"upload_digest:{self.algorithm}:{path_hash}:{mtime_ns}"

    def digest_file(self, path: str | os.PathLike) -> str:
        """
        Hash a file on disk.

        With a cache configured, the result is memoized under the path and
        its modification time, so a rewritten file is hashed again.
        """
        path = os.fspath(path)
        key = None
        if self.cache is not None:
            key = self._cache_key(path, os.stat(path).st_mtime_ns)
            cached = self.cache.get(key)
            if cached is not None:
                return cached

        with open(path, "rb") as fh:
            digest = self.digest_stream(fh)

        if key is not None:
            self.cache.set(key, digest)
        return digest

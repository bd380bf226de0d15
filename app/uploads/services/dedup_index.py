"""
Content-addressed dedup index backed by the DedupEntry table.

A hit means "these bytes are already stored": the engine skips chunk I/O
entirely and links the caller to the existing artifact (instant upload).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from uploads.models import DedupEntry
from uploads.services.hashing import normalize_digest

if TYPE_CHECKING:
    from uploads.services.blob_store import BlobStore
    from uploads.services.hashing import ContentHasher

logger = logging.getLogger(__name__)


class DedupIndex:
    """
    Lookup and insert of verified digests.

    Args:
        blob_store: Used to confirm an indexed artifact still exists
        hasher: Used when verify_content re-hashes an artifact
        verify_content: Re-hash the stored artifact on lookup when the
            blob store exposes a local path
    """

    def __init__(
        self,
        blob_store: BlobStore,
        hasher: ContentHasher | None = None,
        verify_content: bool = False,
    ):
        self.blob_store = blob_store
        self.hasher = hasher
        self.verify_content = verify_content

    def lookup(self, digest: str) -> DedupEntry | None:
        """
        Return the entry for ``digest`` if its artifact is still usable.

        A stale entry (artifact gone or content changed) is a miss; it is
        left in place and overwritten by the next verified merge.
        """
        digest = normalize_digest(digest)
        entry = DedupEntry.objects.filter(content_digest=digest).first()
        if entry is None:
            return None

        if not self.blob_store.exists(entry.artifact_locator):
            logger.warning(
                f"Dedup entry {digest} points at missing artifact {entry.artifact_locator}",
                extra={"event_type": "dedup.stale_entry", "content_digest": digest},
            )
            return None

        if self.verify_content and self.hasher is not None:
            path = self.blob_store.local_path(entry.artifact_locator)
            if path is not None and self.hasher.digest_file(path) != digest:
                logger.warning(
                    f"Dedup entry {digest} content no longer matches its digest",
                    extra={"event_type": "dedup.content_mismatch", "content_digest": digest},
                )
                return None

        return entry

    def insert(self, digest: str, locator: str, artifact_id) -> DedupEntry:
        """Record a verified digest. Idempotent; last writer wins."""
        entry, created = DedupEntry.objects.update_or_create(
            content_digest=normalize_digest(digest),
            defaults={"artifact_locator": locator, "artifact_id": str(artifact_id)},
        )
        logger.info(
            f"{'Indexed' if created else 'Re-indexed'} digest {entry.content_digest}",
            extra={"event_type": "dedup.insert", "content_digest": entry.content_digest},
        )
        return entry

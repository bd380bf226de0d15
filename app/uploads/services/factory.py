"""
Factory functions wiring the upload engine from Django settings.

Provides the single entry points application code uses, mirroring how the
rest of the project picks service backends from settings.

Usage:
    from uploads.services import get_chunked_upload_service, get_expiry_sweeper

    service = get_chunked_upload_service()
    sweeper = get_expiry_sweeper()
"""

from __future__ import annotations

import os
from functools import lru_cache

from django.conf import settings
from django.core.cache import caches
from django.utils.module_loading import import_string

from uploads.services.blob_store import DjangoStorageBlobStore
from uploads.services.chunk_store import ChunkStore
from uploads.services.dedup_index import DedupIndex
from uploads.services.governor import DIGEST_CACHE_ALIAS, UploadGovernor
from uploads.services.hashing import ContentHasher
from uploads.services.merge import MergeEngine
from uploads.services.session_manager import DEFAULT_CHUNK_SIZE, ChunkedUploadService
from uploads.services.sweeper import ExpirySweeper


def _setting(name: str, default):
    return getattr(settings, name, default)


@lru_cache(maxsize=1)
def get_upload_governor() -> UploadGovernor:
    """
    Process-wide governor.

    Cached so every service built in this process shares slots, locks and
    the digest cache alias. Tests build their own governor instead.
    """
    return UploadGovernor(
        max_active_sessions=_setting("CHUNKED_UPLOAD_MAX_ACTIVE_SESSIONS", 5),
        slot_ttl_seconds=_setting("CHUNKED_UPLOAD_EXPIRY_HOURS", 24) * 3600,
        digest_cache=caches[DIGEST_CACHE_ALIAS],
    )


def get_chunk_store() -> ChunkStore:
    temp_dir = _setting("CHUNKED_UPLOAD_TEMP_DIR", None) or os.path.join(
        settings.MEDIA_ROOT, "chunks"
    )
    return ChunkStore(temp_dir, buffer_size=_setting("CHUNKED_UPLOAD_MERGE_BUFFER_SIZE", 64 * 1024))


def get_chunked_upload_service() -> ChunkedUploadService:
    """
    Build the chunked upload service from settings.

    Returns:
        ChunkedUploadService using Django's default storage as blob store
        and the catalog class named by CHUNKED_UPLOAD_CATALOG
    """
    governor = get_upload_governor()
    chunk_store = get_chunk_store()
    blob_store = DjangoStorageBlobStore(prefix=_setting("CHUNKED_UPLOAD_ARTIFACT_PREFIX", "artifacts"))
    hasher = ContentHasher(
        algorithm=_setting("CHUNKED_UPLOAD_DIGEST_ALGORITHM", "md5"),
        buffer_size=_setting("CHUNKED_UPLOAD_MERGE_BUFFER_SIZE", 64 * 1024),
        cache=governor.digest_cache,
    )
    dedup_index = DedupIndex(
        blob_store,
        hasher=hasher,
        verify_content=_setting("CHUNKED_UPLOAD_VERIFY_DEDUP_CONTENT", False),
    )
    catalog = import_string(
        _setting("CHUNKED_UPLOAD_CATALOG", "uploads.services.catalog.ModelArtifactCatalog")
    )()

    return ChunkedUploadService(
        chunk_store=chunk_store,
        hasher=hasher,
        dedup_index=dedup_index,
        governor=governor,
        merge_engine=MergeEngine(
            chunk_store=chunk_store,
            blob_store=blob_store,
            hasher=hasher,
            dedup_index=dedup_index,
            catalog=catalog,
            governor=governor,
        ),
        chunk_size=_setting("CHUNKED_UPLOAD_CHUNK_SIZE", DEFAULT_CHUNK_SIZE),
        expiry_hours=_setting("CHUNKED_UPLOAD_EXPIRY_HOURS", 24),
    )


def get_expiry_sweeper() -> ExpirySweeper:
    return ExpirySweeper(
        chunk_store=get_chunk_store(),
        governor=get_upload_governor(),
        orphan_grace_seconds=_setting("CHUNKED_UPLOAD_ORPHAN_GRACE_SECONDS", 3600),
    )

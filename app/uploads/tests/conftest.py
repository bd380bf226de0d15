"""
Test fixtures for the upload engine.

Provides fixtures for:
- Engine components wired to tmp_path (chunk store, blob store, governor)
- A fully wired ChunkedUploadService
- File payloads and their digests
- Helpers to upload chunks and stage sessions ready to merge
"""

from __future__ import annotations

import hashlib
import uuid
from pathlib import Path
from typing import TYPE_CHECKING

import pytest
from django.core.cache.backends.locmem import LocMemCache
from django.core.files.storage import FileSystemStorage

from uploads.models import UploadSession
from uploads.services.blob_store import DjangoStorageBlobStore
from uploads.services.catalog import ModelArtifactCatalog
from uploads.services.chunk_store import ChunkStore
from uploads.services.dedup_index import DedupIndex
from uploads.services.factory import get_upload_governor
from uploads.services.governor import UploadGovernor
from uploads.services.hashing import ContentHasher
from uploads.services.merge import MergeEngine
from uploads.services.session_manager import ChunkedUploadService
from uploads.tests.factories import UploadSessionFactory

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

CHUNK_SIZE = 1024
OWNER_ID = "user-1"


def split_chunks(data: bytes, chunk_size: int = CHUNK_SIZE) -> list[bytes]:
    return [data[i : i + chunk_size] for i in range(0, len(data), chunk_size)]


def md5(data: bytes) -> str:
    return hashlib.md5(data).hexdigest()


# =============================================================================
# Payload Fixtures
# =============================================================================


@pytest.fixture
def file_data() -> bytes:
    """2560 bytes: three 1KB chunks, the last one partial."""
    return bytes(range(256)) * 10


@pytest.fixture
def file_digest(file_data: bytes) -> str:
    return md5(file_data)


# =============================================================================
# Component Fixtures
# =============================================================================


@pytest.fixture
def chunk_store(tmp_path: Path) -> ChunkStore:
    return ChunkStore(tmp_path / "chunks")


@pytest.fixture
def blob_storage(tmp_path: Path) -> FileSystemStorage:
    return FileSystemStorage(location=str(tmp_path / "blobs"))


@pytest.fixture
def blob_store(blob_storage: FileSystemStorage) -> DjangoStorageBlobStore:
    return DjangoStorageBlobStore(storage=blob_storage, prefix="artifacts")


@pytest.fixture
def digest_cache() -> Iterator[LocMemCache]:
    """Private digest cache so memoized digests never leak between tests."""
    cache = LocMemCache(f"test-digests-{uuid.uuid4()}", {"TIMEOUT": 300, "OPTIONS": {"MAX_ENTRIES": 100}})
    yield cache
    cache.clear()


@pytest.fixture
def governor(digest_cache: LocMemCache) -> UploadGovernor:
    return UploadGovernor(max_active_sessions=5, slot_ttl_seconds=24 * 3600, digest_cache=digest_cache)


@pytest.fixture
def hasher(governor: UploadGovernor) -> ContentHasher:
    return ContentHasher(algorithm="md5", buffer_size=512, cache=governor.digest_cache)


@pytest.fixture
def dedup_index(blob_store: DjangoStorageBlobStore, hasher: ContentHasher) -> DedupIndex:
    return DedupIndex(blob_store, hasher=hasher)


@pytest.fixture
def catalog() -> ModelArtifactCatalog:
    return ModelArtifactCatalog()


@pytest.fixture
def merge_engine(
    chunk_store: ChunkStore,
    blob_store: DjangoStorageBlobStore,
    hasher: ContentHasher,
    dedup_index: DedupIndex,
    catalog: ModelArtifactCatalog,
    governor: UploadGovernor,
) -> MergeEngine:
    return MergeEngine(
        chunk_store=chunk_store,
        blob_store=blob_store,
        hasher=hasher,
        dedup_index=dedup_index,
        catalog=catalog,
        governor=governor,
    )


@pytest.fixture
def upload_service(
    chunk_store: ChunkStore,
    hasher: ContentHasher,
    dedup_index: DedupIndex,
    governor: UploadGovernor,
    merge_engine: MergeEngine,
) -> ChunkedUploadService:
    return ChunkedUploadService(
        chunk_store=chunk_store,
        hasher=hasher,
        dedup_index=dedup_index,
        governor=governor,
        merge_engine=merge_engine,
        chunk_size=CHUNK_SIZE,
        expiry_hours=24,
    )


@pytest.fixture(autouse=True)
def _reset_process_governor():
    """The settings-wired governor is process wide; isolate it per test."""
    get_upload_governor.cache_clear()
    yield
    get_upload_governor.cache_clear()


# =============================================================================
# Helper Fixtures
# =============================================================================


@pytest.fixture
def start_upload(
    upload_service: ChunkedUploadService,
    file_data: bytes,
    file_digest: str,
) -> Callable[..., str]:
    """Initiate an upload of file_data and return the session id."""

    def _start(owner_id: str = OWNER_ID, data: bytes | None = None, **overrides) -> str:
        payload = file_data if data is None else data
        params = {
            "owner_id": owner_id,
            "filename": "clip.mp4",
            "declared_size": len(payload),
            "content_category": "video",
            "content_digest": file_digest if data is None else md5(payload),
        }
        params.update(overrides)
        result = upload_service.init_upload(**params)
        assert result.success, result.error
        return result.data.session_id

    return _start


@pytest.fixture
def send_chunks(upload_service: ChunkedUploadService, file_data: bytes) -> Callable[..., None]:
    """Register chunks of a payload (all of them unless indices are given)."""

    def _send(
        session_id: str,
        owner_id: str = OWNER_ID,
        data: bytes | None = None,
        indices: list[int] | None = None,
    ) -> None:
        chunks = split_chunks(file_data if data is None else data)
        for index in range(len(chunks)) if indices is None else indices:
            result = upload_service.register_chunk(
                session_id, owner_id, index, len(chunks), chunks[index]
            )
            assert result.success, result.error

    return _send


@pytest.fixture
def merging_session(
    db,
    chunk_store: ChunkStore,
    governor: UploadGovernor,
    file_data: bytes,
    file_digest: str,
) -> UploadSession:
    """Session in MERGING with every chunk of file_data on disk and a held slot."""
    chunks = split_chunks(file_data)
    session = UploadSessionFactory(
        owner_id=OWNER_ID,
        declared_size=len(file_data),
        content_digest=file_digest,
        received_chunks=list(range(len(chunks))),
        status=UploadSession.Status.MERGING,
        metadata={"title": "Sunset"},
    )
    chunk_store.create_namespace(session.id)
    for index, chunk in enumerate(chunks):
        chunk_store.write_chunk(session.id, index, chunk)
    governor.reserve_slot(session.id)
    return session

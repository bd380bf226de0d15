"""
Chunked upload service: the caller-facing surface of the upload engine.

Operations:
    init_upload         Dedup check, resume or create a session
    batch_init_upload   init_upload for several files, best effort
    register_chunk      Persist one chunk and record it on the session
    complete_upload     Exclusive merge trigger
    cancel_upload       Abandon a PENDING/UPLOADING session
    get_progress        Received chunks, percentage, coarse status

Every operation returns a ServiceResult. Component exceptions from
uploads.exceptions are converted with BaseService.handle_exception so the
caller sees error_code, details and the retry hint.

Usage:
    from uploads.services import get_chunked_upload_service

    service = get_chunked_upload_service()
    result = service.init_upload(
        owner_id="user-42",
        filename="clip.mp4",
        declared_size=12_582_912,
        content_category="video",
        content_digest="9e107d9d372bb6826bd81d3542a419d6",
    )
    if result.success and result.data.need_upload:
        for index in missing:
            service.register_chunk(result.data.session_id, "user-42", index, total, data)
        service.complete_upload(result.data.session_id, "user-42")
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import timedelta
from typing import TYPE_CHECKING

from django.core.exceptions import ValidationError as DjangoValidationError
from django.utils import timezone

from core.exceptions import BaseApplicationError
from core.services import BaseService, ServiceResult
from uploads.exceptions import (
    ChunkParameterMismatchError,
    IncompleteUploadError,
    MergeInProgressError,
    UploadNotFoundError,
)
from uploads.models import UploadSession
from uploads.services.hashing import normalize_digest

if TYPE_CHECKING:
    from typing import Any, BinaryIO

    from uploads.models import DedupEntry
    from uploads.services.chunk_store import ChunkStore
    from uploads.services.dedup_index import DedupIndex
    from uploads.services.governor import UploadGovernor
    from uploads.services.hashing import ContentHasher
    from uploads.services.merge import MergeEngine

DEFAULT_CHUNK_SIZE = 5 * 1024 * 1024


# =============================================================================
# Parameter & Result Types
# =============================================================================


@dataclass
class InitUploadParams:
    """
    Parameters for starting (or resuming) an upload.

    Attributes:
        owner_id: Opaque identifier of the requesting principal
        filename: Original filename
        declared_size: Total file size in bytes
        content_category: image or video
        content_digest: Digest of the whole file as computed by the client
        chunk_size: Chunk size in bytes
        metadata: Opaque payload forwarded to the catalog on completion
    """

    owner_id: str
    filename: str
    declared_size: int
    content_category: str
    content_digest: str
    chunk_size: int = DEFAULT_CHUNK_SIZE
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate parameters after initialization."""
        self.owner_id = str(self.owner_id or "")
        self.content_digest = normalize_digest(self.content_digest)
        if not self.owner_id:
            raise ValueError("owner_id is required")
        if not self.filename:
            raise ValueError("filename is required")
        if self.declared_size is None or self.declared_size <= 0:
            raise ValueError("declared_size must be positive")
        if self.chunk_size is None or self.chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if self.content_category not in UploadSession.ContentCategory.values:
            raise ValueError(
                f"content_category must be one of {UploadSession.ContentCategory.values}"
            )
        if not self.content_digest:
            raise ValueError("content_digest is required")
        if self.metadata is None:
            self.metadata = {}

    @property
    def total_chunks(self) -> int:
        return UploadSession.compute_total_chunks(self.declared_size, self.chunk_size)


@dataclass
class InitUploadResult:
    """
    Outcome of init_upload.

    need_upload=False means an identical file is already stored and
    artifact_id points at it (instant upload).
    """

    session_id: str
    need_upload: bool
    status: str
    chunk_size: int
    total_chunks: int
    received_chunks: list[int] = field(default_factory=list)
    artifact_id: str | None = None
    locator: str | None = None
    expires_at: Any = None


@dataclass
class ChunkReceipt:
    """Acknowledgement for one registered chunk."""

    session_id: str
    chunk_index: int
    received_count: int
    total_chunks: int


@dataclass
class UploadCompletion:
    """Result of a successful merge (or of re-completing a finished one)."""

    session_id: str
    artifact_id: str
    locator: str


@dataclass
class UploadProgress:
    """Progress snapshot for the caller."""

    session_id: str
    status: str
    received_chunks: list[int]
    total_chunks: int
    progress_percent: int
    error_detail: str | None = None
    artifact_id: str | None = None


# =============================================================================
# Service
# =============================================================================


class ChunkedUploadService(BaseService):
    """
    Session lifecycle over injected storage, dedup and governor components.

    Build it with uploads.services.get_chunked_upload_service() in
    application code; tests construct it directly with their own components.
    """

    def __init__(
        self,
        *,
        chunk_store: ChunkStore,
        hasher: ContentHasher,
        dedup_index: DedupIndex,
        governor: UploadGovernor,
        merge_engine: MergeEngine,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        expiry_hours: int = 24,
    ):
        self.chunk_store = chunk_store
        self.hasher = hasher
        self.dedup_index = dedup_index
        self.governor = governor
        self.merge_engine = merge_engine
        self.chunk_size = chunk_size
        self.expiry = timedelta(hours=expiry_hours)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _get_session(
        self,
        session_id,
        owner_id: str,
        for_update: bool = False,
    ) -> UploadSession:
        """Fetch a session owned by ``owner_id`` or raise UploadNotFoundError."""
        queryset = UploadSession.objects.all()
        if for_update:
            queryset = queryset.select_for_update()
        try:
            return queryset.get(id=session_id, owner_id=str(owner_id))
        except (UploadSession.DoesNotExist, DjangoValidationError, ValueError) as e:
            raise UploadNotFoundError(
                "Upload session not found",
                details={"session_id": str(session_id)},
            ) from e

    def _get_accepting_session(self, session_id, owner_id: str, for_update: bool = False) -> UploadSession:
        """Like _get_session but only PENDING/UPLOADING and not past expires_at."""
        session = self._get_session(session_id, owner_id, for_update=for_update)
        if session.status not in UploadSession.ACCEPTING_STATUSES or session.is_expired:
            raise UploadNotFoundError(
                "Upload session not found",
                details={"session_id": str(session_id)},
            )
        return session

    def _unexpected(self, exc: Exception, context: str) -> ServiceResult:
        self.get_logger().error(
            f"Unexpected error during {context}: {type(exc).__name__}: {exc}",
            exc_info=True,
        )
        return ServiceResult.failure(f"Unexpected error during {context}", error_code="UPLOAD_ERROR")

    @staticmethod
    def _completion(session: UploadSession) -> UploadCompletion:
        return UploadCompletion(
            session_id=str(session.id),
            artifact_id=session.linked_artifact_id,
            locator=session.final_locator,
        )

    # -------------------------------------------------------------------------
    # init_upload
    # -------------------------------------------------------------------------

    def init_upload(
        self,
        owner_id: str,
        filename: str,
        declared_size: int,
        content_category: str,
        content_digest: str,
        chunk_size: int | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> ServiceResult[InitUploadResult]:
        """
        Start an upload, resume an unfinished one, or link an identical file.

        Only creating a brand-new session consumes governor capacity; instant
        uploads and resumptions never fail with TOO_MANY_ACTIVE_SESSIONS.

        Returns:
            ServiceResult with InitUploadResult, or failure with
            INVALID_PARAMETERS / TOO_MANY_ACTIVE_SESSIONS / STORAGE_IO_ERROR
        """
        try:
            params = InitUploadParams(
                owner_id=owner_id,
                filename=filename,
                declared_size=declared_size,
                content_category=content_category,
                content_digest=content_digest,
                chunk_size=chunk_size or self.chunk_size,
                metadata=metadata or {},
            )
        except (ValueError, TypeError) as e:
            self.get_logger().warning(f"Invalid upload parameters: {e}")
            return ServiceResult.failure(str(e), error_code="INVALID_PARAMETERS")

        try:
            entry = self.dedup_index.lookup(params.content_digest)
            if entry is not None:
                return ServiceResult.success(self._instant_upload(params, entry))

            session = (
                UploadSession.objects.live()
                .filter(owner_id=params.owner_id, content_digest=params.content_digest)
                .order_by("-created_at")
                .first()
            )
            if session is not None:
                self.get_logger().info(
                    f"Resuming upload session {session.id}",
                    extra={"event_type": "upload.resumed", "session_id": str(session.id)},
                )
                return ServiceResult.success(
                    InitUploadResult(
                        session_id=str(session.id),
                        need_upload=True,
                        status=session.client_status,
                        chunk_size=session.chunk_size,
                        total_chunks=session.total_chunks,
                        received_chunks=list(session.received_chunks),
                        expires_at=session.expires_at,
                    )
                )

            session = self._create_session(params)
            return ServiceResult.success(
                InitUploadResult(
                    session_id=str(session.id),
                    need_upload=True,
                    status=session.client_status,
                    chunk_size=session.chunk_size,
                    total_chunks=session.total_chunks,
                    received_chunks=[],
                    expires_at=session.expires_at,
                )
            )

        except BaseApplicationError as e:
            return self.handle_exception(e, "Init upload")
        except Exception as e:
            return self._unexpected(e, "init upload")

    def _instant_upload(self, params: InitUploadParams, entry: DedupEntry) -> InitUploadResult:
        session = UploadSession.objects.filter(
            owner_id=params.owner_id,
            content_digest=params.content_digest,
            status=UploadSession.Status.COMPLETED,
            linked_artifact_id=entry.artifact_id,
        ).first()

        if session is None:
            total_chunks = params.total_chunks
            session = UploadSession.objects.create(
                owner_id=params.owner_id,
                filename=params.filename,
                declared_size=params.declared_size,
                content_category=params.content_category,
                content_digest=params.content_digest,
                chunk_size=params.chunk_size,
                total_chunks=total_chunks,
                received_chunks=list(range(total_chunks)),
                status=UploadSession.Status.COMPLETED,
                final_locator=entry.artifact_locator,
                linked_artifact_id=entry.artifact_id,
                metadata=params.metadata,
                expires_at=timezone.now() + self.expiry,
            )

        self.get_logger().info(
            f"Instant upload for digest {params.content_digest}",
            extra={
                "event_type": "upload.instant",
                "session_id": str(session.id),
                "artifact_id": entry.artifact_id,
            },
        )
        return InitUploadResult(
            session_id=str(session.id),
            need_upload=False,
            status=session.client_status,
            chunk_size=session.chunk_size,
            total_chunks=session.total_chunks,
            received_chunks=list(session.received_chunks),
            artifact_id=entry.artifact_id,
            locator=entry.artifact_locator,
            expires_at=session.expires_at,
        )

    def _create_session(self, params: InitUploadParams) -> UploadSession:
        session_id = uuid.uuid4()
        self.governor.reserve_slot(session_id, ttl_seconds=self.expiry.total_seconds())
        try:
            self.chunk_store.create_namespace(session_id)
            session = UploadSession.objects.create(
                id=session_id,
                owner_id=params.owner_id,
                filename=params.filename,
                declared_size=params.declared_size,
                content_category=params.content_category,
                content_digest=params.content_digest,
                chunk_size=params.chunk_size,
                total_chunks=params.total_chunks,
                metadata=params.metadata,
                expires_at=timezone.now() + self.expiry,
            )
        except Exception:
            self.chunk_store.delete_namespace(session_id)
            self.governor.release_slot(session_id)
            raise

        self.get_logger().info(
            f"Created upload session {session.id} ({session.total_chunks} chunks)",
            extra={
                "event_type": "upload.created",
                "session_id": str(session.id),
                "owner_id": session.owner_id,
            },
        )
        return session

    def batch_init_upload(
        self,
        owner_id: str,
        files: list[dict[str, Any]],
    ) -> list[ServiceResult[InitUploadResult]]:
        """
        init_upload for each file descriptor, in order.

        A failing item is logged and reported in its own result; it never
        aborts the rest of the batch.
        """
        results = []
        for position, item in enumerate(files):
            try:
                result = self.init_upload(owner_id=owner_id, **item)
            except TypeError as e:
                result = ServiceResult.failure(str(e), error_code="INVALID_PARAMETERS")
            if not result.success:
                self.get_logger().warning(
                    f"Batch item {position} failed: {result.error}",
                    extra={"event_type": "upload.batch_item_failed", "error_code": result.error_code},
                )
            results.append(result)
        return results

    # -------------------------------------------------------------------------
    # register_chunk
    # -------------------------------------------------------------------------

    def register_chunk(
        self,
        session_id,
        owner_id: str,
        chunk_index: int,
        total_chunks: int,
        payload: bytes | BinaryIO,
        chunk_digest: str | None = None,
    ) -> ServiceResult[ChunkReceipt]:
        """
        Persist one chunk and add its index to the session.

        Re-sending an index overwrites the stored chunk and is otherwise a
        no-op. The write happens under the session lock and the row lock,
        after the session is re-checked, so no chunk lands once the session
        has moved to MERGING or a terminal state.

        Args:
            chunk_digest: Optional digest of this chunk; a mismatch rejects
                the chunk without storing it
        """
        try:
            if total_chunks is None or chunk_index is None or not 0 <= chunk_index < total_chunks:
                raise ChunkParameterMismatchError(
                    "chunk_index must be between 0 and total_chunks - 1",
                    details={"chunk_index": chunk_index, "total_chunks": total_chunks},
                )

            expected = normalize_digest(chunk_digest) if chunk_digest else None

            with self.governor.session_lock(session_id):
                with self.atomic():
                    session = self._get_accepting_session(session_id, owner_id, for_update=True)
                    if total_chunks != session.total_chunks:
                        raise ChunkParameterMismatchError(
                            "total_chunks does not match the upload session",
                            details={
                                "expected_total_chunks": session.total_chunks,
                                "total_chunks": total_chunks,
                            },
                        )

                    self.chunk_store.write_chunk(
                        session.id,
                        chunk_index,
                        payload,
                        hash_obj=self.hasher.new() if expected else None,
                        expected_digest=expected,
                    )
                    session.record_chunk(chunk_index)
                    if session.status == UploadSession.Status.PENDING:
                        session.start_uploading()
                    session.save()

            return ServiceResult.success(
                ChunkReceipt(
                    session_id=str(session.id),
                    chunk_index=chunk_index,
                    received_count=session.received_count,
                    total_chunks=session.total_chunks,
                )
            )

        except BaseApplicationError as e:
            return self.handle_exception(e, f"Register chunk {chunk_index}")
        except Exception as e:
            return self._unexpected(e, "register chunk")

    # -------------------------------------------------------------------------
    # complete_upload
    # -------------------------------------------------------------------------

    def complete_upload(
        self,
        session_id,
        owner_id: str,
        declared_digest: str | None = None,
    ) -> ServiceResult[UploadCompletion]:
        """
        Merge the session's chunks into the final artifact.

        At most one merge runs per session: a concurrent call in this
        process fails fast on the governor's merge lock, and a call from any
        process that finds the session already MERGING gets
        MERGE_IN_PROGRESS. The move to MERGING takes the session lock, so it
        never interleaves with a chunk write. Calling it again after
        COMPLETED returns the existing result.

        Returns:
            ServiceResult with UploadCompletion, or failure with
            UPLOAD_NOT_FOUND / INCOMPLETE_UPLOAD (details.missing_chunks) /
            MERGE_IN_PROGRESS / CHECKSUM_MISMATCH / STORAGE_IO_ERROR
        """
        try:
            with self.governor.merge_lock(session_id):
                with self.governor.session_lock(session_id), self.atomic():
                    session = self._get_session(session_id, owner_id, for_update=True)

                    if declared_digest and normalize_digest(declared_digest) != session.content_digest:
                        raise UploadNotFoundError(
                            "Upload session not found",
                            details={"session_id": str(session_id)},
                        )

                    if session.status == UploadSession.Status.COMPLETED:
                        return ServiceResult.success(self._completion(session))

                    if session.status == UploadSession.Status.MERGING:
                        raise MergeInProgressError(
                            "A merge is already running for this upload",
                            details={"session_id": str(session.id)},
                        )

                    if session.status not in UploadSession.ACCEPTING_STATUSES or session.is_expired:
                        raise UploadNotFoundError(
                            "Upload session not found",
                            details={"session_id": str(session_id)},
                        )

                    missing = session.get_missing_chunks()
                    if missing:
                        raise IncompleteUploadError(
                            f"{len(missing)} of {session.total_chunks} chunks are missing",
                            details={
                                "missing_chunks": missing,
                                "received_count": session.received_count,
                                "total_chunks": session.total_chunks,
                            },
                        )

                    session.begin_merge()
                    session.save()

                # Session lock is released; chunk retries now see MERGING
                self.merge_engine.merge(session)

            return ServiceResult.success(self._completion(session))

        except BaseApplicationError as e:
            return self.handle_exception(e, "Complete upload")
        except Exception as e:
            return self._unexpected(e, "complete upload")

    # -------------------------------------------------------------------------
    # cancel_upload / get_progress
    # -------------------------------------------------------------------------

    def cancel_upload(self, session_id, owner_id: str) -> ServiceResult[None]:
        """Cancel a PENDING/UPLOADING session and drop its chunks."""
        try:
            with self.governor.session_lock(session_id):
                with self.atomic():
                    session = self._get_accepting_session(session_id, owner_id, for_update=True)
                    session.cancel()
                    session.save()

            self.chunk_store.delete_namespace(session.id)
            self.governor.release_slot(session.id)

            self.get_logger().info(
                f"Cancelled upload session {session.id}",
                extra={"event_type": "upload.cancelled", "session_id": str(session.id)},
            )
            return ServiceResult.success(None)

        except BaseApplicationError as e:
            return self.handle_exception(e, "Cancel upload")
        except Exception as e:
            return self._unexpected(e, "cancel upload")

    def get_progress(self, session_id, owner_id: str) -> ServiceResult[UploadProgress]:
        """Progress snapshot; expired sessions report status 'failed'."""
        try:
            session = self._get_session(session_id, owner_id)

            status = session.client_status
            if session.status in UploadSession.ACCEPTING_STATUSES and session.is_expired:
                status = "failed"

            return ServiceResult.success(
                UploadProgress(
                    session_id=str(session.id),
                    status=status,
                    received_chunks=list(session.received_chunks),
                    total_chunks=session.total_chunks,
                    progress_percent=session.progress_percent,
                    error_detail=session.error_detail,
                    artifact_id=session.linked_artifact_id,
                )
            )

        except BaseApplicationError as e:
            return self.handle_exception(e, "Get progress")
        except Exception as e:
            return self._unexpected(e, "get progress")

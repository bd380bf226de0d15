"""
Upload-specific exceptions for the chunked upload engine.

Exception Hierarchy:
    UploadNotFoundError (NotFoundError)
        Session missing, not owned by the caller, expired or no longer
        accepting the operation.
    ChunkParameterMismatchError (ValidationError)
        Chunk index/total inconsistent with the session, or chunk digest
        does not match the payload.
    IncompleteUploadError (ConflictError, retryable)
        Merge requested before every chunk is present.
    MergeInProgressError (ConflictError, retryable)
        Another merge for the same session is running.
    TooManyActiveSessionsError (RateLimitError, retryable)
        Governor capacity exhausted.
    StorageIOError (ExternalServiceError)
        Chunk store, blob store or catalog failure.
    ChecksumMismatchError (UploadError)
        Merged content digest differs from the declared digest.

Usage:
    from uploads.exceptions import MergeInProgressError

    raise MergeInProgressError(
        "A merge is already running for this upload",
        details={"session_id": str(session_id)},
    )

Note:
    Validation errors are surfaced immediately. ChecksumMismatchError and
    StorageIOError raised during a merge are terminal for the session.
    Retryable errors carry is_retryable=True; the engine never retries
    them itself.
"""

from __future__ import annotations

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    RateLimitError,
    ValidationError,
)


class UploadError(BaseApplicationError):
    """Base exception for upload engine failures without a more specific base."""

    default_error_code: str = "UPLOAD_ERROR"


class UploadNotFoundError(NotFoundError):
    """
    Raised when a session cannot be used by the caller.

    Covers sessions that do not exist, belong to another owner, have
    expired, or are in a state that no longer accepts the operation.
    The caller cannot tell these apart on purpose.
    """

    default_error_code: str = "UPLOAD_NOT_FOUND"


class ChunkParameterMismatchError(ValidationError):
    """
    Raised when chunk parameters disagree with the session.

    Example:
        raise ChunkParameterMismatchError(
            "totalChunks does not match the session",
            details={"expected_total_chunks": 3, "total_chunks": 4},
        )
    """

    default_error_code: str = "CHUNK_PARAMETER_MISMATCH"


class IncompleteUploadError(ConflictError):
    """Raised when completion is requested while chunks are still missing."""

    default_error_code: str = "INCOMPLETE_UPLOAD"
    is_retryable: bool = True


class MergeInProgressError(ConflictError):
    """
    Raised when a second merge is attempted for the same session.

    The caller should poll progress instead of retrying immediately.
    """

    default_error_code: str = "MERGE_IN_PROGRESS"
    is_retryable: bool = True


class ChecksumMismatchError(UploadError):
    """Raised when the merged artifact digest differs from the declared one."""

    default_error_code: str = "CHECKSUM_MISMATCH"


class TooManyActiveSessionsError(RateLimitError):
    """Raised when the governor has no free active-session slot."""

    default_error_code: str = "TOO_MANY_ACTIVE_SESSIONS"


class StorageIOError(ExternalServiceError):
    """Raised when the chunk store, blob store or catalog fails."""

    default_error_code: str = "STORAGE_IO_ERROR"


__all__ = [
    "UploadError",
    "UploadNotFoundError",
    "ChunkParameterMismatchError",
    "IncompleteUploadError",
    "MergeInProgressError",
    "ChecksumMismatchError",
    "TooManyActiveSessionsError",
    "StorageIOError",
]

"""
UploadSession model for tracking chunked/resumable uploads.

Provides:
- Chunk bookkeeping (which chunk indices have been persisted)
- A django-fsm state machine for the session lifecycle
- Session expiration support for the expiry sweeper

State Flow:
    PENDING -> UPLOADING -> MERGING -> COMPLETED
                                    -> FAILED
    PENDING/UPLOADING -> FAILED   (cancelled by owner)
    PENDING/UPLOADING -> EXPIRED  (expiry sweeper)

COMPLETED, FAILED and EXPIRED are terminal. Instant uploads create a
session directly in COMPLETED.
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from django_fsm import FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel


class UploadSessionQuerySet(models.QuerySet):
    """Query helpers for session lookups used by the engine and sweeper."""

    def accepting_chunks(self) -> UploadSessionQuerySet:
        """Sessions that may still receive chunks (PENDING or UPLOADING)."""
        return self.filter(status__in=UploadSession.ACCEPTING_STATUSES)

    def live(self) -> UploadSessionQuerySet:
        """Sessions that accept chunks and have not reached expires_at."""
        return self.accepting_chunks().filter(expires_at__gt=timezone.now())

    def stale(self, now=None) -> UploadSessionQuerySet:
        """Sessions that accept chunks but are past expires_at."""
        return self.accepting_chunks().filter(expires_at__lt=now or timezone.now())

    def terminal(self) -> UploadSessionQuerySet:
        return self.filter(status__in=UploadSession.TERMINAL_STATUSES)


class UploadSession(UUIDPrimaryKeyMixin, BaseModel):
    """
    One in-progress or terminal upload attempt for one logical file.

    Attributes:
        owner_id: Opaque identifier of the requesting principal
        filename: Original filename
        declared_size: Total file size in bytes declared by the caller
        content_category: image or video
        content_digest: Caller-declared content digest (lowercase hex)
        chunk_size: Size of each chunk in bytes
        total_chunks: ceil(declared_size / chunk_size)
        received_chunks: Sorted list of persisted chunk indices (0-based)
        status: Current FSM state
        final_locator: Blob store locator, set on COMPLETED
        linked_artifact_id: Catalog record id, set on COMPLETED
        error_detail: Human-readable failure reason, set on FAILED
        metadata: Caller payload forwarded verbatim to the catalog
        expires_at: Absolute expiration of a non-terminal session

    Usage:
        session.record_chunk(0)
        session.start_uploading()
        session.save()
    """

    # =========================================================================
    # Enums
    # =========================================================================

    class Status(models.TextChoices):
        """Upload session status."""

        PENDING = "pending", "Pending"
        UPLOADING = "uploading", "Uploading"
        MERGING = "merging", "Merging"
        COMPLETED = "completed", "Completed"
        FAILED = "failed", "Failed"
        EXPIRED = "expired", "Expired"

    class ContentCategory(models.TextChoices):
        """Kinds of media accepted by the engine."""

        IMAGE = "image", "Image"
        VIDEO = "video", "Video"

    ACCEPTING_STATUSES = (Status.PENDING, Status.UPLOADING)
    TERMINAL_STATUSES = (Status.COMPLETED, Status.FAILED, Status.EXPIRED)

    # Coarse client-facing status
    CLIENT_STATUS = {
        Status.PENDING: "pending",
        Status.UPLOADING: "uploading",
        Status.MERGING: "uploading",
        Status.COMPLETED: "completed",
        Status.FAILED: "failed",
        Status.EXPIRED: "failed",
    }

    # =========================================================================
    # Ownership & File Metadata
    # =========================================================================

    owner_id = models.CharField(
        max_length=255,
        help_text="Opaque identifier of the principal that owns the upload",
    )
    filename = models.CharField(
        max_length=255,
        help_text="Original filename of the file being uploaded",
    )
    declared_size = models.BigIntegerField(
        help_text="Declared total file size in bytes",
    )
    content_category = models.CharField(
        max_length=20,
        choices=ContentCategory.choices,
        help_text="Media category (image, video)",
    )
    content_digest = models.CharField(
        max_length=128,
        help_text="Declared content digest, verified after merge",
    )

    # =========================================================================
    # Chunk Bookkeeping
    # =========================================================================

    chunk_size = models.PositiveIntegerField(
        default=5 * 1024 * 1024,
        help_text="Size of each chunk in bytes",
    )
    total_chunks = models.PositiveIntegerField(
        help_text="Number of chunks the file is split into",
    )
    received_chunks = models.JSONField(
        default=list,
        blank=True,
        help_text="Sorted list of chunk indices persisted so far",
    )

    # =========================================================================
    # Status & Result
    # =========================================================================

    status = FSMField(
        default=Status.PENDING,
        choices=Status.choices,
        db_index=True,
        help_text="Current state of the upload session (managed by FSM)",
    )
    final_locator = models.CharField(
        max_length=500,
        null=True,
        blank=True,
        help_text="Blob store locator of the merged artifact",
    )
    linked_artifact_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Catalog record created from this upload",
    )
    error_detail = models.TextField(
        null=True,
        blank=True,
        help_text="Failure reason when the session is FAILED",
    )
    metadata = models.JSONField(
        default=dict,
        blank=True,
        help_text="Opaque caller payload passed through to the catalog",
    )
    expires_at = models.DateTimeField(
        help_text="When this session expires",
    )

    objects = UploadSessionQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(
                fields=["owner_id", "content_digest", "status"],
                name="idx_upload_owner_digest",
            ),
            models.Index(
                fields=["status", "expires_at"],
                name="idx_upload_status_expires",
            ),
        ]

    def __str__(self) -> str:
        return f"UploadSession({self.filename}, {self.status})"

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @staticmethod
    def compute_total_chunks(declared_size: int, chunk_size: int) -> int:
        """ceil(declared_size / chunk_size) without floating point."""
        if declared_size <= 0 or chunk_size <= 0:
            return 0
        return (declared_size + chunk_size - 1) // chunk_size

    @property
    def received_count(self) -> int:
        return len(self.received_chunks or [])

    @property
    def all_chunks_received(self) -> bool:
        return self.received_count == self.total_chunks

    @property
    def progress_percent(self) -> int:
        """
        Percentage of chunks received, rounded half up to an integer.

        2 of 3 chunks reports 67.
        """
        if self.total_chunks <= 0:
            return 0
        return (200 * self.received_count + self.total_chunks) // (2 * self.total_chunks)

    @property
    def client_status(self) -> str:
        return self.CLIENT_STATUS[self.status]

    @property
    def is_terminal(self) -> bool:
        return self.status in self.TERMINAL_STATUSES

    @property
    def is_expired(self) -> bool:
        """Check if this session has passed its expiration time."""
        return self.expires_at <= timezone.now()

    # =========================================================================
    # Helper Methods
    # =========================================================================

    def get_missing_chunks(self) -> list[int]:
        """Chunk indices that have not been persisted yet."""
        received = set(self.received_chunks or [])
        return [i for i in range(self.total_chunks) if i not in received]

    def record_chunk(self, chunk_index: int) -> bool:
        """
        Add a chunk index to received_chunks.

        Does NOT save. Returns True if the index was not recorded before.
        """
        received = set(self.received_chunks or [])
        if chunk_index in received:
            return False
        received.add(chunk_index)
        self.received_chunks = sorted(received)
        return True

    # =========================================================================
    # State Transitions (django-fsm)
    # =========================================================================

    @transition(
        field=status,
        source=Status.PENDING,
        target=Status.UPLOADING,
    )
    def start_uploading(self):
        """
        First chunk persisted.

        Transition: PENDING -> UPLOADING
        """

    @transition(
        field=status,
        source=Status.UPLOADING,
        target=Status.MERGING,
        conditions=[lambda session: session.all_chunks_received],
    )
    def begin_merge(self):
        """
        Enter the merge phase.

        Transition: UPLOADING -> MERGING

        Only allowed once every chunk index has been received.
        """

    @transition(
        field=status,
        source=Status.MERGING,
        target=Status.COMPLETED,
    )
    def complete(self, locator: str, artifact_id: str):
        """
        Merge verified and catalog record created.

        Transition: MERGING -> COMPLETED
        """
        self.final_locator = locator
        self.linked_artifact_id = str(artifact_id)
        self.error_detail = None

    @transition(
        field=status,
        source=Status.MERGING,
        target=Status.FAILED,
    )
    def fail(self, reason: str):
        """
        Merge failed (checksum mismatch or I/O error).

        Transition: MERGING -> FAILED
        """
        self.error_detail = reason
        self.final_locator = None
        self.linked_artifact_id = None

    @transition(
        field=status,
        source=[Status.PENDING, Status.UPLOADING],
        target=Status.FAILED,
    )
    def cancel(self, reason: str = "Upload cancelled by owner"):
        """
        Owner cancelled the upload before merge.

        Transition: PENDING/UPLOADING -> FAILED
        """
        self.error_detail = reason

    @transition(
        field=status,
        source=[Status.PENDING, Status.UPLOADING],
        target=Status.EXPIRED,
    )
    def expire(self):
        """
        Session passed expires_at without completing.

        Transition: PENDING/UPLOADING -> EXPIRED
        """

"""
Artifact model: the default catalog record for merged uploads.

Deployments that keep their media records elsewhere point
CHUNKED_UPLOAD_CATALOG at their own catalog and never touch this table.
"""

from __future__ import annotations

from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel


class Artifact(UUIDPrimaryKeyMixin, BaseModel):
    """A stored media object created from a completed upload."""

    locator = models.CharField(
        max_length=500,
        help_text="Blob store locator of the merged file",
    )
    size = models.BigIntegerField(
        help_text="Size of the merged file in bytes",
    )
    category = models.CharField(
        max_length=20,
        help_text="Media category (image, video)",
    )
    owner_id = models.CharField(
        max_length=255,
        db_index=True,
        help_text="Opaque identifier of the uploading principal",
    )
    metadata = models.JSONField(
        default=dict,
        blank=True,
        help_text="Caller payload forwarded from the upload session",
    )

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"Artifact({self.locator})"

"""
DedupEntry model: content digest to stored artifact mapping.

Entries are written only after a merge has been verified, so a lookup hit
always points at content whose digest was actually computed by the engine.
"""

from __future__ import annotations

from django.db import models

from core.models import BaseModel


class DedupEntry(BaseModel):
    """
    Maps a verified content digest to the artifact that holds the bytes.

    Attributes:
        content_digest: Lowercase hex digest of the artifact content
        artifact_locator: Blob store locator of the artifact
        artifact_id: Catalog record id of the artifact
    """

    content_digest = models.CharField(
        max_length=128,
        unique=True,
        help_text="Verified content digest (lowercase hex)",
    )
    artifact_locator = models.CharField(
        max_length=500,
        help_text="Blob store locator of the stored artifact",
    )
    artifact_id = models.CharField(
        max_length=255,
        help_text="Catalog record id of the stored artifact",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "dedup entry"
        verbose_name_plural = "dedup entries"

    def __str__(self) -> str:
        return f"DedupEntry({self.content_digest[:12]} -> {self.artifact_locator})"

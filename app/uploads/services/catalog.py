"""
Catalog collaborator: records an artifact once its upload is verified.

The engine depends only on the ArtifactCatalog protocol. The default
ModelArtifactCatalog writes uploads.Artifact rows; projects with their own
media table provide a class with the same create_artifact() signature and
point CHUNKED_UPLOAD_CATALOG at it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

from uploads.models import Artifact

if TYPE_CHECKING:
    from typing import Any


@runtime_checkable
class ArtifactCatalog(Protocol):
    """Creates the durable record for a merged artifact and returns its id."""

    def create_artifact(
        self,
        locator: str,
        size: int,
        category: str,
        owner_id: str,
        metadata: dict[str, Any],
    ) -> str: ...


class ModelArtifactCatalog:
    """ArtifactCatalog backed by the Artifact model."""

    def create_artifact(
        self,
        locator: str,
        size: int,
        category: str,
        owner_id: str,
        metadata: dict[str, Any],
    ) -> str:
        artifact = Artifact.objects.create(
            locator=locator,
            size=size,
            category=category,
            owner_id=owner_id,
            metadata=metadata or {},
        )
        return str(artifact.id)

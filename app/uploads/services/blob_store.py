"""
Blob store contract and the Django storage adapter.

The engine only needs put/delete/exists from the durable store. The adapter
below wraps any Django storage backend (FileSystemStorage locally, any
django-storages backend in deployment), so the backend is chosen through
Django's STORAGES setting rather than here.
"""

from __future__ import annotations

import logging
from typing import BinaryIO, Protocol, runtime_checkable

from django.core.files import File
from django.core.files.storage import Storage, default_storage

logger = logging.getLogger(__name__)


@runtime_checkable
class BlobStore(Protocol):
    """
    Protocol for durable artifact storage.

    put() must consume the stream incrementally; it is the pulling side of
    the merge pipeline.
    """

    def put(self, stream: BinaryIO, name: str) -> str: ...

    def delete(self, locator: str) -> bool: ...

    def exists(self, locator: str) -> bool: ...

    def local_path(self, locator: str) -> str | None: ...


class DjangoStorageBlobStore:
    """
    BlobStore backed by a Django Storage instance.

    Locators are storage names relative to the storage root, e.g.
    ``artifacts/video/9e107d9d372bb6826bd81d3542a419d6.mp4``.
    """

    def __init__(self, storage: Storage | None = None, prefix: str = "artifacts"):
        self.storage = storage or default_storage
        self.prefix = prefix.strip("/")

    def put(self, stream: BinaryIO, name: str) -> str:
        """
        Stream ``stream`` into storage under ``{prefix}/{name}``.

        Returns the locator actually used; the storage may alter the name
        when it is already taken.
        """
        if self.prefix:
            name = f"{self.prefix}/{name}"
        name = self.storage.get_available_name(name)
        try:
            locator = self.storage.save(name, File(stream, name=name))
        except Exception:
            # Drop whatever part of the file was written
            if self.storage.exists(name):
                self.storage.delete(name)
            raise
        logger.debug(
            f"Stored artifact {locator}",
            extra={"event_type": "blob.put", "locator": locator},
        )
        return locator

    def delete(self, locator: str) -> bool:
        if not self.storage.exists(locator):
            return False
        self.storage.delete(locator)
        logger.info(
            f"Deleted artifact {locator}",
            extra={"event_type": "blob.delete", "locator": locator},
        )
        return True

    def exists(self, locator: str) -> bool:
        return self.storage.exists(locator)

    def local_path(self, locator: str) -> str | None:
        """Filesystem path of the artifact, or None for remote backends."""
        try:
            return self.storage.path(locator)
        except NotImplementedError:
            return None

"""
Uploads app models.

Exports:
    UploadSession: Chunked upload session with FSM-managed status
    DedupEntry: Verified content digest to artifact mapping
    Artifact: Default catalog record for merged uploads
"""

from uploads.models.artifact import Artifact
from uploads.models.dedup_entry import DedupEntry
from uploads.models.upload_session import UploadSession

__all__ = [
    "Artifact",
    "DedupEntry",
    "UploadSession",
]

"""
Upload engine services.

Exports:
    get_chunked_upload_service: Settings-wired ChunkedUploadService
    get_expiry_sweeper: Settings-wired ExpirySweeper
    ChunkedUploadService: Caller-facing session operations
    MergeEngine: Ordered streaming merge and verification
    UploadGovernor: Slots, per-session locks and digest cache
"""

from uploads.services.factory import (
    get_chunked_upload_service,
    get_expiry_sweeper,
    get_upload_governor,
)
from uploads.services.governor import UploadGovernor
from uploads.services.merge import MergeEngine
from uploads.services.session_manager import ChunkedUploadService

__all__ = [
    "ChunkedUploadService",
    "MergeEngine",
    "UploadGovernor",
    "get_chunked_upload_service",
    "get_expiry_sweeper",
    "get_upload_governor",
]

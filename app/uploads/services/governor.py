"""
Process-local concurrency governor for the upload engine.

Holds everything the engine must coordinate inside one process:

1. **Active-session slots**
   - Bounded by CHUNKED_UPLOAD_MAX_ACTIVE_SESSIONS
   - Each slot carries its own expiry so slots of sessions that were
     expired or finished elsewhere do not leak

2. **Per-session locks**
   - session_lock(): blocking, serializes chunk writes and bookkeeping
   - merge_lock(): non-blocking, raises MergeInProgressError on contention
   - Locks live in a reference-counted registry and are dropped when
     no thread holds or waits on them

3. **Digest cache**
   - A Django cache (the ``upload_digests`` alias by default) memoizing
     file digests; TIMEOUT and MAX_ENTRIES on the alias bound it

Usage:
    governor = UploadGovernor(max_active_sessions=5, slot_ttl_seconds=86400)

    governor.reserve_slot(session.id)
    with governor.session_lock(session.id):
        ...
    with governor.merge_lock(session.id):
        ...
    governor.release_slot(session.id)

Note:
    Cross-process exclusivity of merges comes from the row-locked
    UPLOADING -> MERGING transition; the locks here only make same-process
    contention fail fast without touching the database.

    Slots are per process as well. The expiry sweeper runs in the Celery
    worker, so its release_slot() calls only free slots held by that
    worker; a web process gets its slots back on cancel, on merge, or when
    the slot expires after the session TTL.
"""

from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from typing import TYPE_CHECKING

from django.core.cache import caches

from uploads.exceptions import MergeInProgressError, TooManyActiveSessionsError

if TYPE_CHECKING:
    from collections.abc import Callable, Generator

    from django.core.cache.backends.base import BaseCache

DIGEST_CACHE_ALIAS = "upload_digests"


# =============================================================================
# Lock Registry
# =============================================================================


class _LockRegistry:
    """Per-key locks that exist only while someone uses them."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[str, list] = {}  # key -> [lock, refcount]

    def _checkout(self, key: str) -> threading.Lock:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = [threading.Lock(), 0]
                self._locks[key] = entry
            entry[1] += 1
            return entry[0]

    def _checkin(self, key: str) -> None:
        with self._guard:
            entry = self._locks[key]
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[key]

    @contextmanager
    def hold(self, key: str, blocking: bool = True) -> Generator[bool, None, None]:
        """Yield True when the lock was acquired, False otherwise."""
        lock = self._checkout(key)
        acquired = False
        try:
            acquired = lock.acquire(blocking)
            yield acquired
        finally:
            if acquired:
                lock.release()
            self._checkin(key)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


# =============================================================================
# Governor
# =============================================================================


class UploadGovernor:
    """
    Injectable holder of slot accounting, per-session locks and digest cache.

    Args:
        max_active_sessions: Maximum concurrently active sessions
        slot_ttl_seconds: How long a reserved slot lives without release
        digest_cache: Django cache memoizing file digests (defaults to the
            ``upload_digests`` alias)
        clock: Monotonic time source, injectable for tests
    """

    def __init__(
        self,
        max_active_sessions: int = 5,
        slot_ttl_seconds: float = 24 * 3600,
        digest_cache: BaseCache | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_active_sessions = max_active_sessions
        self.slot_ttl_seconds = slot_ttl_seconds
        self.digest_cache = digest_cache if digest_cache is not None else caches[DIGEST_CACHE_ALIAS]
        self._clock = clock
        self._slots: dict[str, float] = {}
        self._slots_lock = threading.Lock()
        self._session_locks = _LockRegistry()
        self._merge_locks = _LockRegistry()

    # -------------------------------------------------------------------------
    # Slots
    # -------------------------------------------------------------------------

    def _prune_slots(self, now: float) -> None:
        for key in [k for k, expires_at in self._slots.items() if expires_at <= now]:
            del self._slots[key]

    def reserve_slot(self, session_id, ttl_seconds: float | None = None) -> None:
        """
        Take an active-session slot for ``session_id``.

        Reserving an already held slot refreshes its expiry.

        Raises:
            TooManyActiveSessionsError: Capacity exhausted
        """
        key = str(session_id)
        now = self._clock()
        with self._slots_lock:
            self._prune_slots(now)
            if key not in self._slots and len(self._slots) >= self.max_active_sessions:
                raise TooManyActiveSessionsError(
                    "Too many active upload sessions, retry later",
                    details={
                        "max_active_sessions": self.max_active_sessions,
                        "active_sessions": len(self._slots),
                    },
                )
            self._slots[key] = now + (ttl_seconds if ttl_seconds is not None else self.slot_ttl_seconds)

    def release_slot(self, session_id) -> bool:
        """Free the slot. Returns False if it was not held."""
        with self._slots_lock:
            return self._slots.pop(str(session_id), None) is not None

    def holds_slot(self, session_id) -> bool:
        with self._slots_lock:
            self._prune_slots(self._clock())
            return str(session_id) in self._slots

    def active_count(self) -> int:
        with self._slots_lock:
            self._prune_slots(self._clock())
            return len(self._slots)

    # -------------------------------------------------------------------------
    # Locks
    # -------------------------------------------------------------------------

    @contextmanager
    def session_lock(self, session_id) -> Generator[None, None, None]:
        """Serialize chunk writes and state changes for one session (blocking)."""
        with self._session_locks.hold(str(session_id)):
            yield

    @contextmanager
    def merge_lock(self, session_id) -> Generator[None, None, None]:
        """
        Exclusive merge guard for one session.

        Raises:
            MergeInProgressError: Another thread is merging this session
        """
        with self._merge_locks.hold(str(session_id), blocking=False) as acquired:
            if not acquired:
                raise MergeInProgressError(
                    "A merge is already running for this upload",
                    details={"session_id": str(session_id)},
                )
            yield

    def lock_count(self) -> int:
        """Number of live lock objects (session and merge)."""
        return len(self._session_locks) + len(self._merge_locks)

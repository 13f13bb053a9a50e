# Copyright 2026 Firefly Software Solutions Inc.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
"""In-memory session store with TTL-based expiry."""

from __future__ import annotations

import asyncio
import copy
import logging
import time
import weakref
from collections.abc import Callable, Iterable, Mapping
from contextlib import AsyncExitStack
from dataclasses import dataclass
from typing import Any

from flysession.kernel.exceptions import ConcurrencyException
from flysession.session.ports.outbound import StorageRecord, WriteGuarantee

_logger = logging.getLogger(__name__)


@dataclass
class _Entry:
    data: dict[str, Any]
    revision: int
    expires_at: float


class InMemorySessionStore:
    """In-memory session store with TTL support and per-session asyncio locks.

    Suitable for development, testing, and single-process applications.
    Records are deep-copied on the way in and out so callers never share
    mutable state with the store.

    Args:
        guarantee: Concurrency guarantee advertised to sessions. Field-level
            ``update()`` is atomic regardless; the guarantee decides which
            write path sessions use.
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        guarantee: WriteGuarantee = WriteGuarantee.ATOMIC_PER_KEY,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.guarantee = guarantee
        self._clock = clock
        self._store: dict[str, _Entry] = {}
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def _lock(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[session_id] = lock
        return lock

    def _live(self, session_id: str) -> _Entry | None:
        """Return the entry if present and unexpired, evicting it otherwise. Caller holds the lock."""
        entry = self._store.get(session_id)
        if entry is None:
            return None
        if self._clock() > entry.expires_at:
            del self._store[session_id]
            _logger.debug("Evicted expired session %s…", session_id[:8])
            return None
        return entry

    async def load(self, session_id: str) -> StorageRecord | None:
        """Retrieve session data. Returns ``None`` if missing or expired."""
        async with self._lock(session_id):
            entry = self._live(session_id)
            if entry is None:
                return None
            return StorageRecord(
                session_id=session_id,
                data=copy.deepcopy(entry.data),
                revision=entry.revision,
                expires_at=entry.expires_at,
            )

    async def save(
        self,
        session_id: str,
        data: Mapping[str, Any],
        ttl: int,
        expected_revision: int | None = None,
        must_exist: bool = False,
    ) -> int:
        """Replace the whole record; compare-and-swap when *expected_revision* is given."""
        async with self._lock(session_id):
            entry = self._live(session_id)
            if must_exist and entry is None:
                raise ConcurrencyException(
                    "Session was destroyed concurrently",
                    code="SESSION_DESTROYED_CONCURRENTLY",
                )
            current = entry.revision if entry is not None else 0
            if expected_revision is not None and expected_revision != current:
                raise ConcurrencyException(
                    "Session was modified concurrently",
                    code="SESSION_REVISION_CONFLICT",
                    context={"expected": expected_revision, "actual": current},
                )
            revision = current + 1
            self._store[session_id] = _Entry(copy.deepcopy(dict(data)), revision, self._clock() + ttl)
            return revision

    async def update(
        self,
        session_id: str,
        changes: Mapping[str, Any],
        removed: Iterable[str],
        ttl: int,
    ) -> int | None:
        """Apply field-level changes atomically and refresh the TTL.

        Returns ``None`` without writing if the record is gone.
        """
        async with self._lock(session_id):
            entry = self._live(session_id)
            if entry is None:
                return None
            entry.data.update(copy.deepcopy(dict(changes)))
            for key in removed:
                entry.data.pop(key, None)
            entry.revision += 1
            entry.expires_at = self._clock() + ttl
            return entry.revision

    async def delete(self, session_id: str) -> bool:
        """Remove a session. Returns ``True`` if a live record existed."""
        async with self._lock(session_id):
            existed = self._live(session_id) is not None
            self._store.pop(session_id, None)
            return existed

    async def regenerate(
        self,
        old_id: str,
        new_id: str,
        ttl: int,
        delete_old: bool = True,
    ) -> StorageRecord | None:
        """Move the record at *old_id* to *new_id* under both session locks."""
        async with AsyncExitStack() as stack:
            # Locks are always taken in sorted ID order.
            for session_id in sorted({old_id, new_id}):
                await stack.enter_async_context(self._lock(session_id))

            entry = self._live(old_id)
            if entry is None:
                return None

            moved = _Entry(copy.deepcopy(entry.data), 1, self._clock() + ttl)
            self._store[new_id] = moved
            if delete_old:
                del self._store[old_id]
            return StorageRecord(
                session_id=new_id,
                data=copy.deepcopy(moved.data),
                revision=moved.revision,
                expires_at=moved.expires_at,
            )

    async def exists(self, session_id: str) -> bool:
        """Check if a session exists and is not expired."""
        async with self._lock(session_id):
            return self._live(session_id) is not None

    async def purge_expired(self) -> int:
        """Eagerly remove expired sessions. Returns the number removed."""
        now = self._clock()
        expired = [sid for sid, entry in self._store.items() if now > entry.expires_at]
        count = 0
        for session_id in expired:
            async with self._lock(session_id):
                if self._live(session_id) is None:
                    count += 1
        if count:
            _logger.debug("Purged %d expired sessions", count)
        return count

    async def count(self) -> int:
        """Number of stored records, including ones not yet evicted."""
        return len(self._store)

    async def close(self) -> None:
        self._store.clear()

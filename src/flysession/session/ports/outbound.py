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
"""Session store protocol."""

from __future__ import annotations

import enum
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable


class WriteGuarantee(enum.Enum):
    """Concurrency guarantee a store offers to writers sharing a session ID.

    ``ATOMIC_PER_KEY``: each written key is applied atomically on the backend;
        concurrent writers touching distinct keys never lose each other's updates.
    ``VERSIONED``: whole-record writes are compare-and-swap on a revision
        stamp; a stale writer gets :class:`ConcurrencyException`.
    ``LAST_WRITER_WINS``: whole-record writes replace the stored record
        unconditionally; a concurrent writer's keys may be lost.
    """

    ATOMIC_PER_KEY = "atomic"
    VERSIONED = "versioned"
    LAST_WRITER_WINS = "last_writer_wins"


@dataclass(frozen=True)
class StorageRecord:
    """One persisted session.

    Attributes:
        session_id: Identifier the record is stored under.
        data: Deserialized session data.
        revision: Monotonic write counter used for optimistic versioning.
        expires_at: Backend clock timestamp after which the record is
            logically absent, or ``None`` if unknown.
    """

    session_id: str
    data: dict[str, Any] = field(default_factory=dict)
    revision: int = 0
    expires_at: float | None = None


@runtime_checkable
class SessionStore(Protocol):
    """Abstract session persistence interface.

    All session backends (in-memory, Redis, etc.) must implement this protocol.
    Every write refreshes the record TTL (sliding expiration). Writes that
    must not create a record (``update``, ``save`` with *must_exist*) refuse
    a missing one: ``update`` returns ``None`` and ``save`` raises
    :class:`ConcurrencyException`.
    """

    guarantee: WriteGuarantee

    async def load(self, session_id: str) -> StorageRecord | None: ...

    async def save(
        self,
        session_id: str,
        data: Mapping[str, Any],
        ttl: int,
        expected_revision: int | None = None,
        must_exist: bool = False,
    ) -> int: ...

    async def update(
        self,
        session_id: str,
        changes: Mapping[str, Any],
        removed: Iterable[str],
        ttl: int,
    ) -> int | None: ...

    async def delete(self, session_id: str) -> bool: ...

    async def regenerate(
        self,
        old_id: str,
        new_id: str,
        ttl: int,
        delete_old: bool = True,
    ) -> StorageRecord | None: ...

    async def exists(self, session_id: str) -> bool: ...

    async def close(self) -> None: ...

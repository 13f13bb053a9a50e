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
"""Redis-backed session store."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Awaitable, Callable, Iterable, Mapping
from typing import Any, TypeVar, cast

from redis.exceptions import RedisError, WatchError

from flysession.kernel.exceptions import BackendUnavailableException, ConcurrencyException
from flysession.session.ports.outbound import StorageRecord, WriteGuarantee

_logger = logging.getLogger(__name__)

_KEY_PREFIX = "flysession:session:"
_REVISION_FIELD = "__revision"
_DEFAULT_TIMEOUT = 2.0
_MAX_WATCH_RETRIES = 5

T = TypeVar("T")


def _text(value: bytes | str) -> str:
    return value.decode() if isinstance(value, bytes) else value


class RedisSessionStore:
    """Session store backed by ``redis.asyncio``.

    Each session is one Redis hash at ``<prefix><session_id>``. Every field
    holds one JSON-serialized value, so single-key writes are field-level
    (``HSET``/``HDEL``) and never rewrite keys owned by a concurrent request.
    A reserved ``__revision`` field is incremented on every write and backs
    compare-and-swap saves.

    Every operation is bounded by *timeout* seconds; timeouts and Redis/network
    faults surface as :class:`BackendUnavailableException`.
    """

    def __init__(
        self,
        client: Any,
        prefix: str = _KEY_PREFIX,
        timeout: float = _DEFAULT_TIMEOUT,
        guarantee: WriteGuarantee = WriteGuarantee.ATOMIC_PER_KEY,
    ) -> None:
        self._client = client
        self._prefix = prefix
        self._timeout = timeout
        self.guarantee = guarantee

    def _key(self, session_id: str) -> str:
        return f"{self._prefix}{session_id}"

    async def _call(self, operation: str, session_id: str, fn: Callable[[], Awaitable[T]]) -> T:
        try:
            return await asyncio.wait_for(fn(), timeout=self._timeout)
        except (RedisError, OSError, asyncio.TimeoutError) as exc:
            raise BackendUnavailableException(
                f"Redis {operation} failed: {type(exc).__name__}",
                code="SESSION_BACKEND_UNAVAILABLE",
                context={"operation": operation, "session": session_id[:8]},
            ) from exc

    def _decode(self, session_id: str, raw: Mapping[Any, Any]) -> tuple[dict[str, Any], int]:
        data: dict[str, Any] = {}
        revision = 0
        for field, value in raw.items():
            name = _text(field)
            if name == _REVISION_FIELD:
                revision = self._revision(session_id, value)
                continue
            try:
                data[name] = json.loads(value)
            except (json.JSONDecodeError, TypeError):
                _logger.warning("Failed to deserialize field '%s' of session %s…", name, session_id[:8])
        return data, revision

    @staticmethod
    def _revision(session_id: str, value: Any) -> int:
        if value is None:
            return 0
        try:
            return int(_text(value))
        except (ValueError, TypeError, UnicodeDecodeError):
            _logger.warning("Failed to deserialize field '%s' of session %s…", _REVISION_FIELD, session_id[:8])
            return 0

    @staticmethod
    def _encode(data: Mapping[str, Any]) -> dict[str, str]:
        return {key: json.dumps(value) for key, value in data.items()}

    async def load(self, session_id: str) -> StorageRecord | None:
        """Retrieve and deserialize session data."""
        key = self._key(session_id)

        async def _load() -> tuple[Any, Any]:
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.hgetall(key)
                pipe.ttl(key)
                raw, ttl = await pipe.execute()
            return raw, ttl

        raw, ttl = await self._call("load", session_id, _load)
        if not raw:
            return None
        data, revision = self._decode(session_id, raw)
        expires_at = time.monotonic() + ttl if ttl is not None and ttl > 0 else None
        return StorageRecord(session_id=session_id, data=data, revision=revision, expires_at=expires_at)

    async def save(
        self,
        session_id: str,
        data: Mapping[str, Any],
        ttl: int,
        expected_revision: int | None = None,
        must_exist: bool = False,
    ) -> int:
        """Replace the whole record under WATCH; compare-and-swap when *expected_revision* is given."""
        key = self._key(session_id)
        encoded = self._encode(data)

        async def _save() -> int:
            async with self._client.pipeline(transaction=True) as pipe:
                for _ in range(_MAX_WATCH_RETRIES):
                    try:
                        await pipe.watch(key)
                        current = await pipe.hget(key, _REVISION_FIELD)
                        if must_exist and current is None:
                            raise ConcurrencyException(
                                "Session was destroyed concurrently",
                                code="SESSION_DESTROYED_CONCURRENTLY",
                            )
                        revision = self._revision(session_id, current)
                        if expected_revision is not None and expected_revision != revision:
                            raise ConcurrencyException(
                                "Session was modified concurrently",
                                code="SESSION_REVISION_CONFLICT",
                                context={"expected": expected_revision, "actual": revision},
                            )
                        pipe.multi()
                        pipe.delete(key)
                        pipe.hset(key, mapping={**encoded, _REVISION_FIELD: str(revision + 1)})
                        pipe.expire(key, ttl)
                        await pipe.execute()
                        return revision + 1
                    except WatchError:
                        if expected_revision is not None:
                            raise ConcurrencyException(
                                "Session was modified concurrently",
                                code="SESSION_REVISION_CONFLICT",
                                context={"expected": expected_revision},
                            ) from None
                        continue
                    finally:
                        await pipe.reset()
            raise ConcurrencyException("Session save kept losing the race", code="SESSION_WRITE_CONTENDED")

        return await self._call("save", session_id, _save)

    async def update(
        self,
        session_id: str,
        changes: Mapping[str, Any],
        removed: Iterable[str],
        ttl: int,
    ) -> int | None:
        """Apply field-level changes in one MULTI/EXEC and refresh the TTL.

        The key is WATCHed so a concurrent delete is never undone by
        ``HSET``/``HINCRBY`` recreating the hash; a missing record returns
        ``None`` without writing.
        """
        key = self._key(session_id)
        encoded = self._encode(changes)
        removed = [name for name in removed if name not in encoded]

        async def _update() -> int | None:
            async with self._client.pipeline(transaction=True) as pipe:
                for _ in range(_MAX_WATCH_RETRIES):
                    try:
                        await pipe.watch(key)
                        if not await pipe.exists(key):
                            return None
                        pipe.multi()
                        if encoded:
                            pipe.hset(key, mapping=encoded)
                        if removed:
                            pipe.hdel(key, *removed)
                        pipe.hincrby(key, _REVISION_FIELD, 1)
                        pipe.expire(key, ttl)
                        results = await pipe.execute()
                        return int(results[-2])
                    except WatchError:
                        continue
                    finally:
                        await pipe.reset()
            raise ConcurrencyException("Session update kept losing the race", code="SESSION_WRITE_CONTENDED")

        return await self._call("update", session_id, _update)

    async def delete(self, session_id: str) -> bool:
        """Remove a session."""
        count = await self._call("delete", session_id, lambda: self._client.delete(self._key(session_id)))
        return cast(bool, count > 0)

    async def regenerate(
        self,
        old_id: str,
        new_id: str,
        ttl: int,
        delete_old: bool = True,
    ) -> StorageRecord | None:
        """Copy the record to *new_id* atomically with respect to concurrent writers and deletes.

        The old key is WATCHed; a concurrent write retries the copy with the
        fresh data, a concurrent delete makes this return ``None`` without
        creating the new record.
        """
        old_key = self._key(old_id)
        new_key = self._key(new_id)

        async def _regenerate() -> StorageRecord | None:
            async with self._client.pipeline(transaction=True) as pipe:
                for _ in range(_MAX_WATCH_RETRIES):
                    try:
                        await pipe.watch(old_key)
                        raw = await pipe.hgetall(old_key)
                        if not raw:
                            return None
                        data, _ = self._decode(new_id, raw)
                        pipe.multi()
                        pipe.delete(new_key)
                        pipe.hset(new_key, mapping={**self._encode(data), _REVISION_FIELD: "1"})
                        pipe.expire(new_key, ttl)
                        if delete_old:
                            pipe.delete(old_key)
                        await pipe.execute()
                        return StorageRecord(
                            session_id=new_id,
                            data=data,
                            revision=1,
                            expires_at=time.monotonic() + ttl,
                        )
                    except WatchError:
                        continue
                    finally:
                        await pipe.reset()
            raise ConcurrencyException("Session regeneration kept losing the race", code="SESSION_WRITE_CONTENDED")

        return await self._call("regenerate", old_id, _regenerate)

    async def exists(self, session_id: str) -> bool:
        """Check whether a session exists."""
        count = await self._call("exists", session_id, lambda: self._client.exists(self._key(session_id)))
        return cast(bool, count > 0)

    async def close(self) -> None:
        """Close the underlying Redis connection."""
        await self._client.aclose()

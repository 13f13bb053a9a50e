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
"""Session — request-scoped session state machine over a pluggable store."""

from __future__ import annotations

import enum
import logging
from collections.abc import Iterable, Iterator, Mapping
from typing import Any, NoReturn

from flysession.kernel.exceptions import (
    BackendUnavailableException,
    CannotDestroySessionException,
    CannotStartSessionException,
    ConcurrencyException,
    ReservedKeyException,
    SessionAlreadyStartedException,
    SessionKeyNotFoundException,
    SessionNotStartedException,
    ValidationException,
)
from flysession.observability.logging import short_id
from flysession.session.flash import FLASH_PREFIX, FlashStore
from flysession.session.ids import generate_session_id, is_valid_session_id
from flysession.session.ports.outbound import SessionStore, WriteGuarantee
from flysession.session.ports.transport import SessionTransport
from flysession.session.properties import CookieParams, SessionProperties, build_properties, validate_session_name

_logger = logging.getLogger(__name__)

RESERVED_PREFIX = "__"

_DEFAULT_NAME = "flysession"
_DEFAULT_TTL = 1800  # 30 minutes
_DESTROYED_CONCURRENTLY = "SESSION_DESTROYED_CONCURRENTLY"

_COOKIE_ALIASES = {
    "httponly": "http_only",
    "http-only": "http_only",
    "samesite": "same_site",
    "same-site": "same_site",
}


class SessionStatus(enum.Enum):
    NOT_STARTED = "not_started"
    ACTIVE = "active"
    DESTROYED = "destroyed"


def is_reserved_key(key: str) -> bool:
    return key.startswith(RESERVED_PREFIX)


class Session:
    """Server-side session for exactly one in-flight request.

    Lifecycle: ``NOT_STARTED --start()--> ACTIVE --destroy()--> DESTROYED``.
    A destroyed session can be started again, which allocates a fresh ID.

    Writes are write-through: ``set``/``remove``/``clear`` persist to the store
    before returning. Whether concurrent requests sharing the session ID can
    lose each other's writes is decided by the store's
    :class:`WriteGuarantee`.

    Reads on a session that is not active return the supplied default;
    writes raise :class:`SessionNotStartedException`.

    Keys starting with ``__`` are reserved for flash messages and security
    metadata and are rejected from application code.
    """

    def __init__(
        self,
        store: SessionStore,
        *,
        name: str = _DEFAULT_NAME,
        cookie_params: CookieParams | None = None,
        ttl: int = _DEFAULT_TTL,
        transport: SessionTransport | None = None,
        strict_mode: bool = True,
    ) -> None:
        self._store = store
        self._name = validate_session_name(name)
        self._cookie_params = cookie_params if cookie_params is not None else CookieParams()
        self._ttl = ttl
        self._transport = transport
        self._strict_mode = strict_mode

        self._status = SessionStatus.NOT_STARTED
        self._id: str | None = None
        self._data: dict[str, Any] = {}
        self._revision = 0
        self._is_new = False
        self._flash = FlashStore(self)

    @classmethod
    def from_properties(
        cls,
        store: SessionStore,
        properties: SessionProperties,
        transport: SessionTransport | None = None,
    ) -> Session:
        return cls(
            store,
            name=properties.name,
            cookie_params=properties.cookie,
            ttl=properties.ttl,
            transport=transport,
            strict_mode=properties.strict_mode,
        )

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def id(self) -> str | None:
        return self._id

    @property
    def name(self) -> str:
        return self._name

    @property
    def is_new(self) -> bool:
        """``True`` if the current ID was allocated by this instance."""
        return self._is_new

    @property
    def revision(self) -> int:
        return self._revision

    @property
    def ttl(self) -> int:
        return self._ttl

    @property
    def flash(self) -> FlashStore:
        return self._flash

    def is_started(self) -> bool:
        return self._status is SessionStatus.ACTIVE

    def get_id(self) -> str | None:
        return self._id

    def set_id(self, session_id: str) -> None:
        """Choose the ID to resume on the next ``start()``."""
        if self.is_started():
            raise SessionAlreadyStartedException("Cannot change the ID of an active session")
        if not is_valid_session_id(session_id):
            raise ValidationException("Malformed session ID", code="INVALID_SESSION_ID")
        self._id = session_id

    def get_name(self) -> str:
        return self._name

    def set_name(self, name: str) -> None:
        if self.is_started():
            raise SessionAlreadyStartedException("Cannot rename an active session")
        self._name = validate_session_name(name)

    def get_cookie_params(self) -> CookieParams:
        return self._cookie_params

    def set_cookie_params(self, **params: Any) -> None:
        """Merge *params* into the current cookie parameters."""
        merged = self._cookie_params.model_dump()
        merged.update({_COOKIE_ALIASES.get(key, key): value for key, value in params.items()})
        self._cookie_params = build_properties(CookieParams, merged)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> bool:
        """Resume the incoming session or allocate a new one. Idempotent while active."""
        if self._status is SessionStatus.ACTIVE:
            return True
        if self._transport is not None and self._transport.committed:
            raise CannotStartSessionException("response headers already sent")

        explicit = self._id is not None
        candidate = self._id
        if candidate is None and self._status is SessionStatus.NOT_STARTED and self._transport is not None:
            candidate = self._transport.load_incoming_session_id(self._name)
        if candidate is not None and not is_valid_session_id(candidate):
            _logger.debug("Ignoring malformed incoming session ID")
            candidate = None

        record = await self._store.load(candidate) if candidate is not None else None

        if record is not None:
            self._id = record.session_id
            self._data = record.data
            self._revision = record.revision
            self._is_new = False
        else:
            if candidate is None or (self._strict_mode and not explicit):
                candidate = generate_session_id()
            self._revision = await self._store.save(candidate, {}, self._ttl)
            self._id = candidate
            self._data = {}
            self._is_new = True

        self._status = SessionStatus.ACTIVE
        if self._is_new and self._transport is not None:
            self._transport.emit_session_id(self._name, self._id, self._cookie_params)
        _logger.debug("Started session %s… (new=%s)", short_id(self._id), self._is_new)
        return True

    async def destroy(self) -> bool:
        """Delete the backing record and clear all data. A no-op unless active."""
        if self._status is not SessionStatus.ACTIVE:
            return True
        assert self._id is not None
        try:
            await self._store.delete(self._id)
        except BackendUnavailableException as exc:
            raise CannotDestroySessionException(str(exc), context=exc.context) from exc
        _logger.debug("Destroyed session %s…", short_id(self._id))
        self._mark_destroyed()
        return True

    async def regenerate_id(self, delete_old: bool = True) -> str:
        """Move the session data to a fresh ID and return it.

        Raises:
            SessionNotStartedException: If the session is not active.
            ConcurrencyException: If a concurrent destroy removed the record
                first; this session is then destroyed as well.
        """
        self._require_active()
        assert self._id is not None
        old_id = self._id
        new_id = generate_session_id()

        record = await self._store.regenerate(old_id, new_id, self._ttl, delete_old)
        if record is None:
            self._mark_destroyed()
            raise ConcurrencyException(
                "Session was destroyed while its ID was being regenerated",
                code=_DESTROYED_CONCURRENTLY,
            )

        self._id = new_id
        self._data = record.data
        self._revision = record.revision
        self._is_new = True
        if self._transport is not None:
            self._transport.emit_session_id(self._name, new_id, self._cookie_params)
        _logger.debug("Regenerated session %s… -> %s…", short_id(old_id), short_id(new_id))
        return new_id

    def _mark_destroyed(self) -> None:
        self._status = SessionStatus.DESTROYED
        self._id = None
        self._data = {}
        self._revision = 0
        self._is_new = False
        if self._transport is not None:
            self._transport.emit_session_cleared(self._name, self._cookie_params)

    def _require_active(self) -> None:
        if self._status is not SessionStatus.ACTIVE:
            raise SessionNotStartedException()

    # ------------------------------------------------------------------
    # Data
    # ------------------------------------------------------------------

    def get(self, key: str, default: Any = None) -> Any:
        if not self.is_started():
            return default
        return self._data.get(key, default)

    def require(self, key: str) -> Any:
        """Return the value at *key*, raising if it is absent."""
        if not self.is_started() or key not in self._data:
            raise SessionKeyNotFoundException(key)
        return self._data[key]

    def has(self, key: str) -> bool:
        return self.is_started() and key in self._data

    def all(self) -> dict[str, Any]:
        """Return a copy of the application data, without reserved keys."""
        if not self.is_started():
            return {}
        return {key: value for key, value in self._data.items() if not is_reserved_key(key)}

    async def set(self, key: str, value: Any) -> None:
        self._check_user_key(key)
        await self._apply({key: value}, ())

    async def set_values(self, values: Mapping[str, Any]) -> None:
        """Set several keys in a single backend write."""
        for key in values:
            self._check_user_key(key)
        await self._apply(dict(values), ())

    async def remove(self, key: str) -> None:
        self._check_user_key(key)
        await self._apply({}, (key,))

    async def delete(self, key: str) -> None:
        """Alias for :meth:`remove`."""
        await self.remove(key)

    async def clear(self) -> None:
        """Remove all application data and flash messages; security metadata is kept."""
        self._require_active()
        removed = [key for key in self._data if not is_reserved_key(key) or key.startswith(FLASH_PREFIX)]
        await self._apply({}, removed)

    def __len__(self) -> int:
        return len(self.all())

    def __iter__(self) -> Iterator[str]:
        return iter(self.all())

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.has(key)

    # ------------------------------------------------------------------
    # Reserved namespace, used by the flash store and security metadata
    # ------------------------------------------------------------------

    def get_reserved(self, key: str, default: Any = None) -> Any:
        self._check_reserved_key(key)
        return self.get(key, default)

    def reserved_items(self, prefix: str) -> dict[str, Any]:
        """Return the reserved keys starting with *prefix* and their values."""
        self._check_reserved_key(prefix)
        if not self.is_started():
            return {}
        return {key: value for key, value in self._data.items() if key.startswith(prefix)}

    async def set_reserved_many(self, values: Mapping[str, Any]) -> None:
        for key in values:
            self._check_reserved_key(key)
        await self._apply(dict(values), ())

    async def remove_reserved(self, *keys: str) -> None:
        for key in keys:
            self._check_reserved_key(key)
        await self._apply({}, keys)

    @staticmethod
    def _check_user_key(key: str) -> None:
        if not isinstance(key, str):
            raise ValidationException(f"Session keys must be strings, got {type(key).__name__}")
        if is_reserved_key(key):
            raise ReservedKeyException(f"Session key '{key}' uses the reserved '{RESERVED_PREFIX}' prefix")

    @staticmethod
    def _check_reserved_key(key: str) -> None:
        if not is_reserved_key(key):
            raise ReservedKeyException(f"'{key}' is not a reserved session key")

    async def _apply(self, changes: dict[str, Any], removed: Iterable[str]) -> None:
        """Persist *changes* and *removed* keys, then mirror them locally."""
        self._require_active()
        assert self._id is not None
        removed = tuple(key for key in removed if key not in changes)
        if not changes and not removed:
            return

        guarantee = self._store.guarantee
        if guarantee is WriteGuarantee.ATOMIC_PER_KEY:
            revision = await self._store.update(self._id, changes, removed, self._ttl)
            if revision is None:
                self._lost_to_destroy()
            self._revision = revision
            self._data.update(changes)
            for key in removed:
                self._data.pop(key, None)
            return

        data = dict(self._data)
        data.update(changes)
        for key in removed:
            data.pop(key, None)
        expected = self._revision if guarantee is WriteGuarantee.VERSIONED else None
        try:
            self._revision = await self._store.save(
                self._id, data, self._ttl, expected_revision=expected, must_exist=True
            )
        except ConcurrencyException as exc:
            if exc.code == _DESTROYED_CONCURRENTLY:
                self._lost_to_destroy()
            raise
        self._data = data

    def _lost_to_destroy(self) -> NoReturn:
        """A concurrent request destroyed the record; follow it into DESTROYED."""
        _logger.debug("Session %s… was destroyed by a concurrent request", short_id(self._id))
        self._mark_destroyed()
        raise ConcurrencyException(
            "Session was destroyed by a concurrent request",
            code=_DESTROYED_CONCURRENTLY,
        )

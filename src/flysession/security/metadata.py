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
"""SecurityMetadata — typed view over the security keys stored in a session."""

from __future__ import annotations

from typing import Any

from flysession.kernel.exceptions import ConflictException
from flysession.security.csrf import generate_csrf_token, validate_csrf_token
from flysession.session.session import Session

CREATED_AT_KEY = "__created_at"
LAST_ACTIVITY_KEY = "__last_activity"
LAST_REGENERATED_KEY = "__last_regenerated"
BINDING_HASH_KEY = "__binding_hash"
CSRF_TOKEN_KEY = "__csrf_token"


def _as_float(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    return float(value)


class SecurityMetadata:
    """Reads and writes the security bookkeeping of one session.

    Invariants:
        - ``created_at`` is written once per session and never overwritten.
        - ``last_activity`` never moves backwards.
        - ``last_regenerated`` is only written by :meth:`mark_regenerated`.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    @property
    def created_at(self) -> float | None:
        return _as_float(self._session.get_reserved(CREATED_AT_KEY))

    @property
    def last_activity(self) -> float | None:
        return _as_float(self._session.get_reserved(LAST_ACTIVITY_KEY))

    @property
    def last_regenerated(self) -> float | None:
        return _as_float(self._session.get_reserved(LAST_REGENERATED_KEY))

    @property
    def binding_hash(self) -> str | None:
        value = self._session.get_reserved(BINDING_HASH_KEY)
        return value if isinstance(value, str) else None

    @property
    def csrf_token(self) -> str | None:
        value = self._session.get_reserved(CSRF_TOKEN_KEY)
        return value if isinstance(value, str) else None

    def is_initialized(self) -> bool:
        return self.created_at is not None

    def validate_csrf(self, presented: str | None) -> bool:
        return validate_csrf_token(self.csrf_token, presented)

    async def initialize(self, now: float, binding_hash: str | None) -> None:
        """Stamp a fresh session in one write."""
        if self.is_initialized():
            raise ConflictException("Security metadata is already initialized", code="SESSION_METADATA_INITIALIZED")
        values: dict[str, Any] = {
            CREATED_AT_KEY: now,
            LAST_ACTIVITY_KEY: now,
            LAST_REGENERATED_KEY: now,
            CSRF_TOKEN_KEY: generate_csrf_token(),
        }
        if binding_hash is not None:
            values[BINDING_HASH_KEY] = binding_hash
        await self._session.set_reserved_many(values)

    async def touch(self, now: float) -> None:
        previous = self.last_activity
        if previous is not None and now <= previous:
            return
        await self._session.set_reserved_many({LAST_ACTIVITY_KEY: now})

    async def mark_regenerated(self, now: float) -> None:
        values: dict[str, Any] = {LAST_REGENERATED_KEY: now}
        previous = self.last_activity
        if previous is None or now > previous:
            values[LAST_ACTIVITY_KEY] = now
        await self._session.set_reserved_many(values)

    async def rotate_csrf_token(self) -> str:
        token = generate_csrf_token()
        await self._session.set_reserved_many({CSRF_TOKEN_KEY: token})
        return token

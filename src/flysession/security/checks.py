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
"""Per-request session security checks.

Each check inspects one active session and either lets the request
:class:`Proceed` or asks the pipeline to :class:`Restart` the session.
Hijack and expiry signals are ordinary results, not exceptions; only
backend faults raise.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from flysession.security.binding import binding_matches, compute_binding_hash
from flysession.security.metadata import SecurityMetadata
from flysession.session.session import Session


class RestartReason(str, enum.Enum):
    IDENTITY_MISMATCH = "identity_mismatch"
    IDLE_TIMEOUT = "idle_timeout"


@dataclass(frozen=True)
class Proceed:
    regenerated: bool = False


@dataclass(frozen=True)
class Restart:
    reason: RestartReason


CheckResult = Proceed | Restart


@runtime_checkable
class SecurityCheck(Protocol):
    """One step of the security pipeline."""

    name: str

    async def evaluate(self, session: Session, binding_signal: str | None, now: float) -> CheckResult: ...


class IdentityBindingCheck:
    """Restart the session when the client signal no longer matches the bound hash."""

    name = "identity_binding"

    def __init__(self, secret: str | None = None) -> None:
        self._secret = secret

    async def evaluate(self, session: Session, binding_signal: str | None, now: float) -> CheckResult:
        stored = SecurityMetadata(session).binding_hash
        if stored is None or binding_matches(stored, binding_signal, self._secret):
            return Proceed()
        return Restart(RestartReason.IDENTITY_MISMATCH)


class IdleTimeoutCheck:
    """Restart the session once it has been idle for longer than *idle_timeout* seconds."""

    name = "idle_timeout"

    def __init__(self, idle_timeout: float) -> None:
        if idle_timeout <= 0:
            raise ValueError("idle_timeout must be positive")
        self._idle_timeout = idle_timeout

    async def evaluate(self, session: Session, binding_signal: str | None, now: float) -> CheckResult:
        last_activity = SecurityMetadata(session).last_activity
        if last_activity is not None and now - last_activity > self._idle_timeout:
            return Restart(RestartReason.IDLE_TIMEOUT)
        return Proceed()


class SessionInitializationCheck:
    """Stamp fresh sessions, record activity, and rotate the ID periodically.

    On first touch the session receives ``created_at``, ``last_activity``,
    ``last_regenerated``, a CSRF token and (if *bind_identity*) the identity
    binding hash. Afterwards each request refreshes ``last_activity`` and,
    once more than *regeneration_interval* seconds have passed since the last
    rotation, regenerates the session ID. ``None`` disables rotation.
    """

    name = "initialization"

    def __init__(
        self,
        regeneration_interval: float | None = None,
        *,
        bind_identity: bool = True,
        binding_secret: str | None = None,
        delete_old: bool = True,
    ) -> None:
        if regeneration_interval is not None and regeneration_interval <= 0:
            raise ValueError("regeneration_interval must be positive")
        self._interval = regeneration_interval
        self._bind_identity = bind_identity
        self._binding_secret = binding_secret
        self._delete_old = delete_old

    async def evaluate(self, session: Session, binding_signal: str | None, now: float) -> CheckResult:
        metadata = SecurityMetadata(session)

        if not metadata.is_initialized():
            binding_hash = compute_binding_hash(binding_signal, self._binding_secret) if self._bind_identity else None
            await metadata.initialize(now, binding_hash)
            return Proceed()

        last_regenerated = metadata.last_regenerated
        if self._interval is not None and (last_regenerated is None or now - last_regenerated > self._interval):
            await session.regenerate_id(delete_old=self._delete_old)
            await metadata.mark_regenerated(now)
            return Proceed(regenerated=True)

        await metadata.touch(now)
        return Proceed()

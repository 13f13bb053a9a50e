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
"""SecurityPipeline — ordered, configurable security checks run once per request."""

from __future__ import annotations

import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from flysession.kernel.exceptions import SessionNotStartedException
from flysession.observability.logging import get_logger, short_id
from flysession.security.checks import (
    IdentityBindingCheck,
    IdleTimeoutCheck,
    Restart,
    RestartReason,
    SecurityCheck,
    SessionInitializationCheck,
)
from flysession.session.properties import SessionProperties
from flysession.session.session import Session

logger = get_logger("flysession.security")


@dataclass(frozen=True)
class Continue:
    """The request continues with the same session (possibly under a rotated ID)."""

    regenerated: bool = False


@dataclass(frozen=True)
class RestartedSession:
    """The old session was destroyed and a fresh, empty one started in its place."""

    reason: RestartReason
    previous_id: str | None


PipelineResult = Continue | RestartedSession


class SecurityPipeline:
    """Runs security checks in order against one session.

    A check that returns :class:`Restart` makes the pipeline destroy the
    session, start a fresh one and carry on with the remaining checks, so
    later checks always see normalized state. Backend faults propagate to
    the caller unchanged.

    Args:
        checks: Checks to run, in order.
        auto_start: Start a not-yet-started session at pipeline entry instead
            of raising :class:`SessionNotStartedException`.
        clock: Wall-clock time source (seconds).
    """

    def __init__(
        self,
        checks: Sequence[SecurityCheck],
        *,
        auto_start: bool = False,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._checks = list(checks)
        self._auto_start = auto_start
        self._clock = clock

    @property
    def checks(self) -> list[SecurityCheck]:
        return list(self._checks)

    @classmethod
    def from_properties(
        cls,
        properties: SessionProperties,
        *,
        clock: Callable[[], float] = time.time,
    ) -> SecurityPipeline:
        """Compose the enabled checks in their canonical order."""
        checks: list[SecurityCheck] = []
        if properties.bind_identity:
            checks.append(IdentityBindingCheck(secret=properties.binding_secret))
        if properties.idle_timeout is not None:
            checks.append(IdleTimeoutCheck(properties.idle_timeout))
        checks.append(
            SessionInitializationCheck(
                properties.regeneration_interval,
                bind_identity=properties.bind_identity,
                binding_secret=properties.binding_secret,
            )
        )
        return cls(checks, auto_start=properties.auto_start, clock=clock)

    async def run(
        self,
        session: Session,
        *,
        binding_signal: str | None = None,
        now: float | None = None,
    ) -> PipelineResult:
        if not session.is_started():
            if not self._auto_start:
                raise SessionNotStartedException("Security checks require an active session")
            await session.start()

        now = self._clock() if now is None else now
        restarted: RestartedSession | None = None
        regenerated = False

        for check in self._checks:
            result = await check.evaluate(session, binding_signal, now)
            if isinstance(result, Restart):
                previous_id = session.id
                await session.destroy()
                await session.start()
                logger.warning(
                    "session_restarted",
                    check=check.name,
                    reason=result.reason.value,
                    previous=short_id(previous_id),
                    session=short_id(session.id),
                )
                if restarted is None:
                    restarted = RestartedSession(reason=result.reason, previous_id=previous_id)
            elif result.regenerated:
                regenerated = True
                logger.info("session_regenerated", check=check.name, session=short_id(session.id))

        if restarted is not None:
            return restarted
        return Continue(regenerated=regenerated)

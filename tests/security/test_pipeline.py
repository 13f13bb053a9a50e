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
"""Tests for the security pipeline and its checks."""

from __future__ import annotations

import pytest

from flysession.kernel.exceptions import SessionNotStartedException
from flysession.security.checks import (
    IdentityBindingCheck,
    IdleTimeoutCheck,
    Proceed,
    Restart,
    RestartReason,
    SecurityCheck,
    SessionInitializationCheck,
)
from flysession.security.metadata import SecurityMetadata
from flysession.security.pipeline import Continue, RestartedSession, SecurityPipeline
from flysession.session.adapters.memory import InMemorySessionStore
from flysession.session.properties import SessionProperties
from flysession.session.session import Session

T0 = 1_000_000.0


async def _started(store: InMemorySessionStore | None = None) -> Session:
    session = Session(store or InMemorySessionStore())
    await session.start()
    return session


def _pipeline(idle_timeout: int | None = 1800, interval: int | None = 300, bind: bool = True) -> SecurityPipeline:
    props = SessionProperties(idle_timeout=idle_timeout, regeneration_interval=interval, bind_identity=bind)
    return SecurityPipeline.from_properties(props)


class TestComposition:
    def test_default_composition(self):
        pipeline = _pipeline()
        assert [check.name for check in pipeline.checks] == ["identity_binding", "idle_timeout", "initialization"]
        assert all(isinstance(check, SecurityCheck) for check in pipeline.checks)

    def test_disabled_checks_are_omitted(self):
        pipeline = _pipeline(idle_timeout=None, bind=False)
        assert [check.name for check in pipeline.checks] == ["initialization"]

    def test_invalid_idle_timeout(self):
        with pytest.raises(ValueError):
            IdleTimeoutCheck(0)

    def test_invalid_regeneration_interval(self):
        with pytest.raises(ValueError):
            SessionInitializationCheck(-1)


class TestInitialization:
    @pytest.mark.asyncio
    async def test_first_run_stamps_metadata(self):
        session = await _started()
        result = await _pipeline().run(session, binding_signal="user-agent=UA1", now=T0)
        assert result == Continue(regenerated=False)

        metadata = SecurityMetadata(session)
        assert metadata.created_at == T0
        assert metadata.last_activity == T0
        assert metadata.last_regenerated == T0
        assert metadata.binding_hash is not None
        assert metadata.csrf_token is not None

    @pytest.mark.asyncio
    async def test_metadata_hidden_from_application(self):
        session = await _started()
        await session.set("user", "alice")
        await _pipeline().run(session, binding_signal="ua", now=T0)
        assert session.all() == {"user": "alice"}

    @pytest.mark.asyncio
    async def test_no_binding_hash_when_disabled(self):
        session = await _started()
        await _pipeline(bind=False).run(session, binding_signal="ua", now=T0)
        assert SecurityMetadata(session).binding_hash is None

    @pytest.mark.asyncio
    async def test_subsequent_run_touches_activity(self):
        session = await _started()
        pipeline = _pipeline()
        await pipeline.run(session, binding_signal="ua", now=T0)
        await pipeline.run(session, binding_signal="ua", now=T0 + 100)
        metadata = SecurityMetadata(session)
        assert metadata.last_activity == T0 + 100
        assert metadata.created_at == T0

    @pytest.mark.asyncio
    async def test_created_at_never_changes(self):
        session = await _started()
        pipeline = _pipeline()
        for offset in (0, 50, 400, 800):
            await pipeline.run(session, binding_signal="ua", now=T0 + offset)
        assert SecurityMetadata(session).created_at == T0


class TestIdentityBinding:
    @pytest.mark.asyncio
    async def test_mismatch_restarts_session(self):
        session = await _started()
        pipeline = _pipeline()
        await pipeline.run(session, binding_signal="user-agent=UA1", now=T0)
        await session.set("user", "alice")
        old_id = session.get_id()

        result = await pipeline.run(session, binding_signal="user-agent=UA2", now=T0 + 10)
        assert isinstance(result, RestartedSession)
        assert result.reason is RestartReason.IDENTITY_MISMATCH
        assert result.previous_id == old_id
        assert session.is_started() is True
        assert session.get_id() != old_id
        assert session.has("user") is False

    @pytest.mark.asyncio
    async def test_restarted_session_is_rebound(self):
        session = await _started()
        pipeline = _pipeline()
        await pipeline.run(session, binding_signal="ua-1", now=T0)
        await pipeline.run(session, binding_signal="ua-2", now=T0 + 10)
        result = await pipeline.run(session, binding_signal="ua-2", now=T0 + 20)
        assert isinstance(result, Continue)

    @pytest.mark.asyncio
    async def test_old_record_is_deleted_on_restart(self):
        store = InMemorySessionStore()
        session = await _started(store)
        pipeline = _pipeline()
        await pipeline.run(session, binding_signal="a", now=T0)
        old_id = session.get_id()
        await pipeline.run(session, binding_signal="b", now=T0 + 1)
        assert await store.exists(old_id) is False

    @pytest.mark.asyncio
    async def test_matching_signal_proceeds(self):
        session = await _started()
        check = IdentityBindingCheck()
        await _pipeline().run(session, binding_signal="same", now=T0)
        assert await check.evaluate(session, "same", T0) == Proceed()
        assert await check.evaluate(session, "other", T0) == Restart(RestartReason.IDENTITY_MISMATCH)

    @pytest.mark.asyncio
    async def test_secret_changes_hash(self):
        plain = await _started()
        keyed = await _started()
        await SecurityPipeline([SessionInitializationCheck()]).run(plain, binding_signal="ua", now=T0)
        await SecurityPipeline([SessionInitializationCheck(binding_secret="s3cret")]).run(
            keyed, binding_signal="ua", now=T0
        )
        assert SecurityMetadata(plain).binding_hash != SecurityMetadata(keyed).binding_hash
        assert await IdentityBindingCheck(secret="s3cret").evaluate(keyed, "ua", T0) == Proceed()


class TestIdleTimeout:
    @pytest.mark.asyncio
    async def test_expires_past_timeout(self):
        session = await _started()
        pipeline = _pipeline(interval=None)
        await pipeline.run(session, binding_signal="ua", now=T0)
        await session.set("user", "alice")
        old_id = session.get_id()

        result = await pipeline.run(session, binding_signal="ua", now=T0 + 1801)
        assert isinstance(result, RestartedSession)
        assert result.reason is RestartReason.IDLE_TIMEOUT
        assert session.get_id() != old_id
        assert session.has("user") is False
        assert SecurityMetadata(session).created_at == T0 + 1801

    @pytest.mark.asyncio
    async def test_within_timeout_keeps_session(self):
        session = await _started()
        pipeline = _pipeline(interval=None)
        await pipeline.run(session, binding_signal="ua", now=T0)
        await session.set("user", "alice")

        result = await pipeline.run(session, binding_signal="ua", now=T0 + 1799)
        assert result == Continue(regenerated=False)
        assert session.get("user") == "alice"

    @pytest.mark.asyncio
    async def test_exactly_at_timeout_keeps_session(self):
        session = await _started()
        pipeline = _pipeline(interval=None)
        await pipeline.run(session, binding_signal="ua", now=T0)
        result = await pipeline.run(session, binding_signal="ua", now=T0 + 1800)
        assert isinstance(result, Continue)

    @pytest.mark.asyncio
    async def test_activity_extends_idle_window(self):
        session = await _started()
        pipeline = _pipeline(interval=None)
        await pipeline.run(session, binding_signal="ua", now=T0)
        await pipeline.run(session, binding_signal="ua", now=T0 + 1000)
        result = await pipeline.run(session, binding_signal="ua", now=T0 + 2500)
        assert isinstance(result, Continue)


class TestRegeneration:
    @pytest.mark.asyncio
    async def test_rotates_after_interval(self):
        session = await _started()
        pipeline = _pipeline()
        await pipeline.run(session, binding_signal="ua", now=T0)
        await session.set("user", "alice")
        old_id = session.get_id()

        result = await pipeline.run(session, binding_signal="ua", now=T0 + 301)
        assert result == Continue(regenerated=True)
        assert session.get_id() != old_id
        assert session.get("user") == "alice"
        metadata = SecurityMetadata(session)
        assert metadata.last_regenerated == T0 + 301
        assert metadata.last_activity == T0 + 301
        assert metadata.created_at == T0

    @pytest.mark.asyncio
    async def test_no_rotation_before_interval(self):
        session = await _started()
        pipeline = _pipeline()
        await pipeline.run(session, binding_signal="ua", now=T0)
        old_id = session.get_id()

        result = await pipeline.run(session, binding_signal="ua", now=T0 + 100)
        assert result == Continue(regenerated=False)
        assert session.get_id() == old_id

    @pytest.mark.asyncio
    async def test_rotation_disabled(self):
        session = await _started()
        pipeline = _pipeline(interval=None)
        await pipeline.run(session, binding_signal="ua", now=T0)
        old_id = session.get_id()
        await pipeline.run(session, binding_signal="ua", now=T0 + 1000)
        assert session.get_id() == old_id

    @pytest.mark.asyncio
    async def test_binding_survives_rotation(self):
        session = await _started()
        pipeline = _pipeline()
        await pipeline.run(session, binding_signal="ua", now=T0)
        await pipeline.run(session, binding_signal="ua", now=T0 + 301)
        result = await pipeline.run(session, binding_signal="ua", now=T0 + 302)
        assert result == Continue(regenerated=False)


class TestPipelineEntry:
    @pytest.mark.asyncio
    async def test_requires_started_session(self):
        session = Session(InMemorySessionStore())
        with pytest.raises(SessionNotStartedException):
            await SecurityPipeline([IdleTimeoutCheck(10)]).run(session, now=T0)

    @pytest.mark.asyncio
    async def test_auto_start(self):
        session = Session(InMemorySessionStore())
        pipeline = SecurityPipeline([SessionInitializationCheck()], auto_start=True)
        result = await pipeline.run(session, binding_signal="ua", now=T0)
        assert result == Continue()
        assert session.is_started() is True
        assert SecurityMetadata(session).is_initialized() is True

    @pytest.mark.asyncio
    async def test_uses_injected_clock(self):
        session = await _started()
        pipeline = SecurityPipeline([SessionInitializationCheck()], clock=lambda: 42.0)
        await pipeline.run(session)
        assert SecurityMetadata(session).created_at == 42.0

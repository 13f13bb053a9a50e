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
"""SessionFactory — builds stores, sessions and security pipelines from properties."""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any

from flysession.core.config import Config
from flysession.security.pipeline import SecurityPipeline
from flysession.session.ports.outbound import SessionStore, WriteGuarantee
from flysession.session.ports.transport import SessionTransport
from flysession.session.properties import SessionProperties, build_properties
from flysession.session.session import Session

_TESTING_DEFAULTS: dict[str, Any] = {
    "name": "test_session",
    "cookie": {"secure": False},
    "store": {"type": "memory"},
}

_DEVELOPMENT_DEFAULTS: dict[str, Any] = {
    "cookie": {"secure": False, "http_only": True, "same_site": "Lax"},
    "strict_mode": False,
}

_PRODUCTION_DEFAULTS: dict[str, Any] = {
    "cookie": {"secure": True, "http_only": True, "same_site": "Strict"},
    "strict_mode": True,
}


class SessionFactory:
    """Creates request-scoped :class:`Session` objects that share one store.

    The store is selected from ``properties.store`` on first use unless one
    is injected. Redis stores are built with ``redis.asyncio.from_url``.
    """

    def __init__(
        self,
        properties: SessionProperties | None = None,
        store: SessionStore | None = None,
    ) -> None:
        self._properties = properties if properties is not None else SessionProperties()
        self._store = store

    @classmethod
    def from_config(cls, config: Config, *, session_store: SessionStore | None = None) -> SessionFactory:
        return cls(config.bind(SessionProperties), session_store)

    @classmethod
    def create(cls, *, session_store: SessionStore | None = None, **overrides: Any) -> SessionFactory:
        """Validate *overrides* on top of the defaults; invalid values raise InvalidConfigurationException.

        Property sections such as ``store`` or ``cookie`` are passed as nested
        mappings; an already built store is injected through *session_store*.
        """
        return cls(build_properties(SessionProperties, overrides), session_store)

    @classmethod
    def for_testing(cls, *, session_store: SessionStore | None = None, **overrides: Any) -> SessionFactory:
        return cls.create(session_store=session_store, **Config.deep_merge(_TESTING_DEFAULTS, overrides))

    @classmethod
    def for_development(cls, *, session_store: SessionStore | None = None, **overrides: Any) -> SessionFactory:
        return cls.create(session_store=session_store, **Config.deep_merge(_DEVELOPMENT_DEFAULTS, overrides))

    @classmethod
    def for_production(cls, *, session_store: SessionStore | None = None, **overrides: Any) -> SessionFactory:
        return cls.create(session_store=session_store, **Config.deep_merge(_PRODUCTION_DEFAULTS, overrides))

    @property
    def properties(self) -> SessionProperties:
        return self._properties

    @property
    def store(self) -> SessionStore:
        if self._store is None:
            self._store = self._create_store()
        return self._store

    def _create_store(self) -> SessionStore:
        store_props = self._properties.store
        guarantee = WriteGuarantee(store_props.write_guarantee)

        if store_props.type == "redis":
            import redis.asyncio as aioredis

            from flysession.session.adapters.redis import RedisSessionStore

            client = aioredis.from_url(store_props.redis.url)  # type: ignore[no-untyped-call,unused-ignore]
            return RedisSessionStore(
                client,
                prefix=store_props.redis.prefix,
                timeout=store_props.redis.timeout,
                guarantee=guarantee,
            )

        from flysession.session.adapters.memory import InMemorySessionStore

        return InMemorySessionStore(guarantee=guarantee)

    def create_session(self, transport: SessionTransport | None = None) -> Session:
        return Session.from_properties(self.store, self._properties, transport)

    def create_pipeline(self, clock: Callable[[], float] = time.time) -> SecurityPipeline:
        return SecurityPipeline.from_properties(self._properties, clock=clock)

    async def close(self) -> None:
        if self._store is not None:
            await self._store.close()

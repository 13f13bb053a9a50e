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
"""SessionMiddleware — loads, secures and persists sessions via cookies (pure ASGI)."""

from __future__ import annotations

from collections.abc import Sequence

from starlette.datastructures import MutableHeaders
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from flysession.kernel.exceptions import (
    BackendUnavailableException,
    CannotStartSessionException,
    FlySessionException,
)
from flysession.observability.logging import get_logger, session_log_context, short_id
from flysession.security.binding import binding_signal_from_headers
from flysession.security.pipeline import RestartedSession
from flysession.session.factory import SessionFactory
from flysession.session.properties import CookieParams
from flysession.session.session import Session

logger = get_logger("flysession.web")


def _set_cookie_headers(response: Response) -> list[tuple[str, str]]:
    return [
        (name.decode("latin-1"), value.decode("latin-1"))
        for name, value in response.raw_headers
        if name == b"set-cookie"
    ]


class StarletteCookieTransport:
    """Session transport over request cookies and ``Set-Cookie`` response headers.

    Cookie headers are rendered with Starlette's ``Response.set_cookie`` /
    ``delete_cookie`` and held until the response starts; only the last
    instruction per cookie name is sent.
    """

    def __init__(self, request: Request) -> None:
        self._request = request
        self._pending: dict[str, list[tuple[str, str]]] = {}
        self._committed = False

    @property
    def committed(self) -> bool:
        return self._committed

    def mark_committed(self) -> None:
        self._committed = True

    def load_incoming_session_id(self, name: str) -> str | None:
        return self._request.cookies.get(name)

    def emit_session_id(self, name: str, session_id: str, cookie_params: CookieParams) -> None:
        response = Response()
        response.set_cookie(
            key=name,
            value=session_id,
            max_age=cookie_params.lifetime or None,
            path=cookie_params.path,
            domain=cookie_params.domain,
            secure=cookie_params.secure,
            httponly=cookie_params.http_only,
            samesite=cookie_params.same_site.lower(),  # type: ignore[arg-type]
        )
        self._pending[name] = _set_cookie_headers(response)

    def emit_session_cleared(self, name: str, cookie_params: CookieParams) -> None:
        response = Response()
        response.delete_cookie(
            key=name,
            path=cookie_params.path,
            domain=cookie_params.domain,
            secure=cookie_params.secure,
            httponly=cookie_params.http_only,
            samesite=cookie_params.same_site.lower(),  # type: ignore[arg-type]
        )
        self._pending[name] = _set_cookie_headers(response)

    def pending_headers(self) -> list[tuple[str, str]]:
        return [header for headers in self._pending.values() for header in headers]


class SessionMiddleware:
    """Attaches a :class:`Session` to ``request.state.session`` for every HTTP request.

    When ``auto_start`` is configured the session is started up front; a
    start failure is logged and the request proceeds without a session. The
    security pipeline then runs against the started session. If it fails
    with a backend error the request is answered with 503 rather than
    served from a session whose checks did not complete.

    Uses raw ASGI protocol instead of ``BaseHTTPMiddleware`` so the
    ``Set-Cookie`` headers can be appended to whatever response the app
    produces, including streaming ones.
    """

    def __init__(
        self,
        app: ASGIApp,
        factory: SessionFactory,
        exclude_paths: Sequence[str] = (),
    ) -> None:
        self.app = app
        self._factory = factory
        self._pipeline = factory.create_pipeline()
        self._exclude_paths = set(exclude_paths)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request = Request(scope, receive, send)
        if request.url.path in self._exclude_paths:
            await self.app(scope, receive, send)
            return

        transport = StarletteCookieTransport(request)
        session = self._factory.create_session(transport)
        request.state.session = session

        if self._factory.properties.auto_start:
            await self._start(session)

        if session.is_started():
            try:
                await self._secure(session, request)
            except FlySessionException as exc:
                logger.error(
                    "session_security_failed",
                    path=request.url.path,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                response = JSONResponse({"error": "Session backend unavailable"}, status_code=503)
                await response(scope, receive, send)
                return

        async def send_wrapper(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers = MutableHeaders(scope=message)
                for name, value in transport.pending_headers():
                    headers.append(name, value)
                transport.mark_committed()
            await send(message)

        with session_log_context(session.id):
            await self.app(scope, receive, send_wrapper)

    async def _start(self, session: Session) -> None:
        try:
            await session.start()
        except (CannotStartSessionException, BackendUnavailableException) as exc:
            logger.warning("session_start_failed", error=str(exc), error_type=type(exc).__name__)

    async def _secure(self, session: Session, request: Request) -> None:
        signal = binding_signal_from_headers(request.headers, self._factory.properties.binding_headers)
        result = await self._pipeline.run(session, binding_signal=signal)
        if isinstance(result, RestartedSession):
            logger.info(
                "session_replaced",
                path=request.url.path,
                reason=result.reason.value,
                session=short_id(session.id),
            )

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
"""Transport protocol between a session and the HTTP layer."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from flysession.session.properties import CookieParams


@runtime_checkable
class SessionTransport(Protocol):
    """Carries the session identifier in and out of a request.

    The host web layer implements this; the session never reads or writes
    network transport directly.
    """

    @property
    def committed(self) -> bool:
        """``True`` once response headers have been sent and cookies can no longer change."""
        ...

    def load_incoming_session_id(self, name: str) -> str | None: ...

    def emit_session_id(self, name: str, session_id: str, cookie_params: CookieParams) -> None: ...

    def emit_session_cleared(self, name: str, cookie_params: CookieParams) -> None: ...

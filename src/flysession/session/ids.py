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
"""Session identifier generation and validation."""

from __future__ import annotations

import re
import secrets

_SESSION_ID_RE = re.compile(r"^[A-Za-z0-9_-]{22,128}$")


def generate_session_id() -> str:
    """Generate an unguessable session identifier (256 bits, URL-safe)."""
    return secrets.token_urlsafe(32)


def is_valid_session_id(value: object) -> bool:
    """Return ``True`` if *value* looks like an identifier we could have issued."""
    return isinstance(value, str) and _SESSION_ID_RE.match(value) is not None

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
"""CSRF token utilities for session-bound (synchronizer) tokens."""

from __future__ import annotations

import secrets

CSRF_HEADER_NAME: str = "X-CSRF-Token"
"""Name of the request header that carries the CSRF token."""

SAFE_METHODS: frozenset[str] = frozenset({"GET", "HEAD", "OPTIONS", "TRACE"})
"""HTTP methods that do not require CSRF validation."""


def generate_csrf_token() -> str:
    """Generate a cryptographically-secure CSRF token.

    Returns:
        A URL-safe base64-encoded random string (43 characters).
    """
    return secrets.token_urlsafe(32)


def validate_csrf_token(expected: str | None, presented: str | None) -> bool:
    """Validate a CSRF token using timing-safe comparison.

    Args:
        expected: The token stored in the session.
        presented: The token sent by the client.

    Returns:
        ``True`` if both tokens are present and match; ``False`` otherwise.
    """
    if not expected or not presented:
        return False
    return secrets.compare_digest(expected, presented)

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
"""Client identity binding: hash a stable per-client signal into the session."""

from __future__ import annotations

import hashlib
import hmac
import secrets
from collections.abc import Iterable, Mapping


def compute_binding_hash(signal: str | None, secret: str | None = None) -> str:
    """Hash *signal* (SHA-256, or HMAC-SHA256 when *secret* is set).

    A missing signal hashes like the empty string, so a client that stops
    sending it no longer matches a session bound to a non-empty signal.
    """
    payload = (signal or "").encode()
    if secret:
        return hmac.new(secret.encode(), payload, hashlib.sha256).hexdigest()
    return hashlib.sha256(payload).hexdigest()


def binding_matches(stored_hash: str, signal: str | None, secret: str | None = None) -> bool:
    return secrets.compare_digest(stored_hash, compute_binding_hash(signal, secret))


def binding_signal_from_headers(headers: Mapping[str, str], names: Iterable[str]) -> str:
    """Join the named request headers into one binding signal.

    *headers* must support case-insensitive lookup (e.g. Starlette's ``Headers``)
    or already use lower-case keys.
    """
    return "\n".join(f"{name.lower()}={headers.get(name.lower(), '')}" for name in names)

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
"""flysession session — server-side session management with pluggable stores.

Import concrete store types from the adapter package::

    from flysession.session.adapters.memory import InMemorySessionStore
    from flysession.session.adapters.redis import RedisSessionStore
"""

from flysession.session.session import RESERVED_PREFIX, Session, SessionStatus
from flysession.session.flash import FlashStore
from flysession.session.ids import generate_session_id, is_valid_session_id
from flysession.session.ports.outbound import SessionStore, StorageRecord, WriteGuarantee
from flysession.session.ports.transport import SessionTransport
from flysession.session.properties import CookieParams, SessionProperties

__all__ = [
    "RESERVED_PREFIX",
    "CookieParams",
    "FlashStore",
    "Session",
    "SessionProperties",
    "SessionStatus",
    "SessionStore",
    "SessionTransport",
    "StorageRecord",
    "WriteGuarantee",
    "generate_session_id",
    "is_valid_session_id",
]

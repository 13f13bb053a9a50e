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
"""flysession — server-side HTTP sessions with flash messages and a security pipeline."""

from flysession.core.config import Config
from flysession.kernel.exceptions import (
    BackendUnavailableException,
    CannotDestroySessionException,
    CannotStartSessionException,
    FlySessionException,
    InvalidConfigurationException,
    SessionAlreadyStartedException,
    SessionNotStartedException,
)
from flysession.security.pipeline import Continue, RestartedSession, SecurityPipeline
from flysession.session import CookieParams, Session, SessionProperties, SessionStatus, SessionStore
from flysession.session.factory import SessionFactory
from flysession.session.middleware import SessionMiddleware

__version__ = "0.1.0"

__all__ = [
    "BackendUnavailableException",
    "CannotDestroySessionException",
    "CannotStartSessionException",
    "Config",
    "Continue",
    "CookieParams",
    "FlySessionException",
    "InvalidConfigurationException",
    "RestartedSession",
    "SecurityPipeline",
    "Session",
    "SessionAlreadyStartedException",
    "SessionFactory",
    "SessionMiddleware",
    "SessionNotStartedException",
    "SessionProperties",
    "SessionStatus",
    "SessionStore",
    "__version__",
]

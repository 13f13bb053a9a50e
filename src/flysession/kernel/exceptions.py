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
"""Unified exception hierarchy for flysession.

All library exceptions inherit from FlySessionException, enabling unified
error handling across modules.

Categories:
- BusinessException: Domain rule violations, validation errors, lost races
- SessionException: Session lifecycle violations (state machine errors)
- InfrastructureException: Storage backend and network failures
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------


class FlySessionException(Exception):
    """Base exception for all flysession errors.

    Carries an optional error code and context dict for structured error data.
    Catch FlySessionException to handle every library error, or catch specific
    subclasses for targeted handling.

    Args:
        message: Human-readable error description.
        code: Machine-readable error code (e.g. "SESSION_NOT_STARTED").
        context: Arbitrary key-value pairs for error context and debugging.
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        context: dict | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.context: dict = context if context is not None else {}


# ---------------------------------------------------------------------------
# Business
# ---------------------------------------------------------------------------


class BusinessException(FlySessionException):
    """Domain rule violations and business logic errors."""


class ValidationException(BusinessException):
    """Input validation failures."""


class ConflictException(BusinessException):
    """Operation conflicts with current state."""


class ConcurrencyException(BusinessException):
    """Concurrent modification conflict (e.g. revision mismatch, lost race)."""


class InvalidConfigurationException(ValidationException):
    """Session configuration was rejected at setup time."""


class ReservedKeyException(ValidationException):
    """A user key collides with the reserved internal namespace."""


# ---------------------------------------------------------------------------
# Session lifecycle
# ---------------------------------------------------------------------------


class SessionException(FlySessionException):
    """Session state machine violations."""


class SessionNotStartedException(SessionException):
    """Operation requires an active session."""

    def __init__(self, message: str = "Session is not started", context: dict | None = None) -> None:
        super().__init__(message, code="SESSION_NOT_STARTED", context=context)


class SessionAlreadyStartedException(SessionException):
    """Operation requires a session that has not been started yet."""

    def __init__(self, message: str = "Session is already started", context: dict | None = None) -> None:
        super().__init__(message, code="SESSION_ALREADY_STARTED", context=context)


class CannotStartSessionException(SessionException):
    """The backend or the environment prevented the session from starting."""

    def __init__(self, reason: str = "", context: dict | None = None) -> None:
        message = "Cannot start session"
        if reason:
            message += f": {reason}"
        super().__init__(message, code="SESSION_CANNOT_START", context=context)


class CannotDestroySessionException(SessionException):
    """Deleting the session record failed."""

    def __init__(self, reason: str = "", context: dict | None = None) -> None:
        message = "Cannot destroy session"
        if reason:
            message += f": {reason}"
        super().__init__(message, code="SESSION_CANNOT_DESTROY", context=context)


class SessionKeyNotFoundException(SessionException):
    """A required session key is absent."""

    def __init__(self, key: str) -> None:
        super().__init__(f"Session key '{key}' not found", code="SESSION_KEY_NOT_FOUND", context={"key": key})
        self.key = key


# ---------------------------------------------------------------------------
# Infrastructure
# ---------------------------------------------------------------------------


class InfrastructureException(FlySessionException):
    """Infrastructure failures: storage, cache, network."""


class ServiceUnavailableException(InfrastructureException):
    """Downstream service is unavailable."""


class BackendUnavailableException(ServiceUnavailableException):
    """The session storage backend failed or timed out.

    Never raised for an absent record; absence is reported as ``None``.
    """

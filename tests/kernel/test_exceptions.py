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
"""Tests for the flysession exception hierarchy."""

from flysession.kernel.exceptions import (
    BackendUnavailableException,
    BusinessException,
    CannotDestroySessionException,
    CannotStartSessionException,
    ConcurrencyException,
    ConflictException,
    FlySessionException,
    InfrastructureException,
    InvalidConfigurationException,
    ReservedKeyException,
    ServiceUnavailableException,
    SessionAlreadyStartedException,
    SessionException,
    SessionKeyNotFoundException,
    SessionNotStartedException,
    ValidationException,
)


class TestFlySessionException:
    def test_basic_creation(self):
        exc = FlySessionException("something went wrong")
        assert str(exc) == "something went wrong"
        assert exc.code is None
        assert exc.context == {}

    def test_with_code_and_context(self):
        exc = FlySessionException("bad", code="E001", context={"field": "name"})
        assert exc.code == "E001"
        assert exc.context == {"field": "name"}


class TestExceptionHierarchy:
    def test_business_exceptions(self):
        for cls in (ValidationException, ConflictException, ConcurrencyException):
            assert issubclass(cls, BusinessException)
        assert issubclass(InvalidConfigurationException, ValidationException)
        assert issubclass(ReservedKeyException, ValidationException)

    def test_session_exceptions(self):
        for cls in (
            SessionNotStartedException,
            SessionAlreadyStartedException,
            CannotStartSessionException,
            CannotDestroySessionException,
            SessionKeyNotFoundException,
        ):
            assert issubclass(cls, SessionException)
            assert issubclass(cls, FlySessionException)

    def test_infrastructure_exceptions(self):
        assert issubclass(BackendUnavailableException, ServiceUnavailableException)
        assert issubclass(ServiceUnavailableException, InfrastructureException)


class TestSessionExceptions:
    def test_not_started_defaults(self):
        exc = SessionNotStartedException()
        assert str(exc) == "Session is not started"
        assert exc.code == "SESSION_NOT_STARTED"

    def test_already_started_code(self):
        assert SessionAlreadyStartedException().code == "SESSION_ALREADY_STARTED"

    def test_cannot_start_with_reason(self):
        exc = CannotStartSessionException("headers sent")
        assert str(exc) == "Cannot start session: headers sent"
        assert exc.code == "SESSION_CANNOT_START"

    def test_cannot_start_without_reason(self):
        assert str(CannotStartSessionException()) == "Cannot start session"

    def test_cannot_destroy(self):
        exc = CannotDestroySessionException("backend down", context={"operation": "delete"})
        assert str(exc) == "Cannot destroy session: backend down"
        assert exc.context == {"operation": "delete"}

    def test_key_not_found(self):
        exc = SessionKeyNotFoundException("user")
        assert exc.key == "user"
        assert "user" in str(exc)
        assert exc.context == {"key": "user"}

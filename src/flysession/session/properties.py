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
"""Session configuration properties."""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from typing import Any, Literal, TypeVar

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    PositiveInt,
    ValidationError,
    field_validator,
    model_validator,
)

from flysession.core.config import config_properties
from flysession.kernel.exceptions import InvalidConfigurationException

_logger = logging.getLogger(__name__)

SESSION_NAME_RE = re.compile(r"^[A-Za-z0-9_]+$")

_SAME_SITE_VALUES = {"strict": "Strict", "lax": "Lax", "none": "None"}

M = TypeVar("M", bound=BaseModel)


def validate_session_name(name: object) -> str:
    """Return *name* if it is a legal session name, else raise."""
    if not isinstance(name, str) or not SESSION_NAME_RE.match(name):
        raise InvalidConfigurationException(
            f"Session name {name!r} contains invalid characters (allowed: letters, digits, underscore)",
            code="INVALID_SESSION_NAME",
        )
    return name


def build_properties(model_cls: type[M], data: Mapping[str, Any]) -> M:
    """Validate *data* into *model_cls*, raising InvalidConfigurationException on failure."""
    try:
        return model_cls.model_validate(dict(data))
    except ValidationError as exc:
        raise InvalidConfigurationException(
            f"Invalid {model_cls.__name__}:\n{exc}",
            code="INVALID_CONFIGURATION",
        ) from exc


class CookieParams(BaseModel):
    """Cookie attributes passed through to the HTTP layer untouched."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    lifetime: int = Field(default=0, ge=0)
    path: str = "/"
    domain: str | None = None
    secure: bool = False
    http_only: bool = Field(default=True, validation_alias=AliasChoices("http_only", "httponly", "http-only"))
    same_site: Literal["Strict", "Lax", "None"] = Field(
        default="Lax", validation_alias=AliasChoices("same_site", "samesite", "same-site")
    )

    @field_validator("same_site", mode="before")
    @classmethod
    def _normalize_same_site(cls, value: Any) -> Any:
        if isinstance(value, str):
            return _SAME_SITE_VALUES.get(value.lower(), value)
        return value

    @model_validator(mode="after")
    def _warn_insecure_cross_site(self) -> CookieParams:
        if self.same_site == "None" and not self.secure:
            _logger.warning("SameSite=None session cookie without Secure will be rejected by browsers")
        return self


class RedisStoreProperties(BaseModel):
    url: str = "redis://localhost:6379/0"
    prefix: str = "flysession:session:"
    timeout: float = Field(default=2.0, gt=0)


class StoreProperties(BaseModel):
    type: Literal["memory", "redis"] = "memory"
    write_guarantee: Literal["atomic", "versioned", "last_writer_wins"] = Field(
        default="atomic", validation_alias=AliasChoices("write_guarantee", "write-guarantee")
    )
    redis: RedisStoreProperties = Field(default_factory=RedisStoreProperties)

    model_config = ConfigDict(populate_by_name=True)


@config_properties(prefix="flysession.session")
class SessionProperties(BaseModel):
    """Configuration for sessions (flysession.session.*).

    ``idle_timeout`` and ``regeneration_interval`` accept ``None`` to disable
    the corresponding security check.
    """

    model_config = ConfigDict(populate_by_name=True)

    name: str = "flysession"
    ttl: int = Field(default=1800, gt=0)
    cookie: CookieParams = Field(default_factory=CookieParams)
    strict_mode: bool = Field(default=True, validation_alias=AliasChoices("strict_mode", "strict-mode"))
    auto_start: bool = Field(default=True, validation_alias=AliasChoices("auto_start", "auto-start"))
    idle_timeout: PositiveInt | None = Field(
        default=1800, validation_alias=AliasChoices("idle_timeout", "idle-timeout")
    )
    regeneration_interval: PositiveInt | None = Field(
        default=300, validation_alias=AliasChoices("regeneration_interval", "regeneration-interval")
    )
    bind_identity: bool = Field(default=True, validation_alias=AliasChoices("bind_identity", "bind-identity"))
    binding_headers: list[str] = Field(
        default_factory=lambda: ["user-agent"],
        validation_alias=AliasChoices("binding_headers", "binding-headers"),
    )
    binding_secret: str | None = Field(
        default=None, validation_alias=AliasChoices("binding_secret", "binding-secret")
    )
    store: StoreProperties = Field(default_factory=StoreProperties)

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        if not SESSION_NAME_RE.match(value):
            raise ValueError("session name may only contain letters, digits and underscores")
        return value

    @field_validator("binding_headers")
    @classmethod
    def _lower_headers(cls, value: list[str]) -> list[str]:
        return [header.lower() for header in value]

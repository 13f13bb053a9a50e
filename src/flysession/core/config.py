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
"""Layered configuration: YAML/TOML files, profile overlays, env vars and model binding."""

from __future__ import annotations

import os
import re
import tomllib
import typing
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any, TypeVar

import yaml  # type: ignore[import-untyped]
from pydantic import BaseModel, TypeAdapter, ValidationError

from flysession.kernel.exceptions import InvalidConfigurationException

T = TypeVar("T")

_PLACEHOLDER_RE = re.compile(r"\$\{([^}]+)\}")
_MAX_PLACEHOLDER_DEPTH = 10

_CONFIG_PROPERTIES_ATTR = "__flysession_config_prefix__"

_ENV_PREFIX = "FLYSESSION_"
_ROOT_KEY = "flysession"
_SUFFIXES = (".yaml", ".toml")


def config_properties(prefix: str) -> Callable[[type[T]], type[T]]:
    """Mark a Pydantic model or dataclass as bindable to a configuration prefix.

    Usage:
        @config_properties(prefix="flysession.session")
        class SessionProperties(BaseModel):
            name: str = "flysession"
            ttl: int = Field(default=1800, gt=0)
    """

    def decorator(cls: type[T]) -> type[T]:
        setattr(cls, _CONFIG_PROPERTIES_ATTR, prefix)
        return cls

    return decorator


def env_key(key: str) -> str:
    """Map a dotted config key to its environment variable.

    ``flysession.session.idle-timeout`` -> ``FLYSESSION_SESSION_IDLE_TIMEOUT``
    """
    key = key.removeprefix(f"{_ROOT_KEY}.")
    return _ENV_PREFIX + re.sub(r"[.\-]", "_", key).upper()


class Config:
    """Hierarchical configuration with dot-notation access.

    Priority (highest wins):
    1. Environment variables (``FLYSESSION_SECTION_KEY``)
    2. Profile overlay files, later profiles first
    3. Base configuration files or the dict passed in
    4. Model defaults
    """

    def __init__(self, data: dict[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = data or {}
        self._loaded_sources: list[str] = []

    @property
    def loaded_sources(self) -> list[str]:
        """Config file paths that were loaded, in merge order."""
        return list(self._loaded_sources)

    def to_dict(self) -> dict[str, Any]:
        return dict(self._data)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    @classmethod
    def from_sources(cls, base_dir: str | Path, active_profiles: list[str] | None = None) -> Config:
        """Merge ``flysession.{yaml,toml}`` and its profile overlays.

        Both ``<base_dir>/config/`` and ``<base_dir>/`` are searched; within each
        layer the project root wins over ``config/``.
        """
        base_dir = Path(base_dir)
        stems = [_ROOT_KEY] + [f"{_ROOT_KEY}-{profile}" for profile in active_profiles or []]
        candidates = (
            directory / f"{stem}{suffix}"
            for stem in stems
            for directory in (base_dir / "config", base_dir)
            for suffix in _SUFFIXES
        )
        return cls._merge_files(candidates)

    @classmethod
    def from_file(cls, path: str | Path, active_profiles: list[str] | None = None) -> Config:
        """Load one file plus ``<stem>-<profile><suffix>`` overlays beside it.

        A file named ``flysession.yaml``/``flysession.toml`` loads the full
        conventional layout via :meth:`from_sources`.
        """
        path = Path(path)
        if path.stem == _ROOT_KEY:
            return cls.from_sources(path.parent, active_profiles)
        overlays = (path.with_name(f"{path.stem}-{profile}{path.suffix}") for profile in active_profiles or [])
        return cls._merge_files(iter([path, *overlays]))

    @classmethod
    def _merge_files(cls, candidates: Iterator[Path]) -> Config:
        data: dict[str, Any] = {}
        sources: list[str] = []
        for candidate in candidates:
            if candidate.is_file():
                data = cls.deep_merge(data, _read_file(candidate))
                sources.append(str(candidate))
        instance = cls(data)
        instance._loaded_sources = sources
        return instance

    @staticmethod
    def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
        """Recursively merge *override* into a copy of *base*; override wins."""
        merged = dict(base)
        for key, value in override.items():
            if isinstance(merged.get(key), dict) and isinstance(value, dict):
                merged[key] = Config.deep_merge(merged[key], value)
            else:
                merged[key] = value
        return merged

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value at dotted *key*; env vars win, ``${...}`` placeholders are resolved.

        Placeholders take the forms ``${ENV_VAR}``, ``${other.config.key}`` and
        ``${name:default}``.
        """
        env_value = os.environ.get(env_key(key))
        if env_value is not None:
            return env_value
        value = self._lookup(key)
        if value is None:
            return default
        return self._resolve(value)

    def get_section(self, prefix: str) -> dict[str, Any]:
        """Return the raw nested dict under *prefix*, or ``{}``."""
        section = self._lookup(prefix)
        return section if isinstance(section, dict) else {}

    def _lookup(self, key: str) -> Any:
        current: Any = self._data
        for part in key.split("."):
            if not isinstance(current, dict):
                return None
            current = current.get(part)
        return current

    def _resolve(self, value: Any, depth: int = 0) -> Any:
        if isinstance(value, dict):
            return {key: self._resolve(item, depth) for key, item in value.items()}
        if not isinstance(value, str) or "${" not in value:
            return value
        if depth > _MAX_PLACEHOLDER_DEPTH:
            raise InvalidConfigurationException(
                f"Placeholder nesting too deep in '{value}'; check for circular references",
                code="INVALID_CONFIGURATION",
            )

        def _replace(match: re.Match[str]) -> str:
            name, _, fallback = match.group(1).partition(":")
            if name in os.environ:
                return os.environ[name]
            found = self._lookup(name)
            if found is not None:
                return str(self._resolve(str(found), depth + 1))
            if match.group(1) != name:
                return fallback
            raise InvalidConfigurationException(
                f"Cannot resolve placeholder '${{{name}}}': not found in environment or config",
                code="INVALID_CONFIGURATION",
            )

        return _PLACEHOLDER_RE.sub(_replace, value)

    # ------------------------------------------------------------------
    # Binding
    # ------------------------------------------------------------------

    def bind(self, config_cls: type[T]) -> T:
        """Validate the section under the class's ``@config_properties`` prefix into *config_cls*.

        Environment variables for individual fields (e.g.
        ``FLYSESSION_SESSION_TTL``) override file values before validation.

        Raises:
            InvalidConfigurationException: If the class is not decorated or the
                values do not validate.
        """
        prefix = getattr(config_cls, _CONFIG_PROPERTIES_ATTR, None)
        if prefix is None:
            raise InvalidConfigurationException(
                f"{config_cls.__name__} is not decorated with @config_properties",
                code="INVALID_CONFIGURATION",
            )

        section = self._resolve(self.get_section(prefix))
        for path, raw in _env_overrides(prefix, config_cls):
            _set_path(section, path, raw)

        try:
            if issubclass(config_cls, BaseModel):
                return typing.cast(T, config_cls.model_validate(section))
            return TypeAdapter(config_cls).validate_python(section)
        except ValidationError as exc:
            raise InvalidConfigurationException(
                f"Configuration validation failed for '{config_cls.__name__}' (prefix='{prefix}'):\n{exc}",
                code="INVALID_CONFIGURATION",
                context={"prefix": prefix},
            ) from exc


def _read_file(path: Path) -> dict[str, Any]:
    if path.suffix == ".toml":
        with open(path, "rb") as f:
            return tomllib.load(f)
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _field_types(cls: type) -> dict[str, Any]:
    if issubclass(cls, BaseModel):
        return {name: field.annotation for name, field in cls.model_fields.items()}
    return typing.get_type_hints(cls)


def _model_type(annotation: Any) -> type[BaseModel] | None:
    """Return the Pydantic model inside *annotation* (``Model`` or ``Model | None``), if any."""
    for candidate in (annotation, *typing.get_args(annotation)):
        if typing.get_origin(candidate) is None and isinstance(candidate, type) and issubclass(candidate, BaseModel):
            return candidate
    return None


def _env_overrides(prefix: str, cls: type, path: tuple[str, ...] = ()) -> Iterator[tuple[tuple[str, ...], Any]]:
    """Yield ``(field path, value)`` for every field of *cls* set in the environment.

    Nested models are walked recursively. List fields take comma-separated values.
    """
    for name, annotation in _field_types(cls).items():
        field_path = (*path, name)
        nested = _model_type(annotation)
        if nested is not None:
            yield from _env_overrides(prefix, nested, field_path)
            continue
        raw = os.environ.get(env_key(".".join((prefix, *field_path))))
        if raw is None:
            continue
        if typing.get_origin(annotation) is list:
            yield field_path, [item.strip() for item in raw.split(",") if item.strip()]
        else:
            yield field_path, raw


def _set_path(section: dict[str, Any], path: tuple[str, ...], value: Any) -> None:
    *parents, leaf = path
    for part in parents:
        child = section.get(part)
        if not isinstance(child, dict):
            child = {}
            section[part] = child
        section = child
    section[leaf] = value

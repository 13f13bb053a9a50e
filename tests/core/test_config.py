"""Tests for configuration system."""

import os
from dataclasses import dataclass
from pathlib import Path

import pytest

from flysession.core.config import Config, config_properties, env_key
from flysession.kernel.exceptions import InvalidConfigurationException
from flysession.session.properties import SessionProperties


class TestConfig:
    def test_load_from_dict(self):
        config = Config({"flysession": {"session": {"name": "app", "ttl": 600}}})
        assert config.get("flysession.session.name") == "app"
        assert config.get("flysession.session.ttl") == 600

    def test_get_with_default(self):
        config = Config({})
        assert config.get("missing.key", "default") == "default"

    def test_load_from_yaml_file(self, tmp_path: Path):
        config_file = tmp_path / "flysession.yaml"
        config_file.write_text("flysession:\n  session:\n    name: from_yaml\n")
        config = Config.from_file(config_file)
        assert config.get("flysession.session.name") == "from_yaml"
        assert config.loaded_sources == [str(config_file)]

    def test_load_from_toml_file(self, tmp_path: Path):
        config_file = tmp_path / "settings.toml"
        config_file.write_text('[flysession.session]\nname = "from_toml"\n')
        config = Config.from_file(config_file)
        assert config.get("flysession.session.name") == "from_toml"

    def test_config_directory_is_searched(self, tmp_path: Path):
        (tmp_path / "config").mkdir()
        (tmp_path / "config" / "flysession.yaml").write_text("flysession:\n  session:\n    ttl: 60\n")
        (tmp_path / "flysession.yaml").write_text("flysession:\n  session:\n    name: root\n")
        config = Config.from_sources(tmp_path)
        assert config.get("flysession.session.ttl") == 60
        assert config.get("flysession.session.name") == "root"

    def test_env_var_override(self, monkeypatch):
        monkeypatch.setenv("FLYSESSION_SESSION_NAME", "env_session")
        config = Config({"flysession": {"session": {"name": "file_session"}}})
        assert config.get("flysession.session.name") == "env_session"

    def test_placeholder_from_env(self, monkeypatch):
        monkeypatch.setenv("REDIS_URL", "redis://cache:6379/1")
        config = Config({"flysession": {"session": {"store": {"redis": {"url": "${REDIS_URL}"}}}}})
        assert config.get("flysession.session.store.redis.url") == "redis://cache:6379/1"

    def test_placeholder_default(self):
        config = Config({"url": "${UNSET_FLYSESSION_VAR:redis://localhost}"})
        assert config.get("url") == "redis://localhost"

    def test_unresolvable_placeholder(self):
        config = Config({"url": "${UNSET_FLYSESSION_VAR}"})
        with pytest.raises(InvalidConfigurationException):
            config.get("url")

    def test_deep_merge(self):
        merged = Config.deep_merge({"a": {"b": 1, "c": 2}}, {"a": {"c": 3}, "d": 4})
        assert merged == {"a": {"b": 1, "c": 3}, "d": 4}


class TestConfigProperties:
    def test_bind_to_dataclass(self):
        @config_properties(prefix="database")
        @dataclass
        class DatabaseConfig:
            url: str = "sqlite:///test.db"
            pool_size: int = 5

        config = Config({"database": {"url": "postgresql://localhost/mydb", "pool_size": "20"}})
        db_config = config.bind(DatabaseConfig)
        assert db_config.url == "postgresql://localhost/mydb"
        assert db_config.pool_size == 20

    def test_bind_session_properties(self):
        config = Config(
            {
                "flysession": {
                    "session": {
                        "name": "app_session",
                        "idle-timeout": 900,
                        "cookie": {"secure": True, "samesite": "strict"},
                        "store": {"type": "redis", "redis": {"url": "redis://r:6379/0"}},
                    }
                }
            }
        )
        props = config.bind(SessionProperties)
        assert props.name == "app_session"
        assert props.idle_timeout == 900
        assert props.cookie.secure is True
        assert props.cookie.same_site == "Strict"
        assert props.store.type == "redis"

    def test_bind_uses_defaults(self):
        props = Config({}).bind(SessionProperties)
        assert props.name == "flysession"
        assert props.ttl == 1800
        assert props.strict_mode is True

    def test_bind_invalid_values(self):
        config = Config({"flysession": {"session": {"name": "bad-name"}}})
        with pytest.raises(InvalidConfigurationException) as exc_info:
            config.bind(SessionProperties)
        assert exc_info.value.context == {"prefix": "flysession.session"}

    def test_bind_applies_env_overrides(self, monkeypatch):
        monkeypatch.setenv("FLYSESSION_SESSION_TTL", "600")
        monkeypatch.setenv("FLYSESSION_SESSION_COOKIE_SECURE", "true")
        monkeypatch.setenv("FLYSESSION_SESSION_STORE_REDIS_URL", "redis://env:6379/2")
        monkeypatch.setenv("FLYSESSION_SESSION_BINDING_HEADERS", "User-Agent, Accept-Language")
        config = Config({"flysession": {"session": {"ttl": 60, "cookie": {"path": "/app"}}}})
        props = config.bind(SessionProperties)
        assert props.ttl == 600
        assert props.cookie.secure is True
        assert props.cookie.path == "/app"
        assert props.store.redis.url == "redis://env:6379/2"
        assert props.binding_headers == ["user-agent", "accept-language"]

    def test_bind_resolves_placeholders(self, monkeypatch):
        monkeypatch.setenv("SESSION_SECRET", "s3cret")
        config = Config({"flysession": {"session": {"binding_secret": "${SESSION_SECRET}"}}})
        assert config.bind(SessionProperties).binding_secret == "s3cret"

    def test_env_key(self):
        assert env_key("flysession.session.idle-timeout") == "FLYSESSION_SESSION_IDLE_TIMEOUT"
        assert env_key("app.name") == "FLYSESSION_APP_NAME"

    def test_bind_undecorated_class(self):
        class Plain:
            pass

        with pytest.raises(InvalidConfigurationException):
            Config({}).bind(Plain)


class TestProfileConfigMerging:
    def test_merge_profile_config(self, tmp_path):
        base = tmp_path / "flysession.yaml"
        base.write_text("flysession:\n  session:\n    ttl: 1800\n    name: base\n")

        profile = tmp_path / "flysession-prod.yaml"
        profile.write_text("flysession:\n  session:\n    ttl: 600\n")

        config = Config.from_file(base, active_profiles=["prod"])
        assert config.get("flysession.session.ttl") == 600
        assert config.get("flysession.session.name") == "base"

    def test_later_profile_wins(self, tmp_path):
        (tmp_path / "flysession.yaml").write_text("db:\n  url: base\n")
        (tmp_path / "flysession-dev.yaml").write_text("db:\n  url: dev-url\n")
        (tmp_path / "flysession-local.yaml").write_text("db:\n  url: local-url\n")

        config = Config.from_sources(tmp_path, active_profiles=["dev", "local"])
        assert config.get("db.url") == "local-url"

    def test_missing_profile_file_is_skipped(self, tmp_path):
        base = tmp_path / "flysession.yaml"
        base.write_text("app:\n  name: test\n")

        config = Config.from_file(base, active_profiles=["nonexistent"])
        assert config.get("app.name") == "test"

    def test_env_vars_still_win(self, tmp_path, monkeypatch):
        (tmp_path / "flysession.yaml").write_text("app:\n  name: base\n")
        (tmp_path / "flysession-dev.yaml").write_text("app:\n  name: dev\n")

        monkeypatch.setenv("FLYSESSION_APP_NAME", "env-wins")
        config = Config.from_file(tmp_path / "flysession.yaml", active_profiles=["dev"])
        assert config.get("app.name") == "env-wins"
        assert os.environ["FLYSESSION_APP_NAME"] == "env-wins"

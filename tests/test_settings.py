"""Tests for environment-driven settings."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from minorm.settings import OrmSettings, get_settings


class TestOrmSettings:
    def test_defaults(self, monkeypatch):
        for key in ("DATABASE_URL", "DIALECT", "LOG_LEVEL", "JSON_LOGS", "ECHO_SQL"):
            monkeypatch.delenv(f"MINORM_{key}", raising=False)
        settings = OrmSettings(_env_file=None)
        assert settings.database_url == "memory"
        assert settings.dialect is None
        assert settings.log_level == "INFO"
        assert settings.json_logs is None
        assert settings.echo_sql is False

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("MINORM_DATABASE_URL", "sqlite:///people.db")
        monkeypatch.setenv("MINORM_DIALECT", "sqlite")
        monkeypatch.setenv("MINORM_ECHO_SQL", "true")
        settings = OrmSettings(_env_file=None)
        assert settings.database_url == "sqlite:///people.db"
        assert settings.dialect == "sqlite"
        assert settings.echo_sql is True

    def test_log_level_normalized(self, monkeypatch):
        monkeypatch.setenv("MINORM_LOG_LEVEL", "debug")
        assert OrmSettings(_env_file=None).log_level == "DEBUG"

    def test_invalid_log_level(self):
        with pytest.raises(ValidationError):
            OrmSettings(log_level="chatty", _env_file=None)

    def test_env_file(self, tmp_path, monkeypatch):
        monkeypatch.delenv("MINORM_DATABASE_URL", raising=False)
        env_file = tmp_path / ".env"
        env_file.write_text("MINORM_DATABASE_URL=from-dotenv.db\n")
        assert OrmSettings(_env_file=env_file).database_url == "from-dotenv.db"


class TestGetSettings:
    def test_cached(self):
        assert get_settings() is get_settings()

    def test_cache_clear_rereads_environment(self, monkeypatch):
        monkeypatch.setenv("MINORM_LOG_LEVEL", "WARNING")
        get_settings.cache_clear()
        assert get_settings().log_level == "WARNING"

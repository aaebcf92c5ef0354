"""Settings for minorm.

Environment-driven configuration read through pydantic-settings. Every
variable is prefixed with ``MINORM_`` and may also come from a ``.env``
file in the working directory.

Fields
──────
database_url : ``memory``, ``sqlite:///path.db``, a bare file path, or any
               SQLAlchemy URL
dialect      : Force a dialect name (``standard`` / ``sqlite``); inferred
               from the URL when unset
log_level    : Structlog log level
json_logs    : JSON log rendering (``None`` = auto-detect from tty)
echo_sql     : Log every executed statement at INFO instead of DEBUG

Examples:
    >>> import os
    >>> os.environ["MINORM_DATABASE_URL"] = "sqlite:///people.db"
    >>> get_settings.cache_clear()
    >>> get_settings().database_url
    'sqlite:///people.db'
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class OrmSettings(BaseSettings):
    """Runtime configuration for data sources, logging and the CLI."""

    model_config = SettingsConfigDict(
        env_prefix="MINORM_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Database ─────────────────────────────────────────────────
    database_url: str = Field(
        default="memory",
        description="Database URL or SQLite file path",
    )
    dialect: str | None = Field(
        default=None,
        description="SQL dialect name; inferred from database_url when unset",
    )

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    json_logs: bool | None = None
    echo_sql: bool = False

    @field_validator("log_level")
    @classmethod
    def _upper_log_level(cls, value: str) -> str:
        value = value.upper()
        if value not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"invalid log level {value!r}")
        return value


@lru_cache(maxsize=1)
def get_settings() -> OrmSettings:
    """Return the process-wide settings instance."""
    return OrmSettings()


__all__ = [
    "OrmSettings",
    "get_settings",
]

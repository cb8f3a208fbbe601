"""
leaddesk.config.postgres – PostgreSQL connection config (dataclass + validators).

Env vars: DATABASE_URL, DB_POOL_SIZE, DB_MAX_OVERFLOW, DB_POOL_TIMEOUT, DB_POOL_RECYCLE,
DB_ECHO, DB_APPLICATION_NAME.
"""
from __future__ import annotations

import os
from dataclasses import dataclass

_DEFAULT_URL = "postgresql://localhost/leaddesk"
_DEFAULT_APP_NAME = "leaddesk-backend"


def _validate_url(url: str) -> str:
    url = (url or "").strip()
    if not url:
        raise ValueError("DATABASE_URL is required and must be non-empty")
    if not (
        url.startswith("postgresql://")
        or url.startswith("postgres://")
        or url.startswith("postgresql+asyncpg://")
    ):
        raise ValueError(
            "DATABASE_URL must start with postgresql://, postgres:// or postgresql+asyncpg://"
        )
    return url


def _validate_int(value: int, name: str, min_val: int) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or value < min_val:
        raise ValueError(f"{name} must be an integer >= {min_val}, got {value!r}")
    return value


@dataclass(frozen=True)
class PostgresConfig:
    """
    PostgreSQL connection and pool configuration.

    Appointment confirmation relies on transaction-level advisory locks, so
    the target must be PostgreSQL (no SQLite fallback).
    """

    url: str
    """DSN (postgresql:// or postgres://). Converted to postgresql+asyncpg in engine."""

    pool_size: int = 10
    max_overflow: int = 20
    pool_timeout: int = 30
    """Seconds to wait for a connection from the pool."""

    pool_recycle: int = 1800
    """Seconds after which a connection is recycled."""

    echo: bool = False
    application_name: str = _DEFAULT_APP_NAME

    def __post_init__(self) -> None:
        _validate_url(self.url)
        _validate_int(self.pool_size, "pool_size", 1)
        _validate_int(self.max_overflow, "max_overflow", 0)
        _validate_int(self.pool_timeout, "pool_timeout", 1)
        _validate_int(self.pool_recycle, "pool_recycle", 1)
        if not isinstance(self.echo, bool):
            raise ValueError("echo must be a boolean")
        if not isinstance(self.application_name, str) or not self.application_name.strip():
            raise ValueError("application_name must be a non-empty string")

    @classmethod
    def from_env(cls, **overrides: object) -> PostgresConfig:
        """
        Build config from environment variables. Keyword overrides take
        precedence over env.
        """
        raw_url = overrides.get("url")
        if raw_url is None:
            raw_url = os.environ.get("DATABASE_URL", _DEFAULT_URL)

        _env_int = {
            "pool_size": ("DB_POOL_SIZE", 10),
            "max_overflow": ("DB_MAX_OVERFLOW", 20),
            "pool_timeout": ("DB_POOL_TIMEOUT", 30),
            "pool_recycle": ("DB_POOL_RECYCLE", 1800),
        }

        def _int(attr: str) -> int:
            v = overrides.get(attr)
            if v is not None:
                return int(v)
            env_name, default = _env_int[attr]
            return int(os.environ.get(env_name, default))

        echo = overrides.get("echo")
        if echo is None:
            echo = os.environ.get("DB_ECHO", "").strip().lower() in ("1", "true", "yes")
        elif isinstance(echo, str):
            echo = echo.lower() in ("1", "true", "yes")

        app_name = overrides.get("application_name") or os.environ.get(
            "DB_APPLICATION_NAME", _DEFAULT_APP_NAME
        )
        return cls(
            url=_validate_url(str(raw_url)),
            pool_size=_int("pool_size"),
            max_overflow=_int("max_overflow"),
            pool_timeout=_int("pool_timeout"),
            pool_recycle=_int("pool_recycle"),
            echo=bool(echo),
            application_name=str(app_name),
        )


def load_postgres_config(**overrides: object) -> PostgresConfig:
    """
    Load and validate PostgreSQL config from environment (with optional overrides).

    Raises ValueError on invalid env/values.
    """
    return PostgresConfig.from_env(**overrides)

"""
leaddesk.infra.database.engine – async engine and session factory for the scheduling store.

One engine per process, created lazily from PostgresConfig (env when not
given). Sessions run with the server timezone pinned to UTC so timestamptz
values come back as UTC regardless of the cluster default.
"""
from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Optional
from urllib.parse import urlparse, urlunparse

import asyncpg
from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncConnection,
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

# Importing the package registers appointments, scheduling_requests and
# scheduling_settings on Base.metadata.
import leaddesk.infra.database.models  # noqa: F401
from leaddesk.infra.database.models.base import Base

if TYPE_CHECKING:
    from leaddesk.config import PostgresConfig

logger = logging.getLogger(__name__)

_SAFE_DBNAME = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")

# Columns added after the first release; each statement is idempotent.
_COLUMN_MIGRATIONS = (
    "ALTER TABLE appointments ADD COLUMN IF NOT EXISTS reminder_minutes_before INTEGER",
    "ALTER TABLE scheduling_requests ADD COLUMN IF NOT EXISTS converted_appointment_id UUID",
)

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def _config_or_env(config: Optional["PostgresConfig"]) -> "PostgresConfig":
    if config is not None:
        return config
    from leaddesk.config import load_postgres_config
    return load_postgres_config()


def _asyncpg_url(url: str) -> str:
    """postgres:// and postgresql:// DSNs rewritten for the asyncpg dialect."""
    if "+asyncpg" in url:
        return url
    scheme, sep, rest = url.partition("://")
    if scheme in ("postgres", "postgresql"):
        return f"postgresql+asyncpg{sep}{rest}"
    return url


def _split_dsn(url: str) -> tuple[str, str]:
    """(target database name, DSN of the maintenance ``postgres`` database)."""
    parsed = urlparse(url.replace("+asyncpg", ""))
    dbname = (parsed.path or "").strip("/").split("?")[0].strip() or "postgres"
    maintenance = urlunparse(parsed._replace(path="/postgres"))
    return dbname, maintenance


async def ensure_database_exists(config: Optional["PostgresConfig"] = None) -> None:
    """CREATE DATABASE on first start. Does nothing when postgres is unreachable."""
    config = _config_or_env(config)
    dbname, maintenance_url = _split_dsn(config.url)
    if dbname == "postgres":
        return
    if not _SAFE_DBNAME.match(dbname):
        logger.warning("Database bootstrap skipped: %r is not a plain identifier", dbname)
        return
    try:
        conn = await asyncpg.connect(maintenance_url)
    except (OSError, asyncpg.PostgresError) as exc:
        logger.debug("Database bootstrap skipped, server unreachable: %s", exc)
        return
    try:
        exists = await conn.fetchval("SELECT 1 FROM pg_database WHERE datname = $1", dbname)
        if exists is None:
            await conn.execute(f'CREATE DATABASE "{dbname}"')
            logger.info("Database %s created", dbname)
    finally:
        await conn.close()


def build_engine(config: Optional["PostgresConfig"] = None) -> AsyncEngine:
    """Return the process-wide engine, creating it on first use."""
    global _engine
    if _engine is not None:
        return _engine

    config = _config_or_env(config)
    _engine = create_async_engine(
        _asyncpg_url(config.url),
        echo=config.echo,
        pool_size=config.pool_size,
        max_overflow=config.max_overflow,
        pool_timeout=config.pool_timeout,
        pool_recycle=config.pool_recycle,
        pool_pre_ping=True,
        connect_args={
            "server_settings": {
                "application_name": config.application_name,
                "timezone": "UTC",
                "jit": "off",
            }
        },
    )
    logger.info(
        "Database engine ready (pool_size=%d, max_overflow=%d)",
        config.pool_size, config.max_overflow,
    )
    return _engine


def build_session_factory(
    engine: Optional[AsyncEngine] = None,
) -> async_sessionmaker[AsyncSession]:
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            engine or build_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    return _session_factory


async def _apply_column_migrations(conn: AsyncConnection) -> None:
    for stmt in _COLUMN_MIGRATIONS:
        await conn.execute(text(stmt))


async def init_db(
    config: Optional["PostgresConfig"] = None,
    *,
    drop_all: bool = False,
) -> None:
    """Create the scheduling tables and partial indexes, then add late columns.

    Development bootstrap; production schemas are managed by migrations.
    """
    engine = build_engine(_config_or_env(config))
    async with engine.begin() as conn:
        if drop_all:
            logger.warning("Dropping scheduling tables (drop_all=True)")
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
        await _apply_column_migrations(conn)
    logger.info("Database schema up to date")


async def close_engine() -> None:
    """Dispose the pool on shutdown; the next build_engine() starts fresh."""
    global _engine, _session_factory
    if _engine is None:
        return
    await _engine.dispose()
    _engine = None
    _session_factory = None
    logger.info("Database engine disposed")

"""Async engine and session factory.

PostgreSQL (asyncpg) in every deployed environment; SQLite (aiosqlite) for
tests and the local simulation. Sessions are never handed out directly:
services open one through ``services.unit_of_work.unit_of_work()``, which
owns commit and rollback.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from atelier_clearinghouse.config import Settings, get_settings
from atelier_clearinghouse.logging_config import get_logger

logger = get_logger(__name__)

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def create_engine_for(url: str, settings: Settings | None = None) -> AsyncEngine:
    """Build an engine with pool options suited to the URL's dialect.

    An in-memory SQLite database lives inside one connection, so it gets a
    StaticPool shared by every session.
    """
    settings = settings or get_settings()
    parsed = make_url(url)
    options: dict[str, Any] = {"echo": settings.db_echo_sql}

    if parsed.get_backend_name() == "sqlite":
        options["connect_args"] = {"check_same_thread": False}
        if parsed.database in (None, "", ":memory:"):
            options["poolclass"] = StaticPool
    else:
        options.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_timeout=settings.db_pool_timeout,
            pool_pre_ping=True,
        )

    engine = create_async_engine(url, **options)
    logger.info(
        "database.engine_created",
        backend=parsed.get_backend_name(),
        database=parsed.database,
    )
    return engine


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory used by the app, the scheduler and the tests.

    ``expire_on_commit=False`` keeps returned ORM objects readable after the
    unit of work has committed and closed its session.
    """
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Process-wide session factory for ``settings.database_url``."""
    global _engine, _session_factory
    if _session_factory is None:
        _engine = create_engine_for(get_settings().database_url)
        _session_factory = build_session_factory(_engine)
    return _session_factory


async def create_schema(engine: AsyncEngine) -> None:
    from atelier_clearinghouse.infrastructure.database.orm_models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def init_db() -> None:
    """Create the engine; in development also create missing tables.

    Outside development the schema is managed by the deployment.
    """
    get_session_factory()
    assert _engine is not None
    if get_settings().is_development:
        await create_schema(_engine)
        logger.info("database.tables_created")
    else:
        logger.info("database.skipping_create_all", env=get_settings().app_env)


async def close_db() -> None:
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        logger.info("database.engine_disposed")
    _engine = None
    _session_factory = None

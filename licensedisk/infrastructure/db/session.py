"""
Engine and session lifecycle for the scan store.

MySQL through aiomysql in deployments, SQLite through aiosqlite for
local runs and the test suite.
"""

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool, StaticPool

from licensedisk.core.config import get_settings

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def engine_options(database_url: str, echo: bool = False) -> dict[str, Any]:
    """
    Engine keyword arguments for a database URL.

    In-memory SQLite must share one connection, otherwise each session
    sees an empty database.
    """
    if database_url.startswith("sqlite"):
        options: dict[str, Any] = {"echo": echo}
        if ":memory:" in database_url:
            options["poolclass"] = StaticPool
            options["connect_args"] = {"check_same_thread": False}
        return options

    return {"echo": echo, "pool_pre_ping": True, "pool_recycle": 3600}


def get_engine() -> AsyncEngine:
    """Return the process-wide engine, creating it from settings on first use."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_async_engine(
            settings.database_url,
            **engine_options(settings.database_url, echo=settings.debug),
        )
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return the sessionmaker bound to ``get_engine()``."""
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            bind=get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    return _session_factory


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Request-scoped session dependency.

    Commits once the handler returns, rolls back if it raises.
    """
    session_factory = get_session_factory()
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def init_db() -> None:
    """Create the vehicle_scans table if it does not exist yet."""
    from licensedisk.infrastructure.db.models import Base

    engine = get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def ping_db() -> bool:
    """Run a trivial query to check the database is reachable."""
    async with get_session_factory()() as session:
        await session.execute(text("SELECT 1"))
    return True


async def close_db() -> None:
    """Dispose of the engine so pooled connections are released."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None


def create_test_engine(database_url: str) -> AsyncEngine:
    """Build a standalone engine that bypasses the cached application engine."""
    if database_url.startswith("sqlite"):
        return create_async_engine(database_url, **engine_options(database_url))
    return create_async_engine(database_url, poolclass=NullPool)

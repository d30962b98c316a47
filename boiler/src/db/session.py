"""
Async database engine and session factory.

Uses SQLAlchemy 2.x async engines: asyncpg for PostgreSQL in production,
aiosqlite for local runs and tests. SQLite connections get foreign keys
switched on so an unknown device is rejected the same way on both.

CHANGELOG:
- 2026-10-17: Take the URL from settings; enable SQLite foreign keys (STORY-008)
- 2026-10-17: Initial creation (STORY-007)
"""

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from boiler.src.db.models import Base


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:  # noqa: ANN001
    """Turn on FK enforcement for every new SQLite connection."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_engine(database_url: str) -> AsyncEngine:
    """Create an async SQLAlchemy engine.

    Args:
        database_url: Async URL, e.g. ``postgresql+asyncpg://...`` or
            ``sqlite+aiosqlite:///path.db``.

    Returns:
        AsyncEngine: Configured async engine.
    """
    engine = create_async_engine(database_url, echo=False)
    if engine.dialect.name == "sqlite":
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create an async session factory bound to *engine*."""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_schema(engine: AsyncEngine) -> None:
    """Create any missing tables. Existing tables are left untouched."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

"""
Async database engine and session factory.

Uses SQLAlchemy 2.0 async engine with asyncpg (Postgres) or aiosqlite (dev/tests).
"""

from __future__ import annotations

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from newsroom.core.config import get_settings
from newsroom.models.models import Base

settings = get_settings()


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:  # noqa: ARG001
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine; SQLite gets FK enforcement and, in-memory, a shared connection."""
    if "sqlite" not in database_url:
        return create_async_engine(database_url, echo=echo, pool_pre_ping=True)

    kwargs: dict = {"connect_args": {"check_same_thread": False}}
    if ":memory:" in database_url:
        kwargs["poolclass"] = StaticPool
    engine = create_async_engine(database_url, echo=echo, **kwargs)
    event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def create_tables(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


engine = build_engine(settings.database_url, echo=settings.database_echo)

async_session = build_session_factory(engine)

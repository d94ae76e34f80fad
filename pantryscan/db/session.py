"""Async SQLAlchemy engine and session helpers."""

from __future__ import annotations

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

# ``Base`` is the parent class for every SQLAlchemy model defined in pantryscan/models.
Base = declarative_base()

SessionFactory = async_sessionmaker[AsyncSession]


def _enable_sqlite_pragmas(dbapi_connection, connection_record) -> None:  # pragma: no cover - driver hook
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA busy_timeout=5000")
    cursor.close()


def build_engine(url: str, *, echo: bool = False) -> AsyncEngine:
    """Create the async engine; SQLite gets foreign keys and a busy timeout."""

    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    engine = create_async_engine(url, echo=echo, connect_args=connect_args)
    if url.startswith("sqlite"):
        event.listen(engine.sync_engine, "connect", _enable_sqlite_pragmas)
    return engine


def build_session_factory(engine: AsyncEngine) -> SessionFactory:
    # ``expire_on_commit=False`` keeps loaded attributes usable after commit
    # without an implicit (and, under asyncio, illegal) lazy refresh.
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


async def create_all(engine: AsyncEngine) -> None:
    # Importing the models registers them with the metadata.
    from .. import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


"""Database connection and session management for the taxonomy service.

Provides async SQLAlchemy session management with connection pooling.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from occutax.config import DBConfig, get_config
from occutax.db.models import Base

# Global engine instance
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def create_engine_for(db_config: DBConfig) -> AsyncEngine:
    """Build an async engine for ``db_config``.

    SQLite connections get foreign keys switched on so delete ordering is
    checked the same way PostgreSQL checks it.
    """
    engine_kwargs: dict[str, Any] = {"echo": db_config.echo}

    if db_config.is_sqlite:
        if ":memory:" in db_config.url:
            # One shared connection, otherwise every checkout sees an empty database
            engine_kwargs["poolclass"] = StaticPool
    else:
        engine_kwargs.update({
            "pool_size": db_config.pool_size,
            "max_overflow": db_config.pool_max_overflow,
            "pool_timeout": db_config.pool_timeout,
            "pool_pre_ping": True,  # Verify connections before using
            "pool_recycle": 3600,  # Recycle connections after 1 hour
        })

    engine = create_async_engine(db_config.url, **engine_kwargs)

    if db_config.is_sqlite:

        @event.listens_for(engine.sync_engine, "connect")
        def _sqlite_pragmas(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def get_engine() -> AsyncEngine:
    """Get or create singleton async engine."""
    global _engine

    if _engine is None:
        _engine = create_engine_for(get_config().db)

    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get or create session factory."""
    global _session_factory

    if _session_factory is None:
        _session_factory = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,  # Don't expire objects after commit
        )

    return _session_factory


def set_session_factory(factory: async_sessionmaker[AsyncSession] | None) -> None:
    """Override the session factory (tests, CLI against an explicit engine)."""
    global _session_factory
    _session_factory = factory


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Get async database session (context manager).

    Read-only callers use this directly; writes to audited tables go through
    ``occutax.audit.context.audited_session`` so the actor is recorded.

    Usage:
        async with get_session() as session:
            result = await session.execute(query)
    """
    session = get_session_factory()()

    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding a read session."""
    async with get_session() as session:
        yield session


async def init_db(engine: AsyncEngine | None = None, *, drop: bool = False, audit: bool = True) -> None:
    """Create all tables and, unless disabled, install the audit triggers.

    Note: For production schema evolution, run migrations instead.
    """
    from occutax.audit.triggers import drop_audit_triggers, install_audit_triggers

    engine = engine or get_engine()

    async with engine.begin() as conn:
        if drop:
            await conn.run_sync(drop_audit_triggers)
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
        if audit:
            await conn.run_sync(install_audit_triggers)


async def close_db() -> None:
    """Close database engine and dispose connections.

    Call this on application shutdown.
    """
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None

"""Audit context propagation for database units of work.

The audit triggers read the acting user from transaction-local state, so the
context must be applied inside the same transaction as the writes it labels:

- PostgreSQL: ``set_config('app.<key>', value, true)`` (transaction scoped)
- SQLite: the one-row ``taxonomy_audit_context`` table, cleared before commit
  and discarded by rollback

Context never leaks into later transactions on a pooled connection.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import TypeVar

import structlog
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from occutax.audit.triggers import SQLITE_CONTEXT_TABLE
from occutax.core.errors import InternalError, TaxonomyError
from occutax.db.connection import get_session_factory
from occutax.models import AuditContext

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def _dialect(session: AsyncSession) -> str:
    return session.get_bind().dialect.name


async def _sqlite_context_table_exists(session: AsyncSession) -> bool:
    result = await session.execute(
        text("SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = :name"),
        {"name": SQLITE_CONTEXT_TABLE},
    )
    return result.scalar_one_or_none() is not None


async def apply_audit_context(session: AsyncSession, context: AuditContext | None) -> None:
    """Attach ``context`` to the session's current transaction.

    Absent values are left unset; the triggers record them as NULL.
    """
    if context is None:
        return

    dialect = _dialect(session)
    if dialect == "postgresql":
        for key, value in context.settings().items():
            if value is None:
                continue
            # Bound parameters, never interpolated
            await session.execute(
                text("SELECT set_config(:name, :value, true)"),
                {"name": f"app.{key}", "value": value},
            )
    elif dialect == "sqlite":
        if not await _sqlite_context_table_exists(session):
            return
        await session.execute(text(f"DELETE FROM {SQLITE_CONTEXT_TABLE}"))
        await session.execute(
            text(
                f"INSERT INTO {SQLITE_CONTEXT_TABLE} "
                "(id, user_id, session_id, ip_address, user_agent) "
                "VALUES (1, :user_id, :session_id, :ip_address, :user_agent)"
            ),
            {
                "user_id": context.user_id,
                "session_id": context.session_id,
                "ip_address": context.ip_address,
                "user_agent": context.user_agent,
            },
        )

    logger.debug("audit_context_applied", user_id=context.user_id, session_id=context.session_id)


async def clear_audit_context(session: AsyncSession) -> None:
    """Remove the context before commit (SQLite only; PostgreSQL settings expire)."""
    if _dialect(session) == "sqlite" and await _sqlite_context_table_exists(session):
        await session.execute(text(f"DELETE FROM {SQLITE_CONTEXT_TABLE}"))


@asynccontextmanager
async def audited_session(
    context: AuditContext | None,
    factory: async_sessionmaker[AsyncSession] | None = None,
) -> AsyncGenerator[AsyncSession, None]:
    """Open a session with one transaction labelled by ``context``.

    Commits when the block exits normally; any exception rolls back every
    write and every trigger-written audit row. Storage failures surface as
    ``InternalError``; taxonomy errors propagate unchanged.

    Usage:
        async with audited_session(ctx) as session:
            await assign_parent(session, ...)
    """
    factory = factory or get_session_factory()

    async with factory() as session:
        try:
            async with session.begin():
                await apply_audit_context(session, context)
                yield session
                await clear_audit_context(session)
        except TaxonomyError:
            raise
        except SQLAlchemyError as exc:
            logger.error("audited_transaction_failed", error=str(exc), exc_info=True)
            raise InternalError() from exc


async def with_audit_context(
    context: AuditContext | None,
    fn: Callable[[AsyncSession], Awaitable[T]],
    *,
    session: AsyncSession | None = None,
    factory: async_sessionmaker[AsyncSession] | None = None,
) -> T:
    """Run ``fn`` inside one audited transaction and return its result.

    When ``session`` is already inside a transaction, ``fn`` runs inline on
    it: the caller owns the transaction and the context it carries.
    """
    if session is not None and session.in_transaction():
        return await fn(session)

    async with audited_session(context, factory) as new_session:
        return await fn(new_session)

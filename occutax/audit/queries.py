"""Read side of the audit log: filtered listing, statistics and record history."""

from __future__ import annotations

import json
import math
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from occutax.core.errors import InvalidArgument
from occutax.db.models import AuditLogModel
from occutax.models import (
    AuditFilters,
    AuditLogEntry,
    AuditLogPage,
    AuditStats,
    CountBucket,
)

MAX_PAGE_SIZE = 500


def parse_snapshot(raw: str | None) -> Any:
    """Decode a stored JSON snapshot; NULL stays None."""
    if raw is None:
        return None
    return json.loads(raw)


def to_entry(row: AuditLogModel) -> AuditLogEntry:
    return AuditLogEntry(
        id=row.id,
        table_name=row.table_name,
        record_id=row.record_id,
        operation=row.operation,
        old_values=parse_snapshot(row.old_values),
        new_values=parse_snapshot(row.new_values),
        changed_fields=parse_snapshot(row.changed_fields),
        user_id=row.user_id,
        session_id=row.session_id,
        timestamp=row.timestamp,
        ip_address=row.ip_address,
        user_agent=row.user_agent,
    )


def _conditions(filters: AuditFilters) -> list:
    conditions = []
    if filters.table_name:
        conditions.append(AuditLogModel.table_name == filters.table_name)
    if filters.operation:
        conditions.append(AuditLogModel.operation == filters.operation.value)
    if filters.user_id:
        conditions.append(AuditLogModel.user_id == filters.user_id)
    if filters.record_id:
        conditions.append(AuditLogModel.record_id == filters.record_id)
    if filters.date_from:
        conditions.append(AuditLogModel.timestamp >= filters.date_from)
    if filters.date_to:
        conditions.append(AuditLogModel.timestamp <= filters.date_to)
    return conditions


async def list_audit_logs(
    session: AsyncSession,
    filters: AuditFilters | None = None,
    page: int = 1,
    limit: int = 50,
) -> AuditLogPage:
    """Return one page of audit rows, newest first.

    Args:
        filters: Exact-match filters plus an inclusive timestamp range
        page: 1-based page number
        limit: Page size (1..500)
    """
    if page < 1:
        raise InvalidArgument("page must be >= 1")
    if limit < 1 or limit > MAX_PAGE_SIZE:
        raise InvalidArgument(f"limit must be between 1 and {MAX_PAGE_SIZE}")

    conditions = _conditions(filters or AuditFilters())

    stmt = select(AuditLogModel)
    count_stmt = select(func.count(AuditLogModel.id))
    if conditions:
        stmt = stmt.where(and_(*conditions))
        count_stmt = count_stmt.where(and_(*conditions))

    stmt = (
        stmt.order_by(AuditLogModel.timestamp.desc(), AuditLogModel.id.desc())
        .limit(limit)
        .offset((page - 1) * limit)
    )

    total = (await session.execute(count_stmt)).scalar_one()
    rows = (await session.execute(stmt)).scalars().all()

    return AuditLogPage(
        data=[to_entry(row) for row in rows],
        page=page,
        limit=limit,
        total=total,
        total_pages=math.ceil(total / limit),
    )


async def audit_stats(session: AsyncSession, days: int = 7) -> AuditStats:
    """Totals by table and operation plus per-day counts for the last ``days`` days."""
    total = (await session.execute(select(func.count(AuditLogModel.id)))).scalar_one()

    count_col = func.count(AuditLogModel.id).label("count")

    by_table = await session.execute(
        select(AuditLogModel.table_name, count_col)
        .group_by(AuditLogModel.table_name)
        .order_by(count_col.desc(), AuditLogModel.table_name)
    )
    by_operation = await session.execute(
        select(AuditLogModel.operation, count_col)
        .group_by(AuditLogModel.operation)
        .order_by(AuditLogModel.operation)
    )

    since = datetime.now(timezone.utc) - timedelta(days=days)
    day_col = func.date(AuditLogModel.timestamp)
    recent = await session.execute(
        select(day_col.label("day"), count_col)
        .where(AuditLogModel.timestamp >= since)
        .group_by(day_col)
        .order_by(day_col)
    )

    return AuditStats(
        total=total,
        by_table=[CountBucket(key=row.table_name, count=row.count) for row in by_table],
        by_operation=[CountBucket(key=row.operation, count=row.count) for row in by_operation],
        recent_activity=[CountBucket(key=str(row.day), count=row.count) for row in recent],
    )


async def record_history(
    session: AsyncSession, table_name: str, record_id: str | int
) -> list[AuditLogEntry]:
    """Full change history of one row, newest first."""
    stmt = (
        select(AuditLogModel)
        .where(
            AuditLogModel.table_name == table_name,
            AuditLogModel.record_id == str(record_id),
        )
        .order_by(AuditLogModel.timestamp.desc(), AuditLogModel.id.desc())
    )
    rows = (await session.execute(stmt)).scalars().all()
    return [to_entry(row) for row in rows]

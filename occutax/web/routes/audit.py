"""Audit trail routes.

Routes:
- GET /api/audit-logs                          - Filtered, paginated audit rows
- GET /api/audit-logs/stats                    - Totals and recent activity
- GET /api/audit-logs/record/{table}/{id}      - History of one row
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Query

from occutax.audit.queries import audit_stats, list_audit_logs, record_history
from occutax.config import get_config
from occutax.db.connection import get_session
from occutax.models import AuditFilters

router = APIRouter(prefix="/api/audit-logs", tags=["audit"])


@router.get("")
async def get_audit_logs(
    table_name: str | None = None,
    operation: str | None = None,
    user_id: str | None = None,
    record_id: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    page: int = Query(default=1),
    limit: int = Query(default=50),
):
    """List audit rows, newest first.

    Page bounds are checked by the query layer so out-of-range values come
    back as ``InvalidArgument``.
    """
    filters = AuditFilters(
        table_name=table_name,
        operation=operation,
        user_id=user_id,
        record_id=record_id,
        date_from=date_from,
        date_to=date_to,
    )
    async with get_session() as session:
        return await list_audit_logs(session, filters, page=page, limit=limit)


@router.get("/stats")
async def get_audit_stats(days: int | None = Query(default=None, ge=1, le=365)):
    if days is None:
        days = get_config().audit.recent_activity_days
    async with get_session() as session:
        return await audit_stats(session, days=days)


@router.get("/record/{table_name}/{record_id}")
async def get_record_history(table_name: str, record_id: str):
    async with get_session() as session:
        return await record_history(session, table_name, record_id)

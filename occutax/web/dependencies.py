"""Shared dependencies for the taxonomy API routes.

Usage:
    from fastapi import Depends
    from occutax.web.dependencies import get_audit_context

    @router.post("/things")
    async def create(context: AuditContext = Depends(get_audit_context)):
        async with audited_session(context) as session:
            ...
"""

from __future__ import annotations

from fastapi import Request

from occutax.config import get_config
from occutax.models import AuditContext

SESSION_HEADER = "X-Session-ID"
SESSION_COOKIE = "session"


def get_audit_context(request: Request) -> AuditContext:
    """Build the actor context for a mutating request.

    The acting user is the configured default (single-credential API); the
    session id comes from ``X-Session-ID`` or the session cookie.
    """
    session_id = request.headers.get(SESSION_HEADER) or request.cookies.get(SESSION_COOKIE)
    return AuditContext(
        user_id=get_config().audit.default_user_id,
        session_id=session_id,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("User-Agent"),
    )

"""Global search route.

Routes:
- GET /api/search?q=... - Up to ten matches per entity kind
"""

from __future__ import annotations

from fastapi import APIRouter, Query

from occutax.db.connection import get_session
from occutax.store.search import global_search

router = APIRouter(prefix="/api/search", tags=["search"])


@router.get("")
async def search(q: str = Query(default="")):
    async with get_session() as session:
        return await global_search(session, q)

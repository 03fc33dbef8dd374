"""Hierarchy browsing routes.

Routes:
- GET /api/tree/roots                      - Top-level groups
- GET /api/tree/children/{type}/{id}       - Direct children of a node
- GET /api/tree/unlinked                   - Occupations without a parent
"""

from __future__ import annotations

from fastapi import APIRouter, Query

from occutax.db.connection import get_session
from occutax.graph import relationships
from occutax.models import OccupationOut

router = APIRouter(prefix="/api/tree", tags=["tree"])


@router.get("/roots")
async def get_roots():
    async with get_session() as session:
        return await relationships.get_roots(session)


@router.get("/children/{entity_type}/{entity_id}")
async def get_children(entity_type: str, entity_id: int):
    async with get_session() as session:
        return await relationships.get_children(session, entity_type, entity_id)


@router.get("/unlinked")
async def get_unlinked(limit: int = Query(default=100, ge=1, le=1000)):
    async with get_session() as session:
        rows = await relationships.unlinked_occupations(session, limit=limit)
        total = await relationships.count_unlinked_occupations(session)
        return {"data": [OccupationOut.model_validate(row) for row in rows], "total": total}

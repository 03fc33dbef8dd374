"""Synonym routes.

Routes:
- GET    /api/synonyms                - List/search synonyms with their source
- POST   /api/synonyms                - Create a synonym
- GET    /api/synonyms/{id}           - Get one synonym
- PUT    /api/synonyms/{id}           - Update a synonym (and source)
- DELETE /api/synonyms/{id}           - Delete with links and mappings
- POST   /api/occupation-synonyms     - Link a synonym to an occupation
- DELETE /api/occupation-synonyms     - Unlink a synonym from an occupation
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response, status

from occutax.audit.context import audited_session
from occutax.db.connection import get_session
from occutax.models import AuditContext
from occutax.store import occupations, synonyms
from occutax.store.models import SynonymCreate, SynonymUpdate
from occutax.web.dependencies import get_audit_context
from occutax.web.models import SynonymLinkRequest

router = APIRouter(tags=["synonyms"])


@router.get("/api/synonyms")
async def list_synonyms(
    search: str | None = None,
    language: str | None = None,
    source_id: int | None = None,
    without_source: bool = False,
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
):
    async with get_session() as session:
        rows, total = await synonyms.list_synonyms(
            session,
            search=search,
            language=language,
            source_id=source_id,
            without_source=without_source,
            limit=limit,
            offset=offset,
        )
    return {"data": rows, "total": total, "limit": limit, "offset": offset}


@router.post("/api/synonyms", status_code=status.HTTP_201_CREATED)
async def create_synonym(body: SynonymCreate, context: AuditContext = Depends(get_audit_context)):
    async with audited_session(context) as session:
        synonym = await synonyms.create_synonym(session, body)
        return await synonyms.get_synonym(session, synonym.id)


@router.get("/api/synonyms/{synonym_id}")
async def get_synonym(synonym_id: int):
    async with get_session() as session:
        return await synonyms.get_synonym(session, synonym_id)


@router.put("/api/synonyms/{synonym_id}")
async def update_synonym(
    synonym_id: int,
    body: SynonymUpdate,
    context: AuditContext = Depends(get_audit_context),
):
    async with audited_session(context) as session:
        await synonyms.update_synonym(session, synonym_id, body)
        return await synonyms.get_synonym(session, synonym_id)


@router.delete("/api/synonyms/{synonym_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_synonym(synonym_id: int, context: AuditContext = Depends(get_audit_context)):
    async with audited_session(context) as session:
        await synonyms.delete_synonym(session, synonym_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ============================================================================
# Occupation <-> synonym links
# ============================================================================

@router.post("/api/occupation-synonyms")
async def link_synonym(
    body: SynonymLinkRequest, context: AuditContext = Depends(get_audit_context)
):
    async with audited_session(context) as session:
        created = await occupations.link_synonym(session, body.occupation_id, body.synonym_id)
    return {"linked": True, "created": created}


@router.delete("/api/occupation-synonyms", status_code=status.HTTP_204_NO_CONTENT)
async def unlink_synonym(
    occupation_id: int,
    synonym_id: int,
    context: AuditContext = Depends(get_audit_context),
):
    async with audited_session(context) as session:
        await occupations.unlink_synonym(session, occupation_id, synonym_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

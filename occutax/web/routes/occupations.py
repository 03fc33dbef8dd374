"""Occupation routes.

Routes:
- GET    /api/occupations                      - List/search occupations
- POST   /api/occupations                      - Create with synonyms, parent and source
- POST   /api/occupations/merge                - Merge one occupation into another
- GET    /api/occupations/{id}                 - Get one occupation
- GET    /api/occupations/{id}/details         - Occupation with parent and children
- GET    /api/occupations/{id}/synonyms        - Linked synonyms
- PUT    /api/occupations/{id}                 - Update fields (and source)
- PUT    /api/occupations/{id}/relations       - Full edit: synonyms, parent, source
- DELETE /api/occupations/{id}                 - Delete with edges and links
- PUT    /api/occupations/{id}/relationship    - Assign (or move to) a parent
- DELETE /api/occupations/{id}/relationship    - Detach from parent
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response, status

from occutax.audit.context import audited_session
from occutax.db.connection import get_session
from occutax.graph import merge, relationships
from occutax.models import AuditContext, OccupationOut, SynonymOut
from occutax.store import occupations
from occutax.store.models import OccupationCreate, OccupationRelationsUpdate, OccupationUpdate
from occutax.web.dependencies import get_audit_context
from occutax.web.models import AssignParentRequest, MergeRequest

router = APIRouter(prefix="/api/occupations", tags=["occupations"])


@router.get("")
async def list_occupations(
    search: str | None = None,
    language: str | None = None,
    career_level: int | None = Query(default=None, ge=0, le=6),
    source_id: int | None = None,
    without_source: bool = False,
    unlinked: bool = False,
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
):
    async with get_session() as session:
        rows, total = await occupations.list_occupations(
            session,
            search=search,
            language=language,
            career_level=career_level,
            source_id=source_id,
            without_source=without_source,
            unlinked=unlinked,
            limit=limit,
            offset=offset,
        )
    return {
        "data": [OccupationOut.model_validate(row) for row in rows],
        "total": total,
        "limit": limit,
        "offset": offset,
    }


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_occupation(
    body: OccupationCreate, context: AuditContext = Depends(get_audit_context)
):
    async with audited_session(context) as session:
        occupation = await occupations.create_occupation(session, body)
        return OccupationOut.model_validate(occupation)


@router.post("/merge")
async def merge_occupations(body: MergeRequest, context: AuditContext = Depends(get_audit_context)):
    async with audited_session(context) as session:
        result = await merge.merge_occupations(session, body.source_id, body.target_id)
    return {"message": "Occupations merged successfully", "result": result}


@router.get("/{occupation_id}")
async def get_occupation(occupation_id: int):
    async with get_session() as session:
        occupation = await occupations.get_occupation(session, occupation_id)
        return OccupationOut.model_validate(occupation)


@router.get("/{occupation_id}/details")
async def get_occupation_details(occupation_id: int):
    async with get_session() as session:
        return await relationships.get_occupation_details(session, occupation_id)


@router.get("/{occupation_id}/synonyms")
async def get_occupation_synonyms(occupation_id: int):
    async with get_session() as session:
        rows = await occupations.list_occupation_synonyms(session, occupation_id)
        return [SynonymOut.model_validate(row) for row in rows]


@router.put("/{occupation_id}")
async def update_occupation(
    occupation_id: int,
    body: OccupationUpdate,
    context: AuditContext = Depends(get_audit_context),
):
    async with audited_session(context) as session:
        occupation = await occupations.update_occupation(session, occupation_id, body)
        return OccupationOut.model_validate(occupation)


@router.put("/{occupation_id}/relations")
async def update_occupation_with_relations(
    occupation_id: int,
    body: OccupationRelationsUpdate,
    context: AuditContext = Depends(get_audit_context),
):
    async with audited_session(context) as session:
        occupation = await occupations.update_occupation_with_relations(
            session, occupation_id, body
        )
        return OccupationOut.model_validate(occupation)


@router.delete("/{occupation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_occupation(occupation_id: int, context: AuditContext = Depends(get_audit_context)):
    async with audited_session(context) as session:
        await occupations.delete_occupation(session, occupation_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put("/{occupation_id}/relationship")
async def assign_parent(
    occupation_id: int,
    body: AssignParentRequest,
    context: AuditContext = Depends(get_audit_context),
):
    """Assign a parent; an identical existing parent is reported, not rejected."""
    async with audited_session(context) as session:
        return await relationships.assign_parent(
            session, occupation_id, body.parent_type, body.parent_id
        )


@router.delete("/{occupation_id}/relationship")
async def remove_parent(occupation_id: int, context: AuditContext = Depends(get_audit_context)):
    async with audited_session(context) as session:
        removed = await relationships.remove_parent(session, occupation_id)
    return {"removed": removed}

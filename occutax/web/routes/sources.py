"""Taxonomy source routes.

Routes:
- GET    /api/sources         - List sources
- POST   /api/sources         - Create a source
- GET    /api/sources/{id}    - Get one source
- PUT    /api/sources/{id}    - Update a source
- DELETE /api/sources/{id}    - Delete an unreferenced source
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status

from occutax.audit.context import audited_session
from occutax.db.connection import get_session
from occutax.models import AuditContext, SourceOut
from occutax.store import sources
from occutax.store.models import SourceCreate, SourceUpdate
from occutax.web.dependencies import get_audit_context

router = APIRouter(prefix="/api/sources", tags=["sources"])


@router.get("")
async def list_sources():
    async with get_session() as session:
        return [SourceOut.model_validate(row) for row in await sources.list_sources(session)]


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_source(body: SourceCreate, context: AuditContext = Depends(get_audit_context)):
    async with audited_session(context) as session:
        source = await sources.create_source(session, body)
        return SourceOut.model_validate(source)


@router.get("/{source_id}")
async def get_source(source_id: int):
    async with get_session() as session:
        return SourceOut.model_validate(await sources.get_source(session, source_id))


@router.put("/{source_id}")
async def update_source(
    source_id: int,
    body: SourceUpdate,
    context: AuditContext = Depends(get_audit_context),
):
    async with audited_session(context) as session:
        source = await sources.update_source(session, source_id, body)
        return SourceOut.model_validate(source)


@router.delete("/{source_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_source(source_id: int, context: AuditContext = Depends(get_audit_context)):
    async with audited_session(context) as session:
        await sources.delete_source(session, source_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

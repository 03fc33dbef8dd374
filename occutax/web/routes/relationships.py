"""Generic taxonomy relationship routes.

Routes:
- GET    /api/taxonomy-relationships         - List edges (optionally for one node)
- POST   /api/taxonomy-relationships         - Create an edge and its mirror
- DELETE /api/taxonomy-relationships/{id}    - Delete an edge and its mirror
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from occutax.audit.context import audited_session
from occutax.core.errors import InvalidArgument
from occutax.db.connection import get_session
from occutax.graph import relationships
from occutax.models import AuditContext, EntityRef, RelationshipOut
from occutax.web.dependencies import get_audit_context
from occutax.web.models import RelationshipCreate

router = APIRouter(prefix="/api/taxonomy-relationships", tags=["relationships"])


@router.get("")
async def list_relationships(entity_type: str | None = None, entity_id: int | None = None):
    ref = None
    if entity_type is not None or entity_id is not None:
        if entity_type is None or entity_id is None:
            raise InvalidArgument("entity_type and entity_id must be given together")
        ref = EntityRef(type=relationships.parse_entity_type(entity_type), id=entity_id)

    async with get_session() as session:
        rows = await relationships.list_relationships(session, ref)
        return [RelationshipOut.model_validate(row) for row in rows]


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_relationship(
    body: RelationshipCreate, context: AuditContext = Depends(get_audit_context)
):
    source = EntityRef(
        type=relationships.parse_entity_type(body.source_entity_type), id=body.source_entity_id
    )
    target = EntityRef(
        type=relationships.parse_entity_type(body.target_entity_type), id=body.target_entity_id
    )

    async with audited_session(context) as session:
        row = await relationships.create_relationship(
            session, source, target, body.relationship_type
        )
        return RelationshipOut.model_validate(row)


@router.delete("/{relationship_id}")
async def delete_relationship(
    relationship_id: int, context: AuditContext = Depends(get_audit_context)
):
    async with audited_session(context) as session:
        removed = await relationships.delete_relationship(session, relationship_id)
    return {"deleted": removed}

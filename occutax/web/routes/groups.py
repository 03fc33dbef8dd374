"""Taxonomy group routes.

Routes:
- GET    /api/groups                   - List groups (optional label search)
- POST   /api/groups                   - Create a group
- GET    /api/groups/by-code/{code}    - Look up a group by ESCO code
- GET    /api/groups/{id}              - Get one group
- PUT    /api/groups/{id}              - Update a group
- DELETE /api/groups/{id}              - Delete a group and its edges
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status

from occutax.audit.context import audited_session
from occutax.db.connection import get_session
from occutax.models import AuditContext, GroupOut
from occutax.store import groups
from occutax.store.models import GroupCreate, GroupUpdate
from occutax.web.dependencies import get_audit_context

router = APIRouter(prefix="/api/groups", tags=["groups"])


@router.get("")
async def list_groups(search: str | None = None):
    async with get_session() as session:
        rows = await groups.list_groups(session, search)
        return [GroupOut.model_validate(row) for row in rows]


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_group(body: GroupCreate, context: AuditContext = Depends(get_audit_context)):
    async with audited_session(context) as session:
        group = await groups.create_group(session, body)
        return GroupOut.model_validate(group)


@router.get("/by-code/{esco_code}")
async def get_group_by_code(esco_code: str):
    async with get_session() as session:
        group = await groups.get_group_by_esco_code(session, esco_code)
        return GroupOut.model_validate(group)


@router.get("/{group_id}")
async def get_group(group_id: int):
    async with get_session() as session:
        group = await groups.get_group(session, group_id)
        return GroupOut.model_validate(group)


@router.put("/{group_id}")
async def update_group(
    group_id: int,
    body: GroupUpdate,
    context: AuditContext = Depends(get_audit_context),
):
    async with audited_session(context) as session:
        group = await groups.update_group(session, group_id, body)
        return GroupOut.model_validate(group)


@router.delete("/{group_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_group(group_id: int, context: AuditContext = Depends(get_audit_context)):
    async with audited_session(context) as session:
        await groups.delete_group(session, group_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

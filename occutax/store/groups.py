"""Taxonomy group (classification branch) records."""

from __future__ import annotations

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from occutax.core.errors import InvalidArgument, NotFound
from occutax.db.models import OccupationTaxonomyMappingModel, TaxonomyGroupModel
from occutax.graph.relationships import delete_entity_edges
from occutax.models import EntityRef
from occutax.store.models import GroupCreate, GroupUpdate

logger = structlog.get_logger(__name__)


def _clean_label(label: str | None) -> str:
    label = (label or "").strip()
    if not label:
        raise InvalidArgument("Group label must not be empty")
    return label


async def list_groups(session: AsyncSession, search: str | None = None) -> list[TaxonomyGroupModel]:
    stmt = select(TaxonomyGroupModel).order_by(
        TaxonomyGroupModel.preferred_label_en, TaxonomyGroupModel.id
    )
    if search:
        stmt = stmt.where(TaxonomyGroupModel.preferred_label_en.ilike(f"%{search}%"))
    return list((await session.execute(stmt)).scalars().all())


async def get_group(session: AsyncSession, group_id: int) -> TaxonomyGroupModel:
    group = await session.get(TaxonomyGroupModel, group_id)
    if group is None:
        raise NotFound(f"Group {group_id} does not exist")
    return group


async def get_group_by_esco_code(session: AsyncSession, esco_code: str) -> TaxonomyGroupModel:
    stmt = (
        select(TaxonomyGroupModel)
        .where(TaxonomyGroupModel.esco_code == esco_code)
        .order_by(TaxonomyGroupModel.id)
        .limit(1)
    )
    group = (await session.execute(stmt)).scalar_one_or_none()
    if group is None:
        raise NotFound(f"No group with ESCO code '{esco_code}'")
    return group


async def create_group(session: AsyncSession, data: GroupCreate) -> TaxonomyGroupModel:
    values = data.model_dump()
    values["preferred_label_en"] = _clean_label(values["preferred_label_en"])

    group = TaxonomyGroupModel(**values)
    session.add(group)
    await session.flush()
    logger.info("group_created", group_id=group.id, label=group.preferred_label_en)
    return group


async def update_group(session: AsyncSession, group_id: int, data: GroupUpdate) -> TaxonomyGroupModel:
    group = await get_group(session, group_id)
    changes = data.model_dump(exclude_unset=True)
    if "preferred_label_en" in changes:
        changes["preferred_label_en"] = _clean_label(changes["preferred_label_en"])
    for field_name, value in changes.items():
        setattr(group, field_name, value)
    await session.flush()
    await session.refresh(group)
    return group


async def delete_group(session: AsyncSession, group_id: int) -> None:
    """Delete a group together with every edge touching it.

    Former children become unlinked; they are not deleted.
    """
    group = await get_group(session, group_id)

    removed = await delete_entity_edges(session, EntityRef.group(group_id))
    await session.execute(
        delete(OccupationTaxonomyMappingModel).where(
            OccupationTaxonomyMappingModel.taxonomy_id == group_id
        )
    )
    await session.delete(group)
    await session.flush()
    logger.info("group_deleted", group_id=group_id, relationships_removed=removed)

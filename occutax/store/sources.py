"""Taxonomy source (provenance) records."""

from __future__ import annotations

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from occutax.core.errors import Conflict, NotFound
from occutax.db.models import (
    OccupationSourceMappingModel,
    SynonymSourceMappingModel,
    TaxonomySourceModel,
)
from occutax.store.models import SourceCreate, SourceUpdate

logger = structlog.get_logger(__name__)


async def list_sources(session: AsyncSession) -> list[TaxonomySourceModel]:
    stmt = select(TaxonomySourceModel).order_by(TaxonomySourceModel.name, TaxonomySourceModel.id)
    return list((await session.execute(stmt)).scalars().all())


async def get_source(session: AsyncSession, source_id: int) -> TaxonomySourceModel:
    source = await session.get(TaxonomySourceModel, source_id)
    if source is None:
        raise NotFound(f"Source {source_id} does not exist")
    return source


async def create_source(session: AsyncSession, data: SourceCreate) -> TaxonomySourceModel:
    source = TaxonomySourceModel(name=data.name, description=data.description)
    session.add(source)
    await session.flush()
    logger.info("source_created", source_id=source.id, name=source.name)
    return source


async def update_source(
    session: AsyncSession, source_id: int, data: SourceUpdate
) -> TaxonomySourceModel:
    source = await get_source(session, source_id)
    for field_name, value in data.model_dump(exclude_unset=True).items():
        if field_name == "name" and value is None:
            continue
        setattr(source, field_name, value)
    await session.flush()
    return source


async def delete_source(session: AsyncSession, source_id: int) -> None:
    """Delete a source; refused while any occupation or synonym still cites it."""
    source = await get_source(session, source_id)

    references = 0
    for model in (OccupationSourceMappingModel, SynonymSourceMappingModel):
        stmt = select(func.count(model.id)).where(model.source_id == source_id)
        references += (await session.execute(stmt)).scalar_one()

    if references:
        logger.info("source_delete_rejected", source_id=source_id, references=references)
        raise Conflict(
            f"Source '{source.name}' is still referenced by {references} mapping(s)"
        )

    await session.delete(source)
    await session.flush()
    logger.info("source_deleted", source_id=source_id)

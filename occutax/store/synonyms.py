"""Synonym records, their source mappings and occupation links."""

from __future__ import annotations

from decimal import Decimal

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from occutax.core.errors import DuplicateSynonymTitle, InvalidArgument, NotFound
from occutax.db.models import (
    OccupationSynonymModel,
    SynonymModel,
    SynonymRelationshipModel,
    SynonymSourceMappingModel,
    TaxonomySourceModel,
)
from occutax.models import SourceOut, SynonymOut
from occutax.store.models import SynonymCreate, SynonymUpdate

logger = structlog.get_logger(__name__)


def _clean_title(title: str | None) -> str:
    title = (title or "").strip()
    if not title:
        raise InvalidArgument("Synonym title must not be empty")
    return title


async def find_synonym_by_title(session: AsyncSession, title: str) -> SynonymModel | None:
    stmt = select(SynonymModel).where(SynonymModel.title == title)
    return (await session.execute(stmt)).scalar_one_or_none()


async def _flush_unique_title(session: AsyncSession, title: str) -> None:
    try:
        await session.flush()
    except IntegrityError as exc:
        # Lost a race against a concurrent insert of the same title
        logger.info("synonym_title_conflict", title=title, error=str(exc.orig))
        raise DuplicateSynonymTitle(f"A synonym titled '{title}' already exists") from exc


async def insert_synonym(
    session: AsyncSession, title: str, language: str = "en", title_orig: str | None = None
) -> SynonymModel:
    """Insert a synonym row; titles are globally unique."""
    title = _clean_title(title)
    if await find_synonym_by_title(session, title) is not None:
        logger.info("synonym_title_conflict", title=title)
        raise DuplicateSynonymTitle(f"A synonym titled '{title}' already exists")

    synonym = SynonymModel(title=title, language=language or "en", title_orig=title_orig)
    session.add(synonym)
    await _flush_unique_title(session, title)
    return synonym


async def replace_synonym_source(
    session: AsyncSession, synonym_id: int, source_id: int | None
) -> None:
    """Swap the synonym's source mapping; ``None`` just removes it."""
    await session.execute(
        delete(SynonymSourceMappingModel).where(SynonymSourceMappingModel.synonym_id == synonym_id)
    )
    if source_id is not None:
        if await session.get(TaxonomySourceModel, source_id) is None:
            raise NotFound(f"Source {source_id} does not exist")
        session.add(
            SynonymSourceMappingModel(
                synonym_id=synonym_id,
                source_id=source_id,
                is_verified=False,
                confidence_score=Decimal("1.00"),
                is_moderated=False,
            )
        )
    await session.flush()


async def create_synonym(session: AsyncSession, data: SynonymCreate) -> SynonymModel:
    synonym = await insert_synonym(session, data.title, data.language, data.title_orig)
    if data.source_id is not None:
        await replace_synonym_source(session, synonym.id, data.source_id)
    logger.info("synonym_created", synonym_id=synonym.id, title=synonym.title)
    return synonym


async def _source_for(session: AsyncSession, synonym_id: int) -> TaxonomySourceModel | None:
    stmt = (
        select(TaxonomySourceModel)
        .join(SynonymSourceMappingModel, SynonymSourceMappingModel.source_id == TaxonomySourceModel.id)
        .where(SynonymSourceMappingModel.synonym_id == synonym_id)
        .limit(1)
    )
    return (await session.execute(stmt)).scalar_one_or_none()


def _to_out(synonym: SynonymModel, source: TaxonomySourceModel | None) -> SynonymOut:
    out = SynonymOut.model_validate(synonym)
    if source is not None:
        out.source = SourceOut.model_validate(source)
    return out


async def get_synonym(session: AsyncSession, synonym_id: int) -> SynonymOut:
    synonym = await session.get(SynonymModel, synonym_id)
    if synonym is None:
        raise NotFound(f"Synonym {synonym_id} does not exist")
    return _to_out(synonym, await _source_for(session, synonym_id))


async def list_synonyms(
    session: AsyncSession,
    search: str | None = None,
    language: str | None = None,
    source_id: int | None = None,
    without_source: bool = False,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[SynonymOut], int]:
    """Return (page, total) of synonyms, newest first."""
    conditions = []
    if search:
        conditions.append(SynonymModel.title.ilike(f"%{search}%"))
    if language:
        conditions.append(SynonymModel.language == language)

    mapped = select(SynonymSourceMappingModel.synonym_id)
    if source_id is not None:
        conditions.append(SynonymModel.id.in_(mapped.where(SynonymSourceMappingModel.source_id == source_id)))
    if without_source:
        conditions.append(SynonymModel.id.not_in(mapped))

    stmt = (
        select(SynonymModel, TaxonomySourceModel)
        .outerjoin(SynonymSourceMappingModel, SynonymSourceMappingModel.synonym_id == SynonymModel.id)
        .outerjoin(TaxonomySourceModel, TaxonomySourceModel.id == SynonymSourceMappingModel.source_id)
        .where(*conditions)
        .order_by(SynonymModel.created_at.desc(), SynonymModel.id.desc())
        .limit(limit)
        .offset(offset)
    )
    count_stmt = select(func.count(SynonymModel.id)).where(*conditions)

    rows = (await session.execute(stmt)).all()
    total = (await session.execute(count_stmt)).scalar_one()
    return [_to_out(synonym, source) for synonym, source in rows], total


async def update_synonym(
    session: AsyncSession, synonym_id: int, data: SynonymUpdate
) -> SynonymModel:
    synonym = await session.get(SynonymModel, synonym_id)
    if synonym is None:
        raise NotFound(f"Synonym {synonym_id} does not exist")

    changes = data.model_dump(exclude_unset=True)
    if "title" in changes:
        title = _clean_title(changes["title"])
        if title != synonym.title:
            existing = await find_synonym_by_title(session, title)
            if existing is not None:
                raise DuplicateSynonymTitle(f"A synonym titled '{title}' already exists")
            synonym.title = title
    if "title_orig" in changes:
        synonym.title_orig = changes["title_orig"]
    if changes.get("language"):
        synonym.language = changes["language"]

    await _flush_unique_title(session, synonym.title)
    await session.refresh(synonym)

    if "source_id" in changes:
        await replace_synonym_source(session, synonym_id, changes["source_id"])

    logger.info("synonym_updated", synonym_id=synonym_id, fields=sorted(changes))
    return synonym


async def delete_synonym(session: AsyncSession, synonym_id: int) -> None:
    """Delete a synonym with its occupation links and source mappings."""
    synonym = await session.get(SynonymModel, synonym_id)
    if synonym is None:
        raise NotFound(f"Synonym {synonym_id} does not exist")

    for model in (OccupationSynonymModel, SynonymSourceMappingModel, SynonymRelationshipModel):
        await session.execute(delete(model).where(model.synonym_id == synonym_id))

    await session.delete(synonym)
    await session.flush()
    logger.info("synonym_deleted", synonym_id=synonym_id)

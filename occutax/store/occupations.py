"""Occupation records with their synonyms, parent and source.

Every mutation here expects to run inside one audited transaction: a failure
in any step (bad synonym, rejected parent, missing source) rolls back the
whole edit.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from occutax.core.errors import DuplicateOccupationLabel, InvalidArgument, NotFound
from occutax.db.models import (
    OccupationModel,
    OccupationSourceMappingModel,
    OccupationSynonymModel,
    OccupationTaxonomyMappingModel,
    SynonymModel,
    SynonymRelationshipModel,
    TaxonomyRelationshipModel,
    TaxonomySourceModel,
)
from occutax.graph.relationships import (
    assign_parent,
    delete_entity_edges,
    reassign_parent,
    remove_parent,
)
from occutax.models import EntityRef, EntityType, RelationshipKind
from occutax.store.models import (
    InlineSynonym,
    OccupationCreate,
    OccupationFields,
    OccupationRelationsUpdate,
    OccupationUpdate,
)
from occutax.store.synonyms import insert_synonym

logger = structlog.get_logger(__name__)


async def get_occupation(session: AsyncSession, occupation_id: int) -> OccupationModel:
    occupation = await session.get(OccupationModel, occupation_id)
    if occupation is None:
        raise NotFound(f"Occupation {occupation_id} does not exist")
    return occupation


async def _check_label(
    session: AsyncSession, label: str | None, exclude_id: int | None = None
) -> str:
    """Trim the English label and make sure no other occupation uses it (case-insensitive)."""
    label = (label or "").strip()
    if not label:
        raise InvalidArgument("Preferred label must not be empty")

    stmt = select(OccupationModel.id).where(
        func.lower(OccupationModel.preferred_label_en) == label.lower()
    )
    if exclude_id is not None:
        stmt = stmt.where(OccupationModel.id != exclude_id)
    if (await session.execute(stmt.limit(1))).first() is not None:
        logger.info("occupation_label_conflict", label=label)
        raise DuplicateOccupationLabel(f"An occupation named '{label}' already exists")
    return label


def _field_changes(fields: OccupationFields) -> dict[str, Any]:
    changes = fields.model_dump(mode="json", exclude_unset=True)
    if changes.get("is_generic_title") is None:
        changes.pop("is_generic_title", None)
    return changes


async def replace_occupation_source(
    session: AsyncSession, occupation_id: int, source_id: int | None
) -> None:
    """Swap the occupation's source mapping; ``None`` just removes it."""
    await session.execute(
        delete(OccupationSourceMappingModel).where(
            OccupationSourceMappingModel.occupation_id == occupation_id
        )
    )
    if source_id is not None:
        if await session.get(TaxonomySourceModel, source_id) is None:
            raise NotFound(f"Source {source_id} does not exist")
        session.add(
            OccupationSourceMappingModel(
                occupation_id=occupation_id,
                source_id=source_id,
                is_verified=False,
                confidence_score=Decimal("1.00"),
                is_moderated=False,
            )
        )
    await session.flush()


async def _attach_inline_synonyms(
    session: AsyncSession, occupation_id: int, synonyms: list[InlineSynonym]
) -> list[int]:
    synonym_ids: list[int] = []
    for item in synonyms:
        if item.is_new:
            synonym = await insert_synonym(session, item.title or "", item.language)
            synonym_id = synonym.id
        else:
            if item.id is None:
                raise InvalidArgument("Existing synonyms must be referenced by id")
            if await session.get(SynonymModel, item.id) is None:
                raise NotFound(f"Synonym {item.id} does not exist")
            synonym_id = item.id
        if synonym_id not in synonym_ids:
            synonym_ids.append(synonym_id)

    for synonym_id in synonym_ids:
        await link_synonym(session, occupation_id, synonym_id)
    return synonym_ids


async def create_occupation(session: AsyncSession, data: OccupationCreate) -> OccupationModel:
    """Create an occupation with optional synonyms, parent and source."""
    changes = _field_changes(data.occupation)
    changes["preferred_label_en"] = await _check_label(session, changes.get("preferred_label_en"))

    occupation = OccupationModel(**changes)
    session.add(occupation)
    await session.flush()

    await _attach_inline_synonyms(session, occupation.id, data.synonyms)

    if data.parent_relation is not None:
        await assign_parent(
            session, occupation.id, data.parent_relation.type, data.parent_relation.id
        )

    if data.source_id is not None:
        await replace_occupation_source(session, occupation.id, data.source_id)

    logger.info(
        "occupation_created",
        occupation_id=occupation.id,
        label=occupation.preferred_label_en,
        synonyms=len(data.synonyms),
    )
    return occupation


async def _apply_fields(
    session: AsyncSession, occupation: OccupationModel, changes: dict[str, Any]
) -> None:
    if "preferred_label_en" in changes:
        changes["preferred_label_en"] = await _check_label(
            session, changes["preferred_label_en"], exclude_id=occupation.id
        )
    for field_name, value in changes.items():
        setattr(occupation, field_name, value)
    await session.flush()
    # onupdate timestamps are expired by the flush
    await session.refresh(occupation)


async def update_occupation(
    session: AsyncSession, occupation_id: int, data: OccupationUpdate
) -> OccupationModel:
    occupation = await get_occupation(session, occupation_id)

    changes = _field_changes(data)
    replace_source = "source_id" in changes
    source_id = changes.pop("source_id", None)

    await _apply_fields(session, occupation, changes)
    if replace_source:
        await replace_occupation_source(session, occupation_id, source_id)

    logger.info("occupation_updated", occupation_id=occupation_id, fields=sorted(changes))
    return occupation


async def update_occupation_with_relations(
    session: AsyncSession, occupation_id: int, data: OccupationRelationsUpdate
) -> OccupationModel:
    """Edit fields, replace the synonym set, and optionally move or detach the parent.

    ``parent_relation`` and ``source_id`` are only touched when present in the
    payload; an explicit null removes the parent or source.
    """
    occupation = await get_occupation(session, occupation_id)
    await _apply_fields(session, occupation, _field_changes(data.occupation))

    await session.execute(
        delete(OccupationSynonymModel).where(OccupationSynonymModel.occupation_id == occupation_id)
    )
    await _attach_inline_synonyms(session, occupation_id, data.synonyms)

    if "parent_relation" in data.model_fields_set:
        if data.parent_relation is None:
            await remove_parent(session, occupation_id)
        else:
            await reassign_parent(
                session, occupation_id, data.parent_relation.type, data.parent_relation.id
            )

    if "source_id" in data.model_fields_set:
        await replace_occupation_source(session, occupation_id, data.source_id)

    logger.info("occupation_relations_updated", occupation_id=occupation_id)
    return occupation


async def delete_occupation(session: AsyncSession, occupation_id: int) -> None:
    """Delete an occupation with its edges, synonym links and mappings."""
    occupation = await get_occupation(session, occupation_id)

    removed = await delete_entity_edges(session, EntityRef.occupation(occupation_id))
    for model in (
        OccupationSynonymModel,
        OccupationSourceMappingModel,
        SynonymRelationshipModel,
        OccupationTaxonomyMappingModel,
    ):
        await session.execute(delete(model).where(model.occupation_id == occupation_id))

    await session.delete(occupation)
    await session.flush()
    logger.info("occupation_deleted", occupation_id=occupation_id, relationships_removed=removed)


async def list_occupations(
    session: AsyncSession,
    search: str | None = None,
    language: str | None = None,
    career_level: int | None = None,
    source_id: int | None = None,
    without_source: bool = False,
    unlinked: bool = False,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[OccupationModel], int]:
    """Return (page, total) of occupations, newest first."""
    conditions = []
    if search:
        pattern = f"%{search}%"
        if language == "ar":
            conditions.append(
                OccupationModel.preferred_label_ar.ilike(pattern)
                | OccupationModel.description_ar.ilike(pattern)
            )
        else:
            conditions.append(
                OccupationModel.preferred_label_en.ilike(pattern)
                | OccupationModel.description_en.ilike(pattern)
                | OccupationModel.esco_code.ilike(pattern)
            )
    if career_level is not None:
        conditions.append(
            (OccupationModel.min_career_level == career_level)
            | (OccupationModel.max_career_level == career_level)
        )

    mapped = select(OccupationSourceMappingModel.occupation_id)
    if source_id is not None:
        conditions.append(
            OccupationModel.id.in_(mapped.where(OccupationSourceMappingModel.source_id == source_id))
        )
    if without_source:
        conditions.append(OccupationModel.id.not_in(mapped))
    if unlinked:
        rel = TaxonomyRelationshipModel
        conditions.append(
            OccupationModel.id.not_in(
                select(rel.target_entity_id).where(
                    rel.relationship_type == RelationshipKind.CONTAINS.value,
                    rel.target_entity_type == EntityType.OCCUPATION.value,
                )
            )
        )

    stmt = (
        select(OccupationModel)
        .where(*conditions)
        .order_by(OccupationModel.created_at.desc(), OccupationModel.id.desc())
        .limit(limit)
        .offset(offset)
    )
    count_stmt = select(func.count(OccupationModel.id)).where(*conditions)

    rows = (await session.execute(stmt)).scalars().all()
    total = (await session.execute(count_stmt)).scalar_one()
    return list(rows), total


# ---------------------------------------------------------------------------
# Occupation <-> synonym links
# ---------------------------------------------------------------------------


async def link_synonym(session: AsyncSession, occupation_id: int, synonym_id: int) -> bool:
    """Link a synonym to an occupation. Returns False when already linked."""
    await get_occupation(session, occupation_id)
    if await session.get(SynonymModel, synonym_id) is None:
        raise NotFound(f"Synonym {synonym_id} does not exist")

    stmt = select(OccupationSynonymModel.id).where(
        OccupationSynonymModel.occupation_id == occupation_id,
        OccupationSynonymModel.synonym_id == synonym_id,
    )
    if (await session.execute(stmt)).first() is not None:
        return False

    session.add(OccupationSynonymModel(occupation_id=occupation_id, synonym_id=synonym_id))
    await session.flush()
    return True


async def unlink_synonym(session: AsyncSession, occupation_id: int, synonym_id: int) -> None:
    result = await session.execute(
        delete(OccupationSynonymModel).where(
            OccupationSynonymModel.occupation_id == occupation_id,
            OccupationSynonymModel.synonym_id == synonym_id,
        )
    )
    if not result.rowcount:
        raise NotFound(f"Synonym {synonym_id} is not linked to occupation {occupation_id}")


async def list_occupation_synonyms(
    session: AsyncSession, occupation_id: int
) -> list[SynonymModel]:
    await get_occupation(session, occupation_id)
    stmt = (
        select(SynonymModel)
        .join(OccupationSynonymModel, OccupationSynonymModel.synonym_id == SynonymModel.id)
        .where(OccupationSynonymModel.occupation_id == occupation_id)
        .order_by(SynonymModel.title)
    )
    return list((await session.execute(stmt)).scalars().all())

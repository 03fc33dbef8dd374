"""Occupation merge: fold one occupation into another.

The source's labels survive as synonyms of the target, its synonym links move
to the target, and the source is removed from the graph and deleted. A merge
into one of the source's own descendants is refused since it would cut that
subtree loose.
"""

from __future__ import annotations

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from occutax.core.errors import InvalidArgument, MergeWouldBreakHierarchy, NotFound
from occutax.db.models import (
    OccupationModel,
    OccupationSourceMappingModel,
    OccupationSynonymModel,
    OccupationTaxonomyMappingModel,
    SynonymModel,
    SynonymRelationshipModel,
)
from occutax.graph.relationships import delete_entity_edges, descendants
from occutax.models import EntityRef, MergeResult

logger = structlog.get_logger(__name__)


async def _load_for_update(session: AsyncSession, occupation_id: int, role: str) -> OccupationModel:
    stmt = select(OccupationModel).where(OccupationModel.id == occupation_id).with_for_update()
    occupation = (await session.execute(stmt)).scalar_one_or_none()
    if occupation is None:
        raise NotFound(f"{role.capitalize()} occupation {occupation_id} does not exist")
    return occupation


async def _linked_synonym_ids(session: AsyncSession, occupation_id: int) -> set[int]:
    stmt = select(OccupationSynonymModel.synonym_id).where(
        OccupationSynonymModel.occupation_id == occupation_id
    )
    return set((await session.execute(stmt)).scalars().all())


async def merge_occupations(
    session: AsyncSession,
    source_id: int,
    target_id: int,
    *,
    max_depth: int | None = None,
) -> MergeResult:
    """Merge occupation ``source_id`` into ``target_id`` inside the caller's transaction.

    Raises:
        InvalidArgument: source and target are the same occupation
        NotFound: either occupation is missing
        MergeWouldBreakHierarchy: target is a descendant of source
    """
    if source_id == target_id:
        logger.info("merge_rejected", code=InvalidArgument.code, source_id=source_id)
        raise InvalidArgument("Cannot merge an occupation with itself")

    source = await _load_for_update(session, source_id, "source")
    target = await _load_for_update(session, target_id, "target")

    target_ref = EntityRef.occupation(target_id)
    if target_ref in await descendants(session, EntityRef.occupation(source_id), max_depth):
        logger.info(
            "merge_rejected",
            code=MergeWouldBreakHierarchy.code,
            source_id=source_id,
            target_id=target_id,
        )
        raise MergeWouldBreakHierarchy(
            f"Cannot merge occupation {source_id} ('{source.preferred_label_en}') into "
            f"occupation {target_id} ('{target.preferred_label_en}'): the target is a "
            "descendant of the source"
        )

    result = MergeResult(source_id=source_id, target_id=target_id)
    target_synonyms = await _linked_synonym_ids(session, target_id)

    # 1-2. Source labels become target synonyms
    labels = [
        (label.strip(), language)
        for label, language in (
            (source.preferred_label_en, "en"),
            (source.preferred_label_ar, "ar"),
        )
        if label and label.strip()
    ]
    for title, language in labels:
        synonym = (
            await session.execute(select(SynonymModel).where(SynonymModel.title == title))
        ).scalar_one_or_none()
        if synonym is None:
            synonym = SynonymModel(title=title, language=language)
            session.add(synonym)
            await session.flush()
            result.synonyms_created.append(title)
        if synonym.id not in target_synonyms:
            session.add(OccupationSynonymModel(occupation_id=target_id, synonym_id=synonym.id))
            target_synonyms.add(synonym.id)
            result.synonyms_linked += 1

    # 3. Re-point the source's synonym links
    for synonym_id in sorted(await _linked_synonym_ids(session, source_id)):
        if synonym_id in target_synonyms:
            continue
        session.add(OccupationSynonymModel(occupation_id=target_id, synonym_id=synonym_id))
        target_synonyms.add(synonym_id)
        result.synonyms_linked += 1
    await session.flush()

    # 4. Drop the source's own links and mappings
    for model in (
        OccupationSynonymModel,
        SynonymRelationshipModel,
        OccupationSourceMappingModel,
        OccupationTaxonomyMappingModel,
    ):
        await session.execute(delete(model).where(model.occupation_id == source_id))

    # 5. Excise the source from the graph
    result.relationships_removed = await delete_entity_edges(session, EntityRef.occupation(source_id))

    # 6. Delete the source itself
    await session.delete(source)
    await session.flush()

    logger.info(
        "merge_completed",
        source_id=source_id,
        target_id=target_id,
        synonyms_created=len(result.synonyms_created),
        synonyms_linked=result.synonyms_linked,
        relationships_removed=result.relationships_removed,
    )
    return result

"""Global search across occupations, synonyms and groups."""

from __future__ import annotations

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from occutax.db.models import OccupationModel, SynonymModel, TaxonomyGroupModel
from occutax.models import GroupOut, OccupationOut, SynonymOut

RESULTS_PER_KIND = 10


async def global_search(session: AsyncSession, term: str) -> dict[str, list]:
    """Substring match (case-insensitive), at most ten hits per entity kind."""
    term = term.strip()
    if not term:
        return {"occupations": [], "synonyms": [], "groups": []}
    pattern = f"%{term}%"

    occupations = await session.execute(
        select(OccupationModel)
        .where(
            or_(
                OccupationModel.preferred_label_en.ilike(pattern),
                OccupationModel.preferred_label_ar.ilike(pattern),
                OccupationModel.esco_code.ilike(pattern),
            )
        )
        .order_by(OccupationModel.preferred_label_en)
        .limit(RESULTS_PER_KIND)
    )
    synonyms = await session.execute(
        select(SynonymModel)
        .where(SynonymModel.title.ilike(pattern))
        .order_by(SynonymModel.title)
        .limit(RESULTS_PER_KIND)
    )
    groups = await session.execute(
        select(TaxonomyGroupModel)
        .where(TaxonomyGroupModel.preferred_label_en.ilike(pattern))
        .order_by(TaxonomyGroupModel.preferred_label_en)
        .limit(RESULTS_PER_KIND)
    )

    return {
        "occupations": [OccupationOut.model_validate(o) for o in occupations.scalars()],
        "synonyms": [SynonymOut.model_validate(s) for s in synonyms.scalars()],
        "groups": [GroupOut.model_validate(g) for g in groups.scalars()],
    }

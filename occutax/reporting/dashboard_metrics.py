"""Dashboard metrics for taxonomy coverage and data completeness.

Aggregates counts, per-source coverage, synonym density and recent additions
into one snapshot for the management dashboard.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime

from sqlalchemy import distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from occutax.db.models import (
    OccupationModel,
    OccupationSourceMappingModel,
    OccupationSynonymModel,
    SynonymModel,
    SynonymSourceMappingModel,
    TaxonomyGroupModel,
    TaxonomySourceModel,
)
from occutax.graph.relationships import count_unlinked_occupations

RECENT_LIMIT = 3


@dataclass
class SourceCoverage:
    source_id: int
    source_name: str
    count: int


@dataclass
class SynonymExtreme:
    occupation_id: int
    preferred_label_en: str
    synonym_count: int


@dataclass
class DashboardMetrics:
    """Taxonomy dashboard snapshot."""

    # Totals
    total_occupations: int
    total_synonyms: int
    total_groups: int
    total_sources: int

    # Completeness
    unlinked_occupations: int
    occupations_without_source: int
    synonyms_without_source: int

    # Coverage
    occupations_per_source: list[SourceCoverage]
    synonyms_per_source: list[SourceCoverage]
    avg_synonyms_per_occupation: float
    most_synonyms: SynonymExtreme | None
    fewest_synonyms: SynonymExtreme | None

    # Recent additions
    last_added_occupations: list[dict] = field(default_factory=list)
    last_added_synonyms: list[dict] = field(default_factory=list)

    computed_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> dict:
        return asdict(self)


async def _count(session: AsyncSession, column) -> int:
    return (await session.execute(select(func.count(column)))).scalar_one()


async def _per_source(session: AsyncSession, mapping_model, entity_column) -> list[SourceCoverage]:
    count_col = func.count(distinct(entity_column)).label("count")
    stmt = (
        select(TaxonomySourceModel.id, TaxonomySourceModel.name, count_col)
        .outerjoin(mapping_model, mapping_model.source_id == TaxonomySourceModel.id)
        .group_by(TaxonomySourceModel.id, TaxonomySourceModel.name)
        .order_by(count_col.desc(), TaxonomySourceModel.name)
    )
    return [
        SourceCoverage(source_id=row.id, source_name=row.name, count=row.count)
        for row in await session.execute(stmt)
    ]


async def _synonym_extreme(session: AsyncSession, most: bool) -> SynonymExtreme | None:
    count_col = func.count(OccupationSynonymModel.synonym_id).label("synonym_count")
    stmt = (
        select(OccupationModel.id, OccupationModel.preferred_label_en, count_col)
        .join(OccupationSynonymModel, OccupationSynonymModel.occupation_id == OccupationModel.id)
        .group_by(OccupationModel.id, OccupationModel.preferred_label_en)
        .order_by(count_col.desc() if most else count_col.asc(), OccupationModel.id)
        .limit(1)
    )
    row = (await session.execute(stmt)).first()
    if row is None:
        return None
    return SynonymExtreme(
        occupation_id=row.id,
        preferred_label_en=row.preferred_label_en or "Untitled",
        synonym_count=row.synonym_count,
    )


async def compute_dashboard_metrics(session: AsyncSession) -> DashboardMetrics:
    """Compute the dashboard snapshot in one read pass."""
    links = await _count(session, OccupationSynonymModel.id)
    linked_occupations = (
        await session.execute(select(func.count(distinct(OccupationSynonymModel.occupation_id))))
    ).scalar_one()
    avg_synonyms = round(links / linked_occupations, 2) if linked_occupations else 0.0

    occupations_without_source = (
        await session.execute(
            select(func.count(OccupationModel.id)).where(
                OccupationModel.id.not_in(select(OccupationSourceMappingModel.occupation_id))
            )
        )
    ).scalar_one()
    synonyms_without_source = (
        await session.execute(
            select(func.count(SynonymModel.id)).where(
                SynonymModel.id.not_in(select(SynonymSourceMappingModel.synonym_id))
            )
        )
    ).scalar_one()

    recent_occupations = await session.execute(
        select(
            OccupationModel.id,
            OccupationModel.preferred_label_en,
            OccupationModel.esco_code,
            OccupationModel.created_at,
        )
        .order_by(OccupationModel.created_at.desc(), OccupationModel.id.desc())
        .limit(RECENT_LIMIT)
    )
    recent_synonyms = await session.execute(
        select(SynonymModel.id, SynonymModel.title, SynonymModel.created_at)
        .order_by(SynonymModel.created_at.desc(), SynonymModel.id.desc())
        .limit(RECENT_LIMIT)
    )

    return DashboardMetrics(
        total_occupations=await _count(session, OccupationModel.id),
        total_synonyms=await _count(session, SynonymModel.id),
        total_groups=await _count(session, TaxonomyGroupModel.id),
        total_sources=await _count(session, TaxonomySourceModel.id),
        unlinked_occupations=await count_unlinked_occupations(session),
        occupations_without_source=occupations_without_source,
        synonyms_without_source=synonyms_without_source,
        occupations_per_source=await _per_source(
            session, OccupationSourceMappingModel, OccupationSourceMappingModel.occupation_id
        ),
        synonyms_per_source=await _per_source(
            session, SynonymSourceMappingModel, SynonymSourceMappingModel.synonym_id
        ),
        avg_synonyms_per_occupation=avg_synonyms,
        most_synonyms=await _synonym_extreme(session, most=True),
        fewest_synonyms=await _synonym_extreme(session, most=False),
        last_added_occupations=[
            {
                "id": row.id,
                "preferred_label_en": row.preferred_label_en,
                "esco_code": row.esco_code,
                "created_at": row.created_at,
            }
            for row in recent_occupations
        ],
        last_added_synonyms=[
            {"id": row.id, "title": row.title, "created_at": row.created_at}
            for row in recent_synonyms
        ],
    )

"""Integration tests for the occupation, synonym, group and source stores."""

from __future__ import annotations

import pytest
from sqlalchemy import func, select

from occutax.audit.context import audited_session
from occutax.core.errors import (
    Conflict,
    DuplicateOccupationLabel,
    DuplicateSynonymTitle,
    InvalidArgument,
    NotFound,
)
from occutax.db.models import (
    OccupationModel,
    OccupationSourceMappingModel,
    OccupationSynonymModel,
    SynonymModel,
    TaxonomyRelationshipModel,
)
from occutax.graph import relationships
from occutax.reporting.dashboard_metrics import compute_dashboard_metrics
from occutax.store import groups, occupations, search, sources, synonyms
from occutax.store.models import (
    GroupUpdate,
    OccupationCreate,
    OccupationRelationsUpdate,
    OccupationUpdate,
    SourceCreate,
    SynonymCreate,
    SynonymUpdate,
)


async def _source(factory, context, name="ESCO") -> int:
    async with audited_session(context, factory) as session:
        return (await sources.create_source(session, SourceCreate(name=name))).id


async def _synonym_titles(session, occupation_id: int) -> list[str]:
    return [s.title for s in await occupations.list_occupation_synonyms(session, occupation_id)]


class TestCreateOccupation:
    @pytest.mark.asyncio
    async def test_create_with_synonyms_parent_and_source(
        self, session_factory, audit_context, taxonomy
    ):
        source_id = await _source(session_factory, audit_context)
        async with audited_session(audit_context, session_factory) as session:
            existing = await synonyms.create_synonym(session, SynonymCreate(title="Cook"))
            existing_id = existing.id

        payload = OccupationCreate.model_validate(
            {
                "occupation": {
                    "preferred_label_en": "  Pastry Chef ",
                    "esco_code": "3434.1",
                    "min_career_level": 2,
                },
                "synonyms": [
                    {"id": existing_id},
                    {"title": "Patissier", "is_new": True},
                    {"id": existing_id},
                ],
                "parent_relation": {"type": "group", "id": taxonomy["chefs"]},
                "source_id": source_id,
            }
        )
        async with audited_session(audit_context, session_factory) as session:
            created = await occupations.create_occupation(session, payload)
            occupation_id = created.id

        async with session_factory() as session:
            occupation = await session.get(OccupationModel, occupation_id)
            assert occupation.preferred_label_en == "Pastry Chef"
            assert occupation.min_career_level == 2
            assert await _synonym_titles(session, occupation_id) == ["Cook", "Patissier"]
            parent = await relationships.get_parent(session, occupation_id)
            assert parent.id == taxonomy["chefs"]
            mapping = await session.execute(
                select(OccupationSourceMappingModel.source_id).where(
                    OccupationSourceMappingModel.occupation_id == occupation_id
                )
            )
            assert mapping.scalars().all() == [source_id]

    @pytest.mark.asyncio
    async def test_duplicate_label_is_case_insensitive(self, session_factory, audit_context, taxonomy):
        payload = OccupationCreate.model_validate({"occupation": {"preferred_label_en": "chef"}})

        with pytest.raises(DuplicateOccupationLabel):
            async with audited_session(audit_context, session_factory) as session:
                await occupations.create_occupation(session, payload)

    @pytest.mark.asyncio
    async def test_blank_label(self, session_factory, audit_context):
        payload = OccupationCreate.model_validate({"occupation": {"preferred_label_en": "  "}})

        with pytest.raises(InvalidArgument):
            async with audited_session(audit_context, session_factory) as session:
                await occupations.create_occupation(session, payload)

    @pytest.mark.asyncio
    async def test_rejected_parent_rolls_back_whole_create(
        self, session_factory, audit_context, taxonomy
    ):
        payload = OccupationCreate.model_validate(
            {
                "occupation": {"preferred_label_en": "Commis"},
                "synonyms": [{"title": "Kitchen Helper", "is_new": True}],
                "parent_relation": {"type": "group", "id": 9999},
            }
        )

        with pytest.raises(NotFound):
            async with audited_session(audit_context, session_factory) as session:
                await occupations.create_occupation(session, payload)

        async with session_factory() as session:
            assert await synonyms.find_synonym_by_title(session, "Kitchen Helper") is None
            count = await session.execute(select(func.count(OccupationModel.id)))
            assert count.scalar_one() == 3


class TestUpdateOccupation:
    @pytest.mark.asyncio
    async def test_plain_update_refreshes_timestamp(self, session_factory, audit_context, taxonomy):
        async with audited_session(audit_context, session_factory) as session:
            updated = await occupations.update_occupation(
                session, taxonomy["chef"], OccupationUpdate(description_en="Runs a kitchen")
            )
            assert updated.updated_at is not None

        async with session_factory() as session:
            occupation = await session.get(OccupationModel, taxonomy["chef"])
        assert occupation.description_en == "Runs a kitchen"
        assert occupation.preferred_label_en == "Chef"

    @pytest.mark.asyncio
    async def test_rename_onto_existing_label(self, session_factory, audit_context, taxonomy):
        with pytest.raises(DuplicateOccupationLabel):
            async with audited_session(audit_context, session_factory) as session:
                await occupations.update_occupation(
                    session, taxonomy["chef"], OccupationUpdate(preferred_label_en="Line Cook")
                )

    @pytest.mark.asyncio
    async def test_relations_update_replaces_synonyms_and_moves_parent(
        self, session_factory, audit_context, taxonomy
    ):
        async with audited_session(audit_context, session_factory) as session:
            await relationships.assign_parent(session, taxonomy["chef"], "group", taxonomy["chefs"])
            old = await synonyms.create_synonym(session, SynonymCreate(title="Kitchen Boss"))
            await occupations.link_synonym(session, taxonomy["chef"], old.id)

        payload = OccupationRelationsUpdate.model_validate(
            {
                "occupation": {"preferred_label_en": "Chef de Cuisine"},
                "synonyms": [{"title": "Head Cook", "is_new": True}],
                "parent_relation": {"type": "group", "id": taxonomy["cooks"]},
            }
        )
        async with audited_session(audit_context, session_factory) as session:
            await occupations.update_occupation_with_relations(session, taxonomy["chef"], payload)

        async with session_factory() as session:
            assert await _synonym_titles(session, taxonomy["chef"]) == ["Head Cook"]
            parent = await relationships.get_parent(session, taxonomy["chef"])
            assert parent.id == taxonomy["cooks"]
            # The old synonym itself survives, only the link is gone
            assert await synonyms.find_synonym_by_title(session, "Kitchen Boss") is not None

    @pytest.mark.asyncio
    async def test_explicit_null_parent_detaches(self, session_factory, audit_context, taxonomy):
        source_id = await _source(session_factory, audit_context)
        async with audited_session(audit_context, session_factory) as session:
            await relationships.assign_parent(session, taxonomy["chef"], "group", taxonomy["chefs"])
            await occupations.replace_occupation_source(session, taxonomy["chef"], source_id)

        async with audited_session(audit_context, session_factory) as session:
            await occupations.update_occupation_with_relations(
                session,
                taxonomy["chef"],
                OccupationRelationsUpdate.model_validate({"parent_relation": None}),
            )

        async with session_factory() as session:
            assert await relationships.get_parent(session, taxonomy["chef"]) is None
            # source_id was not sent, so the mapping stays
            _, total = await occupations.list_occupations(session, source_id=source_id)
            assert total == 1

    @pytest.mark.asyncio
    async def test_omitted_parent_is_left_alone(self, session_factory, audit_context, taxonomy):
        async with audited_session(audit_context, session_factory) as session:
            await relationships.assign_parent(session, taxonomy["chef"], "group", taxonomy["chefs"])

        async with audited_session(audit_context, session_factory) as session:
            await occupations.update_occupation_with_relations(
                session, taxonomy["chef"], OccupationRelationsUpdate()
            )

        async with session_factory() as session:
            parent = await relationships.get_parent(session, taxonomy["chef"])
        assert parent.id == taxonomy["chefs"]


class TestDeleteOccupation:
    @pytest.mark.asyncio
    async def test_delete_removes_edges_and_links(self, session_factory, audit_context, taxonomy):
        async with audited_session(audit_context, session_factory) as session:
            await relationships.assign_parent(session, taxonomy["chef"], "group", taxonomy["chefs"])
            await relationships.assign_parent(
                session, taxonomy["sous_chef"], "occupation", taxonomy["chef"]
            )
            cook = await synonyms.create_synonym(session, SynonymCreate(title="Cook"))
            await occupations.link_synonym(session, taxonomy["chef"], cook.id)

        async with audited_session(audit_context, session_factory) as session:
            await occupations.delete_occupation(session, taxonomy["chef"])

        async with session_factory() as session:
            edges = await session.execute(select(func.count(TaxonomyRelationshipModel.relationship_id)))
            links = await session.execute(select(func.count(OccupationSynonymModel.id)))
            assert edges.scalar_one() == 0
            assert links.scalar_one() == 0
            assert await session.get(SynonymModel, cook.id) is not None
            # The former child is now unlinked
            unlinked = await relationships.unlinked_occupations(session)
            assert taxonomy["sous_chef"] in {o.id for o in unlinked}

    @pytest.mark.asyncio
    async def test_delete_missing(self, session_factory, audit_context):
        with pytest.raises(NotFound):
            async with audited_session(audit_context, session_factory) as session:
                await occupations.delete_occupation(session, 9999)


class TestListOccupations:
    @pytest.mark.asyncio
    async def test_filters(self, session_factory, audit_context, taxonomy):
        source_id = await _source(session_factory, audit_context)
        async with audited_session(audit_context, session_factory) as session:
            await occupations.replace_occupation_source(session, taxonomy["line_cook"], source_id)
            await relationships.assign_parent(session, taxonomy["chef"], "group", taxonomy["chefs"])

        async with session_factory() as session:
            _, all_total = await occupations.list_occupations(session)
            chef_rows, _ = await occupations.list_occupations(session, search="chef")
            arabic, _ = await occupations.list_occupations(session, search="طاهٍ", language="ar")
            sourced, _ = await occupations.list_occupations(session, source_id=source_id)
            _, unsourced = await occupations.list_occupations(session, without_source=True)
            _, unlinked = await occupations.list_occupations(session, unlinked=True)
            page, total = await occupations.list_occupations(session, limit=1, offset=1)

        assert all_total == 3
        assert {o.preferred_label_en for o in chef_rows} == {"Chef", "Sous Chef"}
        assert [o.id for o in arabic] == [taxonomy["chef"]]
        assert [o.id for o in sourced] == [taxonomy["line_cook"]]
        assert unsourced == 2
        assert unlinked == 2
        assert len(page) == 1
        assert total == 3


class TestSynonymLinks:
    @pytest.mark.asyncio
    async def test_link_is_idempotent_and_unlink_requires_link(
        self, session_factory, audit_context, taxonomy
    ):
        async with audited_session(audit_context, session_factory) as session:
            cook = await synonyms.create_synonym(session, SynonymCreate(title="Cook"))
            assert await occupations.link_synonym(session, taxonomy["chef"], cook.id) is True
            assert await occupations.link_synonym(session, taxonomy["chef"], cook.id) is False
            await occupations.unlink_synonym(session, taxonomy["chef"], cook.id)

        with pytest.raises(NotFound):
            async with audited_session(audit_context, session_factory) as session:
                await occupations.unlink_synonym(session, taxonomy["chef"], cook.id)

    @pytest.mark.asyncio
    async def test_link_missing_synonym(self, session_factory, audit_context, taxonomy):
        with pytest.raises(NotFound):
            async with audited_session(audit_context, session_factory) as session:
                await occupations.link_synonym(session, taxonomy["chef"], 9999)


class TestSynonyms:
    @pytest.mark.asyncio
    async def test_duplicate_title(self, session_factory, audit_context):
        async with audited_session(audit_context, session_factory) as session:
            await synonyms.create_synonym(session, SynonymCreate(title="Cook"))

        with pytest.raises(DuplicateSynonymTitle):
            async with audited_session(audit_context, session_factory) as session:
                await synonyms.create_synonym(session, SynonymCreate(title=" Cook "))

    @pytest.mark.asyncio
    async def test_source_mapping_and_update(self, session_factory, audit_context):
        esco = await _source(session_factory, audit_context, "ESCO")
        onet = await _source(session_factory, audit_context, "O*NET")
        async with audited_session(audit_context, session_factory) as session:
            cook = await synonyms.create_synonym(
                session, SynonymCreate(title="Cook", source_id=esco)
            )
            synonym_id = cook.id

        async with audited_session(audit_context, session_factory) as session:
            await synonyms.update_synonym(
                session, synonym_id, SynonymUpdate(title="Line Cook", source_id=onet)
            )

        async with session_factory() as session:
            out = await synonyms.get_synonym(session, synonym_id)
            by_onet, total = await synonyms.list_synonyms(session, source_id=onet)
            _, unsourced = await synonyms.list_synonyms(session, without_source=True)

        assert out.title == "Line Cook"
        assert out.source.name == "O*NET"
        assert [s.id for s in by_onet] == [synonym_id]
        assert total == 1
        assert unsourced == 0

    @pytest.mark.asyncio
    async def test_update_to_taken_title(self, session_factory, audit_context):
        async with audited_session(audit_context, session_factory) as session:
            await synonyms.create_synonym(session, SynonymCreate(title="Cook"))
            baker = await synonyms.create_synonym(session, SynonymCreate(title="Baker"))
            baker_id = baker.id

        with pytest.raises(DuplicateSynonymTitle):
            async with audited_session(audit_context, session_factory) as session:
                await synonyms.update_synonym(session, baker_id, SynonymUpdate(title="Cook"))

    @pytest.mark.asyncio
    async def test_delete_removes_links(self, session_factory, audit_context, taxonomy):
        async with audited_session(audit_context, session_factory) as session:
            cook = await synonyms.create_synonym(session, SynonymCreate(title="Cook"))
            await occupations.link_synonym(session, taxonomy["line_cook"], cook.id)
            synonym_id = cook.id

        async with audited_session(audit_context, session_factory) as session:
            await synonyms.delete_synonym(session, synonym_id)

        async with session_factory() as session:
            assert await _synonym_titles(session, taxonomy["line_cook"]) == []


class TestSourcesAndGroups:
    @pytest.mark.asyncio
    async def test_source_in_use_cannot_be_deleted(self, session_factory, audit_context, taxonomy):
        source_id = await _source(session_factory, audit_context)
        async with audited_session(audit_context, session_factory) as session:
            await occupations.replace_occupation_source(session, taxonomy["chef"], source_id)

        with pytest.raises(Conflict):
            async with audited_session(audit_context, session_factory) as session:
                await sources.delete_source(session, source_id)

        async with audited_session(audit_context, session_factory) as session:
            await occupations.replace_occupation_source(session, taxonomy["chef"], None)
            await sources.delete_source(session, source_id)

        async with session_factory() as session:
            assert await sources.list_sources(session) == []

    @pytest.mark.asyncio
    async def test_group_delete_unlinks_children(self, session_factory, audit_context, taxonomy):
        async with audited_session(audit_context, session_factory) as session:
            await relationships.assign_parent(session, taxonomy["chef"], "group", taxonomy["chefs"])

        async with audited_session(audit_context, session_factory) as session:
            await groups.delete_group(session, taxonomy["chefs"])

        async with session_factory() as session:
            assert await relationships.get_parent(session, taxonomy["chef"]) is None
            assert [g.preferred_label_en for g in await groups.list_groups(session)] == ["Cooks"]

        # The former child can take a new parent
        async with audited_session(audit_context, session_factory) as session:
            result = await relationships.assign_parent(
                session, taxonomy["chef"], "group", taxonomy["cooks"]
            )
        assert result.created is True

    @pytest.mark.asyncio
    async def test_group_lookup_and_update(self, session_factory, audit_context, taxonomy):
        async with audited_session(audit_context, session_factory) as session:
            updated = await groups.update_group(
                session, taxonomy["cooks"], GroupUpdate(description_en="Prepares food")
            )
            assert updated.description_en == "Prepares food"

        async with session_factory() as session:
            by_code = await groups.get_group_by_esco_code(session, "5120")
            found = await groups.list_groups(session, search="chef")
            with pytest.raises(NotFound):
                await groups.get_group_by_esco_code(session, "0000")

        assert by_code.id == taxonomy["cooks"]
        assert [g.id for g in found] == [taxonomy["chefs"]]

    @pytest.mark.asyncio
    async def test_blank_group_label(self, session_factory, audit_context, taxonomy):
        with pytest.raises(InvalidArgument):
            async with audited_session(audit_context, session_factory) as session:
                await groups.update_group(
                    session, taxonomy["cooks"], GroupUpdate(preferred_label_en=" ")
                )


class TestSearchAndDashboard:
    @pytest.mark.asyncio
    async def test_global_search(self, session_factory, audit_context, taxonomy):
        async with audited_session(audit_context, session_factory) as session:
            await synonyms.create_synonym(session, SynonymCreate(title="Chef de Partie"))

        async with session_factory() as session:
            hits = await search.global_search(session, "CHEF")
            empty = await search.global_search(session, "   ")

        assert [o.preferred_label_en for o in hits["occupations"]] == ["Chef", "Sous Chef"]
        assert [s.title for s in hits["synonyms"]] == ["Chef de Partie"]
        assert [g.preferred_label_en for g in hits["groups"]] == ["Chefs"]
        assert empty == {"occupations": [], "synonyms": [], "groups": []}

    @pytest.mark.asyncio
    async def test_dashboard_metrics(self, session_factory, audit_context, taxonomy):
        source_id = await _source(session_factory, audit_context)
        async with audited_session(audit_context, session_factory) as session:
            await relationships.assign_parent(session, taxonomy["chef"], "group", taxonomy["chefs"])
            await occupations.replace_occupation_source(session, taxonomy["chef"], source_id)
            for title in ("Cook", "Kitchen Boss"):
                synonym = await synonyms.create_synonym(session, SynonymCreate(title=title))
                await occupations.link_synonym(session, taxonomy["chef"], synonym.id)
            helper = await synonyms.create_synonym(session, SynonymCreate(title="Helper"))
            await occupations.link_synonym(session, taxonomy["line_cook"], helper.id)

        async with session_factory() as session:
            metrics = await compute_dashboard_metrics(session)

        assert metrics.total_occupations == 3
        assert metrics.total_synonyms == 3
        assert metrics.total_groups == 2
        assert metrics.total_sources == 1
        assert metrics.unlinked_occupations == 2
        assert metrics.occupations_without_source == 2
        assert metrics.synonyms_without_source == 3
        assert metrics.avg_synonyms_per_occupation == 1.5
        assert metrics.most_synonyms.occupation_id == taxonomy["chef"]
        assert metrics.most_synonyms.synonym_count == 2
        assert [(c.source_name, c.count) for c in metrics.occupations_per_source] == [("ESCO", 1)]
        assert len(metrics.last_added_synonyms) == 3

"""Unit tests for occupation taxonomy Pydantic models."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from occutax.models import (
    AuditContext,
    AuditFilters,
    AuditLogPage,
    AuditOperation,
    CareerLevel,
    EntityRef,
    EntityType,
    ParentLink,
    RelationshipKind,
    TreeNode,
)
from occutax.store.models import (
    OccupationCreate,
    OccupationRelationsUpdate,
    SourceCreate,
    SynonymUpdate,
)


class TestEntityRef:
    def test_factories_and_str(self):
        assert str(EntityRef.occupation(7)) == "occupation:7"
        assert str(EntityRef.group(3)) == "group:3"

    def test_refs_are_hashable_and_compare_by_value(self):
        refs = {EntityRef.occupation(1), EntityRef(type="occupation", id=1)}

        assert len(refs) == 1
        assert EntityRef.occupation(1) != EntityRef.group(1)

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            EntityRef(type="department", id=1)


class TestParentLink:
    def test_edges_are_mirrored(self):
        link = ParentLink(parent=EntityRef.group(1), child=EntityRef.occupation(2))

        forward, mirror = link.edges()

        assert (forward.source, forward.target, forward.kind) == (
            EntityRef.group(1),
            EntityRef.occupation(2),
            RelationshipKind.CONTAINS,
        )
        assert (mirror.source, mirror.target, mirror.kind) == (
            EntityRef.occupation(2),
            EntityRef.group(1),
            RelationshipKind.CONTAINED_BY,
        )


class TestAuditContext:
    def test_settings_names(self):
        context = AuditContext(user_id="u1", session_id="s1")

        assert context.settings() == {
            "current_user_id": "u1",
            "session_id": "s1",
            "ip_address": None,
            "user_agent": None,
        }

    def test_empty_metadata_is_stored_as_null(self):
        context = AuditContext(user_id="u1", session_id="", ip_address="", user_agent="")

        assert context.settings()["session_id"] is None
        assert context.ip_address is None
        assert context.user_agent is None


class TestAuditFilters:
    def test_blank_values_become_none(self):
        filters = AuditFilters(table_name="", operation="", user_id="", record_id="")

        assert filters.table_name is None
        assert filters.operation is None
        assert filters.user_id is None
        assert filters.record_id is None

    def test_operation_is_case_insensitive(self):
        assert AuditFilters(operation="update").operation is AuditOperation.UPDATE

    def test_unknown_operation_rejected(self):
        with pytest.raises(ValidationError):
            AuditFilters(operation="TRUNCATE")


class TestSerializationAliases:
    def test_tree_node_uses_camel_case_counts(self):
        node = TreeNode(id=1, name="Chefs", type=EntityType.GROUP, has_children=True, child_count=2)

        dumped = node.model_dump(by_alias=True)

        assert dumped["hasChildren"] is True
        assert dumped["childCount"] == 2

    def test_audit_page_total_pages_alias(self):
        page = AuditLogPage(data=[], page=1, limit=50, total=0, total_pages=0)

        assert "totalPages" in page.model_dump(by_alias=True)


class TestStorePayloads:
    def test_career_level_range_enforced(self):
        with pytest.raises(ValidationError):
            OccupationCreate(occupation={"preferred_label_en": "Chef", "min_career_level": 9})

    def test_career_level_parsed(self):
        payload = OccupationCreate(
            occupation={"preferred_label_en": "Chef", "max_career_level": 3}
        )

        assert payload.occupation.max_career_level is CareerLevel.MANAGEMENT

    def test_parent_relation_type_validated(self):
        with pytest.raises(ValidationError):
            OccupationCreate(
                occupation={"preferred_label_en": "Chef"},
                parent_relation={"type": "department", "id": 1},
            )

    def test_relations_update_tracks_explicit_null(self):
        omitted = OccupationRelationsUpdate()
        cleared = OccupationRelationsUpdate(parent_relation=None, source_id=None)

        assert "parent_relation" not in omitted.model_fields_set
        assert {"parent_relation", "source_id"} <= cleared.model_fields_set

    def test_synonym_update_unset_source(self):
        assert "source_id" not in SynonymUpdate(title="Cook").model_dump(exclude_unset=True)

    def test_blank_source_name_rejected(self):
        with pytest.raises(ValidationError):
            SourceCreate(name="   ")

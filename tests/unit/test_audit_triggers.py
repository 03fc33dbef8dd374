"""Unit tests for audit trigger DDL generation.

The generated SQL is checked as text here; the SQLite variant is exercised
against a real database in tests/integration/test_audit_trail.py.
"""

from __future__ import annotations

import pytest
from sqlalchemy import Column, Integer, MetaData, Table, Text

from occutax.audit.triggers import (
    OPERATIONS,
    SQLITE_CONTEXT_TABLE,
    AuditedTable,
    audited_tables,
    postgresql_drop_statements,
    postgresql_trigger_statements,
    sqlite_drop_statements,
    sqlite_trigger_statements,
)
from occutax.db.models import AUDITED_TABLES


@pytest.fixture
def occupations_table() -> AuditedTable:
    return next(t for t in audited_tables() if t.name == "occupations")


class TestAuditedTable:
    def test_every_audited_table_has_single_primary_key(self):
        tables = audited_tables()

        assert [t.name for t in tables] == list(AUDITED_TABLES)
        assert all(t.primary_key for t in tables)

    def test_relationships_table_uses_relationship_id(self):
        table = next(t for t in audited_tables() if t.name == "taxonomy_relationships")

        assert table.primary_key == "relationship_id"

    def test_composite_primary_key_is_rejected(self):
        metadata = MetaData()
        composite = Table(
            "pairs",
            metadata,
            Column("a", Integer, primary_key=True),
            Column("b", Integer, primary_key=True),
            Column("note", Text),
        )

        with pytest.raises(ValueError, match="single-column primary key"):
            AuditedTable.from_table(composite)

    def test_naming(self, occupations_table):
        assert occupations_table.trigger_name("INSERT") == "occupations_audit_insert"
        assert occupations_table.function_name == "audit_occupations_changes"


class TestPostgresqlStatements:
    def test_function_reads_transaction_settings(self, occupations_table):
        function_sql = postgresql_trigger_statements(occupations_table)[0]

        for key in ("current_user_id", "session_id", "ip_address", "user_agent"):
            assert f"current_setting('app.{key}', true)" in function_sql
        assert "NULLIF(v_user_id, '')" in function_sql
        assert "row_to_json(NEW)" in function_sql
        assert "ARRAY['multiple_fields']" in function_sql
        assert "OLD.id::TEXT" in function_sql

    def test_one_trigger_per_operation(self, occupations_table):
        statements = postgresql_trigger_statements(occupations_table)
        creates = [s for s in statements if s.startswith("CREATE TRIGGER")]

        assert len(creates) == len(OPERATIONS)
        assert any("AFTER UPDATE ON occupations" in s for s in creates)
        assert all("EXECUTE FUNCTION audit_occupations_changes()" in s for s in creates)

    def test_drop_statements_remove_function(self, occupations_table):
        statements = postgresql_drop_statements(occupations_table)

        assert statements[-1] == "DROP FUNCTION IF EXISTS audit_occupations_changes()"
        assert len(statements) == len(OPERATIONS) + 1


class TestSqliteStatements:
    def test_snapshot_lists_every_column(self, occupations_table):
        insert_trigger = sqlite_trigger_statements(occupations_table)[0]

        for column in occupations_table.columns:
            assert f"'{column}', NEW.{column}" in insert_trigger

    def test_actor_comes_from_context_table(self, occupations_table):
        update_trigger = sqlite_trigger_statements(occupations_table)[1]

        assert f"FROM {SQLITE_CONTEXT_TABLE} WHERE id = 1" in update_trigger
        assert "'[\"multiple_fields\"]'" in update_trigger
        assert "'UPDATE'" in update_trigger

    def test_delete_trigger_records_old_row(self, occupations_table):
        delete_trigger = sqlite_trigger_statements(occupations_table)[2]

        assert "AFTER DELETE ON occupations" in delete_trigger
        assert "CAST(OLD.id AS TEXT), 'DELETE'" in delete_trigger

    def test_drop_statements(self, occupations_table):
        assert sqlite_drop_statements(occupations_table) == [
            "DROP TRIGGER IF EXISTS occupations_audit_insert",
            "DROP TRIGGER IF EXISTS occupations_audit_update",
            "DROP TRIGGER IF EXISTS occupations_audit_delete",
        ]

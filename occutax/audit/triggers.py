"""Row-level audit triggers for the taxonomy tables.

Every INSERT/UPDATE/DELETE on an audited table writes one row to
``taxonomy_audit_log`` from inside the database, so no write path can skip it.

Trigger semantics (identical on both dialects):

- INSERT: ``new_values`` = full row snapshot, ``old_values``/``changed_fields`` NULL
- UPDATE: both snapshots; ``changed_fields`` = ``["multiple_fields"]`` when the
  snapshots differ, ``[]`` otherwise. Callers needing a per-column diff compare
  the two JSON documents themselves.
- DELETE: ``old_values`` = snapshot, ``new_values``/``changed_fields`` NULL
- ``record_id`` is the table's primary key, stringified.
- Actor metadata is read from transaction-scoped settings (PostgreSQL
  ``current_setting('app.*', true)``) or from the one-row
  ``taxonomy_audit_context`` table (SQLite). Missing values are stored as NULL.
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog
from sqlalchemy import Table, text
from sqlalchemy.engine import Connection

from occutax.db.models import AUDITED_TABLES, AuditLogModel, Base

logger = structlog.get_logger(__name__)

AUDIT_LOG_TABLE = AuditLogModel.__tablename__
SQLITE_CONTEXT_TABLE = "taxonomy_audit_context"
OPERATIONS = ("INSERT", "UPDATE", "DELETE")


@dataclass(frozen=True, slots=True)
class AuditedTable:
    name: str
    primary_key: str
    columns: tuple[str, ...]

    @classmethod
    def from_table(cls, table: Table) -> AuditedTable:
        pk_columns = list(table.primary_key.columns)
        if len(pk_columns) != 1:
            raise ValueError(f"Audited table {table.name} needs a single-column primary key")
        return cls(
            name=table.name,
            primary_key=pk_columns[0].name,
            columns=tuple(column.name for column in table.columns),
        )

    def trigger_name(self, operation: str) -> str:
        return f"{self.name}_audit_{operation.lower()}"

    @property
    def function_name(self) -> str:
        return f"audit_{self.name}_changes"


def audited_tables() -> list[AuditedTable]:
    return [AuditedTable.from_table(Base.metadata.tables[name]) for name in AUDITED_TABLES]


# ---------------------------------------------------------------------------
# PostgreSQL
# ---------------------------------------------------------------------------


def postgresql_trigger_statements(table: AuditedTable) -> list[str]:
    function_sql = f"""
CREATE OR REPLACE FUNCTION {table.function_name}()
RETURNS TRIGGER AS $$
DECLARE
    v_user_id TEXT;
    v_session_id TEXT;
    v_ip_address TEXT;
    v_user_agent TEXT;
    v_old_values TEXT;
    v_new_values TEXT;
    v_changed_fields TEXT[];
    v_record_id TEXT;
BEGIN
    v_user_id := COALESCE(current_setting('app.current_user_id', true), '');
    v_session_id := COALESCE(current_setting('app.session_id', true), '');
    v_ip_address := COALESCE(current_setting('app.ip_address', true), '');
    v_user_agent := COALESCE(current_setting('app.user_agent', true), '');

    IF TG_OP = 'DELETE' THEN
        v_record_id := OLD.{table.primary_key}::TEXT;
        v_old_values := row_to_json(OLD)::TEXT;
        v_new_values := NULL;
        v_changed_fields := NULL;
    ELSIF TG_OP = 'UPDATE' THEN
        v_record_id := NEW.{table.primary_key}::TEXT;
        v_old_values := row_to_json(OLD)::TEXT;
        v_new_values := row_to_json(NEW)::TEXT;
        v_changed_fields := ARRAY[]::TEXT[];
        IF v_old_values IS DISTINCT FROM v_new_values THEN
            v_changed_fields := ARRAY['multiple_fields']::TEXT[];
        END IF;
    ELSE
        v_record_id := NEW.{table.primary_key}::TEXT;
        v_old_values := NULL;
        v_new_values := row_to_json(NEW)::TEXT;
        v_changed_fields := NULL;
    END IF;

    INSERT INTO {AUDIT_LOG_TABLE} (
        table_name, record_id, operation, old_values, new_values, changed_fields,
        user_id, session_id, ip_address, user_agent
    ) VALUES (
        TG_TABLE_NAME, v_record_id, TG_OP, v_old_values, v_new_values,
        array_to_json(v_changed_fields)::TEXT,
        NULLIF(v_user_id, ''), NULLIF(v_session_id, ''),
        NULLIF(v_ip_address, ''), NULLIF(v_user_agent, '')
    );

    IF TG_OP = 'DELETE' THEN
        RETURN OLD;
    END IF;
    RETURN NEW;
END;
$$ LANGUAGE plpgsql
"""
    statements = [function_sql]
    for operation in OPERATIONS:
        trigger = table.trigger_name(operation)
        statements.append(f"DROP TRIGGER IF EXISTS {trigger} ON {table.name}")
        statements.append(
            f"CREATE TRIGGER {trigger} AFTER {operation} ON {table.name} "
            f"FOR EACH ROW EXECUTE FUNCTION {table.function_name}()"
        )
    return statements


def postgresql_drop_statements(table: AuditedTable) -> list[str]:
    statements = [
        f"DROP TRIGGER IF EXISTS {table.trigger_name(operation)} ON {table.name}"
        for operation in OPERATIONS
    ]
    statements.append(f"DROP FUNCTION IF EXISTS {table.function_name}()")
    return statements


# ---------------------------------------------------------------------------
# SQLite
# ---------------------------------------------------------------------------


def _sqlite_snapshot(table: AuditedTable, row: str) -> str:
    pairs = ", ".join(f"'{column}', {row}.{column}" for column in table.columns)
    return f"json_object({pairs})"


def _sqlite_context_value(column: str) -> str:
    return f"(SELECT NULLIF({column}, '') FROM {SQLITE_CONTEXT_TABLE} WHERE id = 1)"


def sqlite_context_table_statement() -> str:
    return (
        f"CREATE TABLE IF NOT EXISTS {SQLITE_CONTEXT_TABLE} ("
        "id INTEGER PRIMARY KEY CHECK (id = 1), "
        "user_id TEXT, session_id TEXT, ip_address TEXT, user_agent TEXT)"
    )


def sqlite_trigger_statements(table: AuditedTable) -> list[str]:
    actor = ", ".join(
        _sqlite_context_value(column)
        for column in ("user_id", "session_id", "ip_address", "user_agent")
    )
    new_json = _sqlite_snapshot(table, "NEW")
    old_json = _sqlite_snapshot(table, "OLD")
    values = {
        "INSERT": f"CAST(NEW.{table.primary_key} AS TEXT), 'INSERT', NULL, {new_json}, NULL",
        "UPDATE": (
            f"CAST(NEW.{table.primary_key} AS TEXT), 'UPDATE', {old_json}, {new_json}, "
            f"CASE WHEN {old_json} IS NOT {new_json} "
            "THEN '[\"multiple_fields\"]' ELSE '[]' END"
        ),
        "DELETE": f"CAST(OLD.{table.primary_key} AS TEXT), 'DELETE', {old_json}, NULL, NULL",
    }

    statements = []
    for operation in OPERATIONS:
        statements.append(
            f"CREATE TRIGGER IF NOT EXISTS {table.trigger_name(operation)} "
            f"AFTER {operation} ON {table.name} FOR EACH ROW BEGIN "
            f"INSERT INTO {AUDIT_LOG_TABLE} (table_name, record_id, operation, old_values, "
            "new_values, changed_fields, user_id, session_id, ip_address, user_agent) "
            f"VALUES ('{table.name}', {values[operation]}, {actor}); "
            "END"
        )
    return statements


def sqlite_drop_statements(table: AuditedTable) -> list[str]:
    return [
        f"DROP TRIGGER IF EXISTS {table.trigger_name(operation)}" for operation in OPERATIONS
    ]


# ---------------------------------------------------------------------------
# Installation
# ---------------------------------------------------------------------------


def install_audit_triggers(connection: Connection) -> int:
    """Create (or replace) the audit triggers on every audited table.

    Meant for ``AsyncConnection.run_sync``. Returns the number of triggers.
    """
    dialect = connection.dialect.name
    tables = audited_tables()

    if dialect == "postgresql":
        for table in tables:
            for statement in postgresql_trigger_statements(table):
                connection.exec_driver_sql(statement)
    elif dialect == "sqlite":
        connection.exec_driver_sql(sqlite_context_table_statement())
        for table in tables:
            # Recreate so column changes reach the snapshot
            for statement in sqlite_drop_statements(table) + sqlite_trigger_statements(table):
                connection.exec_driver_sql(statement)
    else:
        raise RuntimeError(f"Audit triggers are not available for dialect '{dialect}'")

    count = len(tables) * len(OPERATIONS)
    logger.info("audit_triggers_installed", dialect=dialect, tables=len(tables), triggers=count)
    return count


def drop_audit_triggers(connection: Connection) -> None:
    dialect = connection.dialect.name
    tables = audited_tables()

    if dialect == "postgresql":
        for table in tables:
            for statement in postgresql_drop_statements(table):
                connection.exec_driver_sql(statement)
    elif dialect == "sqlite":
        for table in tables:
            for statement in sqlite_drop_statements(table):
                connection.exec_driver_sql(statement)
        connection.exec_driver_sql(f"DROP TABLE IF EXISTS {SQLITE_CONTEXT_TABLE}")
    else:
        raise RuntimeError(f"Audit triggers are not available for dialect '{dialect}'")

    logger.info("audit_triggers_dropped", dialect=dialect)


def installed_audit_triggers(connection: Connection) -> list[str]:
    """Names of audit triggers currently present, sorted."""
    dialect = connection.dialect.name
    if dialect == "postgresql":
        rows = connection.execute(
            text(
                "SELECT DISTINCT trigger_name FROM information_schema.triggers "
                "WHERE trigger_name LIKE '%\\_audit\\_%' ORDER BY trigger_name"
            )
        )
    elif dialect == "sqlite":
        rows = connection.execute(
            text(
                "SELECT name FROM sqlite_master WHERE type = 'trigger' "
                "AND name LIKE '%\\_audit\\_%' ESCAPE '\\' ORDER BY name"
            )
        )
    else:
        return []
    return [row[0] for row in rows]

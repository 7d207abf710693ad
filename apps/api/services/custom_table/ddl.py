"""DDL generation for custom tables.

Pure string builders: no database access. Every identifier passes
through quote_ident() and every literal through quote_literal(), and
physical names are derived only by physical_table_name() and friends so
the custom_ prefix cannot be bypassed.

Naming conventions (shared with existing data, do not change):
    main table        custom_<name>
    history table     custom_<name>_history
    trigger/function  custom_<name>_history_trigger
    timeseries index  idx_custom_<name>_<field>
    spatial index     idx_custom_<name>_<field>_gist
"""

# flake8: noqa: E501


import re
from decimal import Decimal
from typing import Any, Iterable, List, Sequence

from . import data_types

PHYSICAL_PREFIX = "custom_"
HISTORY_SUFFIX = "_history"
TRIGGER_SUFFIX = "_history_trigger"

_SAFE_IDENTIFIER = re.compile(r"^[a-z_][a-z0-9_]*$")

# Columns every main table carries around the user fields
AUDIT_COLUMNS = ("created_at", "updated_at", "deleted_at")

# Columns only the history table carries
HISTORY_COLUMNS = ("history_id", "record_id", "operation", "changed_by", "changed_at")

SPATIAL_INDEX_SUFFIX = "_gist"


def quote_ident(name: str) -> str:
    """
    Quote an SQL identifier.

    Only lowercase identifiers are accepted so that the quoted name and
    the name PostgreSQL folds unquoted references to are the same.

    Raises:
        ValueError: If name is not a safe identifier
    """
    if not isinstance(name, str) or not _SAFE_IDENTIFIER.match(name):
        raise ValueError(f"Unsafe SQL identifier: {name!r}")
    return f'"{name}"'


def quote_literal(value: Any) -> str:
    """Quote a value as an SQL string literal."""
    return "'" + str(value).replace("'", "''") + "'"


def physical_table_name(name: str) -> str:
    return f"{PHYSICAL_PREFIX}{name}"


def history_table_name(name: str) -> str:
    return f"{PHYSICAL_PREFIX}{name}{HISTORY_SUFFIX}"


def trigger_name(name: str) -> str:
    """Name shared by the history trigger and its function."""
    return f"{PHYSICAL_PREFIX}{name}{TRIGGER_SUFFIX}"


def timeseries_index_name(name: str, field_name: str) -> str:
    return f"idx_{physical_table_name(name)}_{field_name}"


def column_type(field_def) -> str:
    """Resolve the column type of a field definition."""
    return data_types.resolve_column_type(
        field_def.data_type,
        max_length=field_def.max_length,
        precision=field_def.precision,
        scale=field_def.scale,
    )


def format_default(field_def) -> str:
    """
    Render a field's default value as an SQL expression.

    Numeric and boolean types are emitted unquoted; everything else is
    single-quoted. A value that already arrives quoted ('abc') is
    unwrapped and re-escaped rather than trusted.
    """
    value = str(field_def.default_value)
    data_type = data_types.normalize_data_type(field_def.data_type)

    if data_type in data_types.NUMERIC_TYPES:
        return str(Decimal(value.strip()))
    if data_type == data_types.DataType.BOOLEAN.value:
        return "TRUE" if value.strip().lower() in ("true", "t", "1", "yes", "on") else "FALSE"

    if len(value) >= 2 and value.startswith("'") and value.endswith("'"):
        value = value[1:-1].replace("''", "'")
    return quote_literal(value)


def column_definition(field_def) -> str:
    """Full main-table column definition: name type [constraints]."""
    parts = [quote_ident(field_def.name), column_type(field_def)]

    if field_def.is_required:
        parts.append("NOT NULL")
    if field_def.is_unique:
        parts.append("UNIQUE")
    if field_def.default_value not in (None, ""):
        parts.append(f"DEFAULT {format_default(field_def)}")
    if field_def.relation_table and field_def.relation_field:
        parts.append(
            f"REFERENCES {quote_ident(field_def.relation_table)}({quote_ident(field_def.relation_field)})"
        )
        if field_def.on_delete:
            parts.append(f"ON DELETE {field_def.on_delete.upper()}")

    return " ".join(parts)


def _scalar_fields(fields: Iterable) -> List:
    return [f for f in fields if not data_types.is_geometry_type(f.data_type)]


def _create_table(physical_name: str, columns: Sequence[str]) -> str:
    body = ",\n  ".join(columns)
    return f"CREATE TABLE {quote_ident(physical_name)} (\n  {body}\n);"


def main_table_ddl(definition) -> str:
    """
    CREATE TABLE statement for the main table.

    A UUID primary key is always prepended and the audit columns are
    always appended. Geometry fields are left out; they are added
    afterwards with AddGeometryColumn.
    """
    columns = ['"id" UUID PRIMARY KEY DEFAULT uuid_generate_v4()']
    columns.extend(column_definition(f) for f in _scalar_fields(definition.fields))
    columns.append('"created_at" TIMESTAMPTZ NOT NULL DEFAULT NOW()')
    columns.append('"updated_at" TIMESTAMPTZ NOT NULL DEFAULT NOW()')
    columns.append('"deleted_at" TIMESTAMPTZ')
    return _create_table(physical_table_name(definition.name), columns)


def history_table_ddl(name: str, definition) -> str:
    """
    CREATE TABLE statement for the append-only history table.

    Mirrors the main table's columns without constraints, since a history
    row may describe a deleted or partial record, and adds the audit
    columns history_id, record_id, operation, changed_by and changed_at.
    """
    columns = [
        '"history_id" UUID PRIMARY KEY DEFAULT uuid_generate_v4()',
        '"record_id" UUID NOT NULL',
        "\"operation\" VARCHAR(10) NOT NULL CHECK (\"operation\" IN ('INSERT', 'UPDATE', 'DELETE'))",
        '"id" UUID',
    ]
    columns.extend(
        f"{quote_ident(f.name)} {column_type(f)}" for f in _scalar_fields(definition.fields)
    )
    columns.extend(f"{quote_ident(c)} TIMESTAMPTZ" for c in AUDIT_COLUMNS)
    columns.append('"changed_by" VARCHAR(255)')
    columns.append('"changed_at" TIMESTAMPTZ NOT NULL DEFAULT NOW()')
    return _create_table(history_table_name(name), columns)


def snapshot_columns(fields: Iterable) -> List[str]:
    """Columns copied into history, in fixed order: id, fields, audit."""
    return ["id", *(f.name for f in fields), *AUDIT_COLUMNS]


def history_trigger_function_ddl(name: str, fields: Sequence) -> str:
    """CREATE OR REPLACE FUNCTION statement for history capture."""
    columns = snapshot_columns(fields)
    column_list = ", ".join(quote_ident(c) for c in columns)
    history = quote_ident(history_table_name(name))

    def insert_for(row: str, operation: str) -> str:
        values = ", ".join(f"{row}.{quote_ident(c)}" for c in columns)
        return (
            f"    INSERT INTO {history} (\"record_id\", \"operation\", {column_list}, \"changed_by\")\n"
            f"    SELECT {row}.\"id\", '{operation}', {values}, current_user;\n"
            f"    RETURN {row};"
        )

    return (
        f"CREATE OR REPLACE FUNCTION {quote_ident(trigger_name(name))}()\n"
        "RETURNS TRIGGER AS $$\n"
        "BEGIN\n"
        "  IF (TG_OP = 'DELETE') THEN\n"
        f"{insert_for('OLD', 'DELETE')}\n"
        "  ELSIF (TG_OP = 'UPDATE') THEN\n"
        f"{insert_for('NEW', 'UPDATE')}\n"
        "  ELSIF (TG_OP = 'INSERT') THEN\n"
        f"{insert_for('NEW', 'INSERT')}\n"
        "  END IF;\n"
        "  RETURN NULL;\n"
        "END;\n"
        "$$ LANGUAGE plpgsql;"
    )


def history_trigger_ddl(name: str, fields: Sequence) -> List[str]:
    """
    Trigger function plus the AFTER ROW trigger binding it.

    Returns:
        [function_sql, trigger_sql]
    """
    trigger = quote_ident(trigger_name(name))
    trigger_sql = (
        f"CREATE TRIGGER {trigger}\n"
        f"AFTER INSERT OR UPDATE OR DELETE ON {quote_ident(physical_table_name(name))}\n"
        f"FOR EACH ROW EXECUTE FUNCTION {trigger}();"
    )
    return [history_trigger_function_ddl(name, fields), trigger_sql]


def timeseries_index_ddl(name: str, fields: Iterable) -> List[str]:
    """One descending index per field flagged is_timeseries."""
    table = quote_ident(physical_table_name(name))
    return [
        f"CREATE INDEX IF NOT EXISTS {quote_ident(timeseries_index_name(name, f.name))} "
        f"ON {table} ({quote_ident(f.name)} DESC);"
        for f in fields
        if f.is_timeseries
    ]


def add_column_ddl(physical_name: str, field_def, with_constraints: bool = False) -> str:
    """
    ALTER TABLE ... ADD COLUMN for an existing table.

    with_constraints emits the full main-table column definition; without
    it only the name and type are emitted, as history columns require.
    """
    if with_constraints:
        column = column_definition(field_def)
    else:
        column = f"{quote_ident(field_def.name)} {column_type(field_def)}"
    return f"ALTER TABLE {quote_ident(physical_name)} ADD COLUMN {column};"


def drop_table_ddl(physical_name: str, if_exists: bool = True) -> str:
    guard = "IF EXISTS " if if_exists else ""
    return f"DROP TABLE {guard}{quote_ident(physical_name)} CASCADE;"


def drop_trigger_function_ddl(name: str) -> str:
    return f"DROP FUNCTION IF EXISTS {quote_ident(trigger_name(name))}() CASCADE;"

"""PostGIS helpers for geometry fields.

Geometry columns cannot be declared in the CREATE TABLE column list with
their SRID and subtype enforced, so they are added to an existing table
with AddGeometryColumn. The same helpers run against the main table and
the history table so both carry identical geometry columns.
"""

# flake8: noqa: E501


from typing import Iterable, List

from . import data_types
from .ddl import SPATIAL_INDEX_SUFFIX, quote_ident, quote_literal
from .errors import UnsupportedKindError


COORDINATE_DIMENSION = 2


def geometry_fields(fields: Iterable) -> List:
    return [f for f in fields if data_types.is_geometry_type(f.data_type)]


def geometry_subtype(field_def) -> str:
    """
    PostGIS subtype for a geometry field.

    The data type decides the subtype; the generic GEOMETRY data type
    may be narrowed by an explicit geometry_type.
    """
    subtype = data_types.get_geometry_type(field_def.data_type)
    if subtype is None:
        raise UnsupportedKindError(field_def.data_type)
    if subtype == "GEOMETRY" and field_def.geometry_type:
        return field_def.geometry_type.upper()
    return subtype


def field_srid(field_def, default_srid: int = data_types.DEFAULT_SRID) -> int:
    return field_def.srid or default_srid


def spatial_index_name(physical_table_name: str, field_name: str) -> str:
    return f"idx_{physical_table_name}_{field_name}{SPATIAL_INDEX_SUFFIX}"


def geometry_column_statements(
    physical_table_name: str,
    fields: Iterable,
    enforce_required: bool = True,
    default_srid: int = data_types.DEFAULT_SRID,
) -> List[str]:
    """
    Statements adding one typed, SRID-bound geometry column per geometry field.

    Args:
        physical_table_name: Existing table to add the columns to
        fields: Field definitions; non-geometry fields are ignored
        enforce_required: Add NOT NULL for required fields (main table only)
        default_srid: SRID for fields that do not set one

    Returns:
        List of SQL statements, in field order
    """
    statements = []
    for field_def in geometry_fields(fields):
        # Validates the identifiers even though they are passed as literals
        quote_ident(physical_table_name)
        column = quote_ident(field_def.name)

        statements.append(
            "SELECT AddGeometryColumn("
            f"{quote_literal(physical_table_name)}, {quote_literal(field_def.name)}, "
            f"{int(field_srid(field_def, default_srid))}, {quote_literal(geometry_subtype(field_def))}, "
            f"{COORDINATE_DIMENSION});"
        )
        if enforce_required and field_def.is_required:
            statements.append(
                f"ALTER TABLE {quote_ident(physical_table_name)} ALTER COLUMN {column} SET NOT NULL;"
            )
    return statements


def spatial_index_statements(physical_table_name: str, fields: Iterable) -> List[str]:
    """GIST index statements, one per geometry field."""
    table = quote_ident(physical_table_name)
    return [
        f"CREATE INDEX IF NOT EXISTS {quote_ident(spatial_index_name(physical_table_name, f.name))} "
        f"ON {table} USING GIST ({quote_ident(f.name)});"
        for f in geometry_fields(fields)
    ]

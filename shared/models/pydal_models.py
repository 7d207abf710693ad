"""PyDAL table definitions for the custom table metadata store.

The metadata tables are created by Alembic (migration 001) and defined
here with migrate=False for runtime queries. Tests pass migrate=True to
let PyDAL create them in a throwaway database.
"""

# flake8: noqa: E501

import datetime

from pydal import Field
from pydal.validators import IS_IN_SET, IS_MATCH, IS_NOT_EMPTY

IDENTIFIER_REGEX = r"^[a-z][a-z0-9_]*$"


def _utcnow():
    return datetime.datetime.now(datetime.timezone.utc)


def define_custom_table_models(db, migrate=False):
    """Define the custom_tables and custom_fields metadata tables."""

    # One row per logical table; name is unique across the schema namespace
    db.define_table(
        "custom_tables",
        Field(
            "name",
            "string",
            length=63,
            notnull=True,
            unique=True,
            requires=IS_MATCH(IDENTIFIER_REGEX),
        ),
        Field("display_name", "string", length=255, notnull=True, requires=IS_NOT_EMPTY()),
        Field("description", "text"),
        Field("icon", "string", length=100),
        Field("is_active", "boolean", default=True, notnull=True),
        Field("created_by", "string", length=255, notnull=True),
        Field("created_at", "datetime", default=_utcnow),
        Field("updated_at", "datetime", default=_utcnow, update=_utcnow),
        migrate=migrate,
    )

    # Fields are append-only after creation; ordered by field_order
    db.define_table(
        "custom_fields",
        Field(
            "table_id",
            "reference custom_tables",
            notnull=True,
            ondelete="CASCADE",
        ),
        Field("name", "string", length=63, notnull=True, requires=IS_MATCH(IDENTIFIER_REGEX)),
        Field("display_name", "string", length=255, notnull=True),
        Field("description", "text"),
        Field("data_type", "string", length=50, notnull=True),
        Field("is_required", "boolean", default=False, notnull=True),
        Field("is_unique", "boolean", default=False, notnull=True),
        Field("is_timeseries", "boolean", default=False, notnull=True),
        Field("default_value", "text"),
        Field("max_length", "integer"),
        Field("precision_digits", "integer"),
        Field("scale_digits", "integer"),
        Field("srid", "integer"),
        Field("geometry_type", "string", length=20),
        Field("iot_config", "json"),
        Field("relation_table", "string", length=63),
        Field("relation_field", "string", length=63),
        Field(
            "on_delete",
            "string",
            length=20,
            requires=IS_IN_SET(["CASCADE", "SET NULL", "RESTRICT", "NO ACTION"]),
        ),
        Field("validation_rules", "json"),
        Field("field_order", "integer", default=0, notnull=True),
        Field("is_visible", "boolean", default=True, notnull=True),
        Field("created_at", "datetime", default=_utcnow),
        Field("updated_at", "datetime", default=_utcnow, update=_utcnow),
        migrate=migrate,
    )

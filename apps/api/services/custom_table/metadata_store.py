"""Metadata store for custom tables.

Reads and writes the custom_tables / custom_fields catalog through an
injected PyDAL handle. The store never commits; transaction boundaries
belong to the caller.
"""

# flake8: noqa: E501


import logging
from typing import List, Optional

from apps.api.models.pydantic.custom_table import (
    CreateCustomTableRequest,
    CustomFieldDTO,
    CustomFieldRequest,
    CustomTableDTO,
)

from .data_types import normalize_data_type

logger = logging.getLogger(__name__)


class MetadataStore:
    """PyDAL-backed catalog of logical tables and fields."""

    def __init__(self, db):
        """Initialize store with database connection."""
        self.db = db

    # ==================== Conversion ====================

    def _field_to_dto(self, row) -> CustomFieldDTO:
        return CustomFieldDTO(
            id=row.id,
            table_id=row.table_id,
            name=row.name,
            display_name=row.display_name,
            description=row.description,
            data_type=row.data_type,
            is_required=bool(row.is_required),
            is_unique=bool(row.is_unique),
            is_timeseries=bool(row.is_timeseries),
            default_value=row.default_value,
            max_length=row.max_length,
            precision=row.precision_digits,
            scale=row.scale_digits,
            srid=row.srid,
            geometry_type=row.geometry_type,
            iot_config=row.iot_config,
            relation_table=row.relation_table,
            relation_field=row.relation_field,
            on_delete=row.on_delete,
            validation=row.validation_rules,
            order=row.field_order or 0,
            is_visible=True if row.is_visible is None else bool(row.is_visible),
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def _table_to_dto(self, row) -> CustomTableDTO:
        return CustomTableDTO(
            id=row.id,
            name=row.name,
            display_name=row.display_name,
            description=row.description,
            icon=row.icon,
            is_active=bool(row.is_active),
            created_by=row.created_by,
            created_at=row.created_at,
            updated_at=row.updated_at,
            fields=self.get_fields(row.id),
        )

    # ==================== Queries ====================

    def get_fields(self, table_id: int) -> List[CustomFieldDTO]:
        """Fields of a table ordered by display order."""
        db = self.db
        rows = db(db.custom_fields.table_id == table_id).select(
            orderby=db.custom_fields.field_order | db.custom_fields.id
        )
        return [self._field_to_dto(row) for row in rows]

    def get_by_id(self, table_id: int) -> Optional[CustomTableDTO]:
        row = self.db.custom_tables(table_id)
        return self._table_to_dto(row) if row else None

    def get_by_name(self, name: str) -> Optional[CustomTableDTO]:
        db = self.db
        row = db(db.custom_tables.name == name).select().first()
        return self._table_to_dto(row) if row else None

    def exists(self, name: str) -> bool:
        db = self.db
        return db(db.custom_tables.name == name).count() > 0

    def list_active(self) -> List[CustomTableDTO]:
        """All active tables, newest first."""
        db = self.db
        rows = db(db.custom_tables.is_active == True).select(  # noqa: E712
            orderby=~db.custom_tables.created_at | ~db.custom_tables.id
        )
        return [self._table_to_dto(row) for row in rows]

    def list_names(self) -> List[str]:
        db = self.db
        return [row.name for row in db(db.custom_tables).select(db.custom_tables.name)]

    def max_order(self, table_id: int) -> int:
        db = self.db
        max_expr = db.custom_fields.field_order.max()
        row = db(db.custom_fields.table_id == table_id).select(max_expr).first()
        value = row[max_expr] if row else None
        return value if value is not None else -1

    # ==================== Writes ====================

    def insert_field(self, table_id: int, field_def: CustomFieldRequest, order: int) -> int:
        return self.db.custom_fields.insert(
            table_id=table_id,
            name=field_def.name,
            display_name=field_def.display_name,
            description=field_def.description,
            data_type=normalize_data_type(field_def.data_type),
            is_required=bool(field_def.is_required),
            is_unique=bool(field_def.is_unique),
            is_timeseries=bool(field_def.is_timeseries),
            default_value=field_def.default_value,
            max_length=field_def.max_length,
            precision_digits=field_def.precision,
            scale_digits=field_def.scale,
            srid=field_def.srid,
            geometry_type=field_def.geometry_type.upper() if field_def.geometry_type else None,
            iot_config=field_def.iot_config,
            relation_table=field_def.relation_table,
            relation_field=field_def.relation_field,
            on_delete=field_def.on_delete.upper() if field_def.on_delete else None,
            validation_rules=field_def.validation,
            field_order=order,
        )

    def insert_table(self, definition: CreateCustomTableRequest, created_by: str) -> int:
        """
        Insert a table row and its fields.

        Fields without an explicit order take their position in the list.

        Returns:
            ID of the new custom_tables row
        """
        table_id = self.db.custom_tables.insert(
            name=definition.name,
            display_name=definition.display_name,
            description=definition.description,
            icon=definition.icon,
            is_active=True,
            created_by=created_by,
        )
        for index, field_def in enumerate(definition.fields):
            order = field_def.order if field_def.order is not None else index
            self.insert_field(table_id, field_def, order)

        logger.debug(
            f"Inserted metadata for table {definition.name} ({len(definition.fields)} fields)"
        )
        return table_id

    def delete(self, table_id: int) -> None:
        db = self.db
        db(db.custom_fields.table_id == table_id).delete()
        db(db.custom_tables.id == table_id).delete()

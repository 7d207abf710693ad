"""
Pydantic 2 models for custom table definitions and metadata.

Provides:
- CustomFieldRequest / CreateCustomTableRequest: the table definition wire
  shape submitted by the table designer
- CustomFieldDTO / CustomTableDTO: immutable metadata records returned to
  callers once the physical objects exist

Request models are deliberately permissive about presence (most fields
are Optional) so that the definition validator can report every missing
value at once instead of pydantic stopping at type level.
"""

# flake8: noqa: E501


from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import Field, field_validator

from .common import ImmutableModel, RequestModel


class CustomFieldRequest(RequestModel):
    """
    One column of a table definition.

    Attributes:
        name: Column identifier (^[a-z][a-z0-9_]*$)
        display_name: Label shown in the UI
        data_type: Data type from the type catalog
        max_length: Length for VARCHAR/CHAR
        precision: Precision for DECIMAL/NUMERIC
        scale: Scale for DECIMAL/NUMERIC
        is_required: Emit NOT NULL on the main table
        is_unique: Emit UNIQUE on the main table
        is_timeseries: Create a descending index on this column
        default_value: Column default (quoted unless numeric/boolean)
        srid: Spatial reference for geometry types (default 4326)
        geometry_type: PostGIS subtype for geometry types
        iot_config: Sensor configuration for IOT_SENSOR
        relation_table: Referenced table for foreign keys
        relation_field: Referenced column for foreign keys
        on_delete: ON DELETE action for foreign keys
        validation: Extra validation rules ({"options": [...]} for SELECT)
        order: Display position
    """

    name: Optional[str] = Field(default=None, description="Column identifier")
    display_name: Optional[str] = Field(default=None, description="Display label")
    description: Optional[str] = None
    data_type: Optional[str] = Field(default=None, description="Data type from the catalog")
    max_length: Optional[int] = Field(default=None, ge=1, le=10485760)
    precision: Optional[int] = Field(default=None, ge=1, le=1000)
    scale: Optional[int] = Field(default=None, ge=0, le=1000)
    is_required: bool = False
    is_unique: bool = False
    is_timeseries: bool = False
    default_value: Optional[str] = None
    srid: Optional[int] = None
    geometry_type: Optional[str] = None
    iot_config: Optional[Dict[str, Any]] = None
    relation_table: Optional[str] = None
    relation_field: Optional[str] = None
    on_delete: Optional[str] = None
    validation: Optional[Dict[str, Any]] = None
    order: Optional[int] = Field(default=None, ge=0)

    @field_validator("default_value", mode="before")
    @classmethod
    def stringify_default(cls, v: Union[str, int, float, bool, None]) -> Optional[str]:
        """Accept JSON numbers and booleans as defaults."""
        if v is None:
            return None
        if isinstance(v, bool):
            return "true" if v else "false"
        if isinstance(v, (int, float)):
            return str(v)
        return v


class CreateCustomTableRequest(RequestModel):
    """
    Request to create a custom table.

    Attributes:
        name: Logical table name; the physical table is custom_<name>
        display_name: Label shown in the UI
        description: Optional description
        icon: Optional icon name
        fields: Ordered column definitions
    """

    name: Optional[str] = Field(default=None, description="Logical table name")
    display_name: Optional[str] = Field(default=None, description="Display label")
    description: Optional[str] = None
    icon: Optional[str] = None
    fields: List[CustomFieldRequest] = Field(default_factory=list)


class CustomFieldDTO(ImmutableModel):
    """Immutable metadata record for one custom field."""

    id: int
    table_id: int
    name: str
    display_name: str
    description: Optional[str] = None
    data_type: str
    is_required: bool = False
    is_unique: bool = False
    is_timeseries: bool = False
    default_value: Optional[str] = None
    max_length: Optional[int] = None
    precision: Optional[int] = None
    scale: Optional[int] = None
    srid: Optional[int] = None
    geometry_type: Optional[str] = None
    iot_config: Optional[Dict[str, Any]] = None
    relation_table: Optional[str] = None
    relation_field: Optional[str] = None
    on_delete: Optional[str] = None
    validation: Optional[Dict[str, Any]] = None
    order: int = 0
    is_visible: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_definition(self) -> CustomFieldRequest:
        return CustomFieldRequest.model_validate(
            self.model_dump(
                exclude={"id", "table_id", "is_visible", "created_at", "updated_at"}
            )
        )


class CustomTableDTO(ImmutableModel):
    """Immutable metadata record for a custom table and its ordered fields."""

    id: int
    name: str
    display_name: str
    description: Optional[str] = None
    icon: Optional[str] = None
    is_active: bool = True
    created_by: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    fields: List[CustomFieldDTO] = Field(default_factory=list)

    def to_definition(self) -> CreateCustomTableRequest:
        """Rebuild the definition this table was created from."""
        return CreateCustomTableRequest(
            name=self.name,
            display_name=self.display_name,
            description=self.description,
            icon=self.icon,
            fields=[f.to_definition() for f in self.fields],
        )

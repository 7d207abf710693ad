"""Validation of custom table and field definitions.

Every rule is applied independently so that a caller receives the full
list of violations in a single pass. Nothing in this module raises for
a bad definition; callers decide what to do with a non-empty result.
"""

# flake8: noqa: E501


import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, List, Mapping, Union

from pydantic import ValidationError

from apps.api.models.pydantic.common import format_validation_errors
from apps.api.models.pydantic.custom_table import (
    CreateCustomTableRequest,
    CustomFieldRequest,
)

from . import data_types, ddl
from .errors import InvalidDefinitionError

IDENTIFIER_PATTERN = re.compile(r"^[a-z][a-z0-9_]*$")

# PostgreSQL truncates identifiers at 63 bytes; leave room for the
# custom_ prefix and _history_trigger suffix.
MAX_TABLE_NAME_LENGTH = 40
MAX_FIELD_NAME_LENGTH = 63

# Field names would clash with the main or history table columns
RESERVED_FIELD_NAMES = frozenset({"id", *ddl.AUDIT_COLUMNS, *ddl.HISTORY_COLUMNS})

# custom_tables / custom_fields hold the catalog; /custom-tables/consistency is a route
RESERVED_TABLE_NAMES = frozenset({"tables", "fields", "consistency"})

ON_DELETE_ACTIONS = frozenset({"CASCADE", "SET NULL", "RESTRICT", "NO ACTION"})

IOT_NUMERIC_KEYS = ("minValue", "maxValue", "threshold")
IOT_STRING_KEYS = ("sensorType", "unit")

TRUE_VALUES = frozenset({"true", "t", "1", "yes", "on"})
FALSE_VALUES = frozenset({"false", "f", "0", "no", "off"})


@dataclass(slots=True)
class ValidationResult:
    """Outcome of validating a definition."""

    errors: List[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    def raise_if_invalid(self) -> None:
        if self.errors:
            raise InvalidDefinitionError(self.errors)


def is_valid_identifier(name: Any) -> bool:
    return isinstance(name, str) and bool(IDENTIFIER_PATTERN.match(name))


def coerce_table_definition(
    definition: Union[CreateCustomTableRequest, Mapping[str, Any]],
) -> CreateCustomTableRequest:
    """
    Turn a wire payload into a CreateCustomTableRequest.

    Raises:
        InvalidDefinitionError: If the payload has the wrong shape or types
    """
    if isinstance(definition, CreateCustomTableRequest):
        return definition
    try:
        return CreateCustomTableRequest.model_validate(definition)
    except ValidationError as e:
        raise InvalidDefinitionError(format_validation_errors(e)) from e


def coerce_field_definition(
    field_def: Union[CustomFieldRequest, Mapping[str, Any]],
) -> CustomFieldRequest:
    """Turn a wire payload into a CustomFieldRequest."""
    if isinstance(field_def, CustomFieldRequest):
        return field_def
    try:
        return CustomFieldRequest.model_validate(field_def)
    except ValidationError as e:
        raise InvalidDefinitionError(format_validation_errors(e)) from e


def validate_geometry_field(field_def: CustomFieldRequest) -> List[str]:
    """Validate SRID and subtype of a geometry field."""
    errors: List[str] = []

    if not data_types.is_geometry_type(field_def.data_type):
        return errors

    kind_subtype = data_types.get_geometry_type(field_def.data_type)
    if field_def.geometry_type is not None:
        subtype = field_def.geometry_type.upper()
        if subtype not in data_types.GEOMETRY_SUBTYPES:
            errors.append(
                f'Invalid geometry type "{field_def.geometry_type}" for field "{field_def.name}"'
            )
        elif kind_subtype != "GEOMETRY" and subtype != kind_subtype:
            errors.append(
                f'Geometry type "{field_def.geometry_type}" does not match data type '
                f'{field_def.data_type} for field "{field_def.name}"'
            )

    if field_def.srid is not None and not data_types.is_valid_srid(field_def.srid):
        errors.append(f'Invalid SRID "{field_def.srid}" for geometry field "{field_def.name}"')

    return errors


def validate_iot_field(field_def: CustomFieldRequest) -> List[str]:
    """Validate the sensor configuration of an IoT field.

    Configuration is optional. When present, numeric bounds must be
    numbers, descriptive keys must be strings, and minValue must be
    below maxValue.
    """
    errors: List[str] = []

    if not data_types.is_iot_type(field_def.data_type) or not field_def.iot_config:
        return errors

    config = field_def.iot_config
    for key in IOT_NUMERIC_KEYS:
        value = config.get(key)
        if value is not None and (isinstance(value, bool) or not isinstance(value, (int, float))):
            errors.append(f'IoT field "{field_def.name}": {key} must be a number')
    for key in IOT_STRING_KEYS:
        value = config.get(key)
        if value is not None and not isinstance(value, str):
            errors.append(f'IoT field "{field_def.name}": {key} must be a string')

    min_value = config.get("minValue")
    max_value = config.get("maxValue")
    if (
        isinstance(min_value, (int, float))
        and isinstance(max_value, (int, float))
        and not isinstance(min_value, bool)
        and not isinstance(max_value, bool)
        and min_value >= max_value
    ):
        errors.append(f'IoT field "{field_def.name}": minValue must be less than maxValue')

    return errors


def _validate_default_value(field_def: CustomFieldRequest, label: str) -> List[str]:
    # Numeric and boolean defaults are emitted unquoted, so they must be literals
    value = field_def.default_value
    if value is None or value == "" or not data_types.is_numeric_or_boolean(field_def.data_type):
        return []

    data_type = data_types.normalize_data_type(field_def.data_type)
    if data_type in data_types.NUMERIC_TYPES:
        try:
            number = Decimal(value.strip())
        except InvalidOperation:
            number = None
        if number is None or not number.is_finite():
            return [f"{label}: default value {value!r} is not a number"]
    elif data_type == data_types.DataType.BOOLEAN.value:
        if value.strip().lower() not in TRUE_VALUES | FALSE_VALUES:
            return [f"{label}: default value {value!r} is not a boolean"]
    return []


def validate_field_definition(field_def: CustomFieldRequest, position: int) -> List[str]:
    """
    Validate one field definition.

    Args:
        field_def: Field to validate
        position: 1-based position used in messages for unnamed fields

    Returns:
        List of violation messages (empty if valid)
    """
    errors: List[str] = []
    label = f"Field {position}"

    if not is_valid_identifier(field_def.name):
        errors.append(
            f"{label}: name must start with a letter and contain only lowercase letters, numbers, and underscores"
        )
    elif len(field_def.name) > MAX_FIELD_NAME_LENGTH:
        errors.append(f"{label}: name must be at most {MAX_FIELD_NAME_LENGTH} characters")
    elif field_def.name in RESERVED_FIELD_NAMES:
        errors.append(f"{label}: name {field_def.name!r} is reserved")
    elif field_def.name.endswith(ddl.SPATIAL_INDEX_SUFFIX):
        # idx_<table>_<name> would collide with the spatial index of another field
        errors.append(f"{label}: name must not end with {ddl.SPATIAL_INDEX_SUFFIX}")

    if not field_def.display_name or not field_def.display_name.strip():
        errors.append(f"{label}: display name is required")

    if not field_def.data_type:
        errors.append(f"{label}: data type is required")
        return errors

    name = field_def.name or label
    data_type = data_types.normalize_data_type(field_def.data_type)

    if not data_types.is_known_type(data_type):
        errors.append(f"Field {name}: unsupported data type {field_def.data_type!r}")
        return errors

    if data_types.requires_max_length(data_type) and not field_def.max_length:
        errors.append(f"Field {name}: {data_type} requires maxLength")

    if data_types.requires_precision(data_type):
        if not field_def.precision:
            errors.append(f"Field {name}: {data_type} requires precision")
        elif field_def.scale is not None and field_def.scale > field_def.precision:
            errors.append(f"Field {name}: scale must not exceed precision")

    if field_def.relation_table and not field_def.relation_field:
        errors.append(f"Field {name}: relation requires relationField")

    if data_type == data_types.DataType.RELATION.value and not field_def.relation_table:
        errors.append(f"Field {name}: RELATION requires relationTable")

    if field_def.relation_table and not is_valid_identifier(field_def.relation_table):
        errors.append(f"Field {name}: relationTable must be a valid table name")
    if field_def.relation_field and not is_valid_identifier(field_def.relation_field):
        errors.append(f"Field {name}: relationField must be a valid column name")

    if field_def.on_delete is not None and field_def.on_delete.upper() not in ON_DELETE_ACTIONS:
        errors.append(
            f"Field {name}: onDelete must be one of {', '.join(sorted(ON_DELETE_ACTIONS))}"
        )

    if data_type == data_types.DataType.SELECT.value:
        options = (field_def.validation or {}).get("options")
        if not isinstance(options, list) or len(options) == 0:
            errors.append(f"Field {name}: SELECT requires validation.options")

    errors.extend(validate_geometry_field(field_def))
    errors.extend(validate_iot_field(field_def))
    errors.extend(_validate_default_value(field_def, f"Field {name}"))

    return errors


def _duplicates(names: Iterable[str]) -> List[str]:
    seen = set()
    duplicates = []
    for name in names:
        if name in seen and name not in duplicates:
            duplicates.append(name)
        seen.add(name)
    return duplicates


def validate_table_definition(definition: CreateCustomTableRequest) -> ValidationResult:
    """
    Validate a complete table definition.

    Checks the table name, display name, presence of fields, every field
    (including geometry and IoT sub-validation) and duplicate field names.

    Returns:
        ValidationResult with all violations found
    """
    result = ValidationResult()
    errors = result.errors

    if not is_valid_identifier(definition.name):
        errors.append(
            "Table name must start with a letter and contain only lowercase letters, numbers, and underscores"
        )
    elif len(definition.name) > MAX_TABLE_NAME_LENGTH:
        errors.append(f"Table name must be at most {MAX_TABLE_NAME_LENGTH} characters")
    elif definition.name in RESERVED_TABLE_NAMES:
        errors.append(f"Table name {definition.name!r} is reserved")
    elif definition.name.endswith("_history"):
        errors.append("Table name must not end with _history")

    if not definition.display_name or not definition.display_name.strip():
        errors.append("Display name is required")

    if not definition.fields:
        errors.append("At least one field is required")

    for index, field_def in enumerate(definition.fields):
        errors.extend(validate_field_definition(field_def, index + 1))

    duplicates = _duplicates(f.name for f in definition.fields if f.name)
    if duplicates:
        errors.append(f"Duplicate field names: {', '.join(duplicates)}")

    return result

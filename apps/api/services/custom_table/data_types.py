"""Data type catalog for custom tables.

Maps the portable field data types accepted in table definitions onto
PostgreSQL column types, and carries the UI-facing catalog (labels,
categories, parameter hints) used by the administration screens.
"""

# flake8: noqa: E501


from enum import Enum
from typing import Any, Dict, List, Optional

from .errors import UnsupportedKindError


class DataType(str, Enum):
    """Closed set of field data types."""

    # String types
    TEXT = "TEXT"
    VARCHAR = "VARCHAR"
    CHAR = "CHAR"

    # Numeric types
    INTEGER = "INTEGER"
    BIGINT = "BIGINT"
    DECIMAL = "DECIMAL"
    NUMERIC = "NUMERIC"
    FLOAT = "FLOAT"
    DOUBLE_PRECISION = "DOUBLE PRECISION"

    BOOLEAN = "BOOLEAN"

    # Date/Time types
    DATE = "DATE"
    TIME = "TIME"
    TIMESTAMP = "TIMESTAMP"
    TIMESTAMPTZ = "TIMESTAMPTZ"

    JSON = "JSON"
    JSONB = "JSONB"

    UUID = "UUID"

    # PostGIS geometry types
    GEOMETRY_POINT = "GEOMETRY_POINT"
    GEOMETRY_POLYGON = "GEOMETRY_POLYGON"
    GEOMETRY_LINESTRING = "GEOMETRY_LINESTRING"
    GEOMETRY_MULTIPOINT = "GEOMETRY_MULTIPOINT"
    GEOMETRY_MULTIPOLYGON = "GEOMETRY_MULTIPOLYGON"
    GEOMETRY = "GEOMETRY"

    # IoT and special types
    IOT_SENSOR = "IOT_SENSOR"
    TAGS = "TAGS"

    # Enumerated and foreign-key types
    SELECT = "SELECT"
    RELATION = "RELATION"


ALL_DATA_TYPES = frozenset(t.value for t in DataType)

# Geometry data type -> PostGIS geometry subtype
GEOMETRY_TYPE_MAP: Dict[str, str] = {
    DataType.GEOMETRY_POINT.value: "POINT",
    DataType.GEOMETRY_POLYGON.value: "POLYGON",
    DataType.GEOMETRY_LINESTRING.value: "LINESTRING",
    DataType.GEOMETRY_MULTIPOINT.value: "MULTIPOINT",
    DataType.GEOMETRY_MULTIPOLYGON.value: "MULTIPOLYGON",
    DataType.GEOMETRY.value: "GEOMETRY",
}

GEOMETRY_SUBTYPES = frozenset(GEOMETRY_TYPE_MAP.values())

# Spatial reference systems offered by default
SUPPORTED_SRID = {
    "WGS84": 4326,  # GPS coordinates
    "WEB_MERCATOR": 3857,
}
DEFAULT_SRID = SUPPORTED_SRID["WGS84"]
MAX_SRID = 999999

# Types whose defaults are emitted without quotes
NUMERIC_TYPES = frozenset(
    {
        DataType.INTEGER.value,
        DataType.BIGINT.value,
        DataType.DECIMAL.value,
        DataType.NUMERIC.value,
        DataType.FLOAT.value,
        DataType.DOUBLE_PRECISION.value,
    }
)

STRING_TYPES = frozenset(
    {DataType.TEXT.value, DataType.VARCHAR.value, DataType.CHAR.value}
)
DATE_TIME_TYPES = frozenset(
    {
        DataType.DATE.value,
        DataType.TIME.value,
        DataType.TIMESTAMP.value,
        DataType.TIMESTAMPTZ.value,
    }
)
JSON_TYPES = frozenset({DataType.JSON.value, DataType.JSONB.value})

DEFAULT_VARCHAR_LENGTH = 255
DEFAULT_CHAR_LENGTH = 1
DEFAULT_PRECISION = 10
DEFAULT_SCALE = 2


class DataTypeCategory:
    """UI grouping labels."""

    STRING = "String"
    NUMBER = "Number"
    BOOLEAN = "Boolean"
    DATE_TIME = "Date/Time"
    JSON = "JSON"
    GIS = "GIS"
    IOT = "IoT"
    OTHER = "Other"


def normalize_data_type(data_type: Optional[str]) -> Optional[str]:
    """Upper-case and trim a data type string; None stays None."""
    if data_type is None:
        return None
    return " ".join(str(data_type).upper().split())


def is_known_type(data_type: Optional[str]) -> bool:
    return normalize_data_type(data_type) in ALL_DATA_TYPES


def is_geometry_type(data_type: Optional[str]) -> bool:
    """Check if a data type is a PostGIS geometry type."""
    return normalize_data_type(data_type) in GEOMETRY_TYPE_MAP


def is_iot_type(data_type: Optional[str]) -> bool:
    """Check if a data type is an IoT sensor type."""
    return normalize_data_type(data_type) == DataType.IOT_SENSOR.value


def is_numeric_or_boolean(data_type: Optional[str]) -> bool:
    normalized = normalize_data_type(data_type)
    return normalized in NUMERIC_TYPES or normalized == DataType.BOOLEAN.value


def requires_max_length(data_type: Optional[str]) -> bool:
    return normalize_data_type(data_type) in (
        DataType.VARCHAR.value,
        DataType.CHAR.value,
    )


def requires_precision(data_type: Optional[str]) -> bool:
    return normalize_data_type(data_type) in (
        DataType.DECIMAL.value,
        DataType.NUMERIC.value,
    )


def get_geometry_type(data_type: Optional[str]) -> Optional[str]:
    """Get the PostGIS geometry subtype for a geometry data type."""
    return GEOMETRY_TYPE_MAP.get(normalize_data_type(data_type))


def is_valid_srid(srid: Any) -> bool:
    """Validate an SRID value.

    Accepts the well-known SRIDs and any positive integer below 999999.
    Booleans are rejected even though they are ints in Python.
    """
    if isinstance(srid, bool) or not isinstance(srid, int):
        return False
    return srid in SUPPORTED_SRID.values() or 0 < srid < MAX_SRID


def resolve_column_type(
    data_type: str,
    max_length: Optional[int] = None,
    precision: Optional[int] = None,
    scale: Optional[int] = None,
) -> str:
    """
    Resolve a field data type to a PostgreSQL column type string.

    Geometry types resolve to a GEOMETRY placeholder; the real column is
    added with AddGeometryColumn by the PostGIS helpers. IoT sensor data
    is stored as JSONB and tags as a TEXT array.

    Args:
        data_type: Field data type (one of DataType)
        max_length: Length for VARCHAR/CHAR (defaults 255/1)
        precision: Precision for DECIMAL/NUMERIC (default 10)
        scale: Scale for DECIMAL/NUMERIC (default 2)

    Returns:
        Column type string, e.g. "VARCHAR(20)" or "DECIMAL(10,2)"

    Raises:
        UnsupportedKindError: If data_type is outside the catalog
    """
    normalized = normalize_data_type(data_type)
    if normalized not in ALL_DATA_TYPES:
        raise UnsupportedKindError(data_type)

    if normalized in GEOMETRY_TYPE_MAP:
        return "GEOMETRY"
    if normalized == DataType.IOT_SENSOR.value:
        return "JSONB"
    if normalized == DataType.TAGS.value:
        return "TEXT[]"
    if normalized == DataType.SELECT.value:
        return "TEXT"
    if normalized == DataType.RELATION.value:
        return "UUID"

    if normalized == DataType.VARCHAR.value:
        return f"VARCHAR({int(max_length or DEFAULT_VARCHAR_LENGTH)})"
    if normalized == DataType.CHAR.value:
        return f"CHAR({int(max_length or DEFAULT_CHAR_LENGTH)})"
    if normalized in (DataType.DECIMAL.value, DataType.NUMERIC.value):
        p = int(precision or DEFAULT_PRECISION)
        s = DEFAULT_SCALE if scale is None else int(scale)
        return f"DECIMAL({p},{s})"

    return normalized


def get_data_type_category(data_type: Optional[str]) -> str:
    """Get the UI category for a data type."""
    normalized = normalize_data_type(data_type)

    if normalized in GEOMETRY_TYPE_MAP:
        return DataTypeCategory.GIS
    if normalized == DataType.IOT_SENSOR.value:
        return DataTypeCategory.IOT
    if normalized in STRING_TYPES or normalized == DataType.SELECT.value:
        return DataTypeCategory.STRING
    if normalized in NUMERIC_TYPES:
        return DataTypeCategory.NUMBER
    if normalized == DataType.BOOLEAN.value:
        return DataTypeCategory.BOOLEAN
    if normalized in DATE_TIME_TYPES:
        return DataTypeCategory.DATE_TIME
    if normalized in JSON_TYPES:
        return DataTypeCategory.JSON
    return DataTypeCategory.OTHER


def _definition(
    data_type: DataType, label: str, description: str, **flags: bool
) -> Dict[str, Any]:
    entry = {
        "value": data_type.value,
        "label": label,
        "category": get_data_type_category(data_type.value),
        "description": description,
        "requires_length": requires_max_length(data_type.value),
        "requires_precision": requires_precision(data_type.value),
        "requires_geometry": is_geometry_type(data_type.value),
        "requires_iot_config": is_iot_type(data_type.value),
    }
    entry.update(flags)
    return entry


# Offered in the table designer, in display order
DATA_TYPE_DEFINITIONS: List[Dict[str, Any]] = [
    _definition(DataType.TEXT, "Text", "Variable length text"),
    _definition(DataType.VARCHAR, "Variable Char", "Text with max length"),
    _definition(DataType.CHAR, "Fixed Char", "Fixed length text"),
    _definition(DataType.INTEGER, "Integer", "Whole numbers"),
    _definition(DataType.BIGINT, "Big Integer", "Large whole numbers"),
    _definition(DataType.DECIMAL, "Decimal", "Precise decimal numbers"),
    _definition(DataType.FLOAT, "Float", "Floating point numbers"),
    _definition(DataType.DOUBLE_PRECISION, "Double", "Double precision floating point"),
    _definition(DataType.BOOLEAN, "Boolean", "True/False values"),
    _definition(DataType.DATE, "Date", "Date without time"),
    _definition(DataType.TIME, "Time", "Time of day"),
    _definition(DataType.TIMESTAMP, "Timestamp", "Date and time"),
    _definition(DataType.TIMESTAMPTZ, "Timestamp with Timezone", "Date, time, and timezone"),
    _definition(DataType.JSONB, "JSONB (Binary)", "Binary JSON data"),
    _definition(DataType.UUID, "UUID", "Unique identifier"),
    _definition(DataType.SELECT, "Select", "One value from a fixed list of options"),
    _definition(DataType.RELATION, "Relation", "Reference to a row in another table"),
    _definition(DataType.GEOMETRY_POINT, "Location (Point)", "Geographic point (lat/long)"),
    _definition(DataType.GEOMETRY_POLYGON, "Zone (Polygon)", "Geographic area/boundary"),
    _definition(DataType.GEOMETRY_LINESTRING, "Path (LineString)", "Geographic path/route"),
    _definition(DataType.GEOMETRY_MULTIPOINT, "Locations (MultiPoint)", "Set of geographic points"),
    _definition(DataType.GEOMETRY_MULTIPOLYGON, "Zones (MultiPolygon)", "Set of geographic areas"),
    _definition(DataType.IOT_SENSOR, "IoT Sensor Data", "IoT sensor readings"),
    _definition(DataType.TAGS, "Tags (Array)", "Array of text tags"),
]

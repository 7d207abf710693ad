"""Custom table service - user-defined PostgreSQL tables with history tracking."""

from .errors import (
    CreationFailedError,
    CreationOutcome,
    CustomTableError,
    FieldAlreadyExistsError,
    InvalidDefinitionError,
    TableAlreadyExistsError,
    TableNotFoundError,
    UnsupportedKindError,
)
from .metadata_store import MetadataStore
from .service import CustomTableService
from .validators import ValidationResult, validate_field_definition, validate_table_definition

__all__ = [
    "CreationFailedError",
    "CreationOutcome",
    "CustomTableError",
    "CustomTableService",
    "FieldAlreadyExistsError",
    "InvalidDefinitionError",
    "MetadataStore",
    "TableAlreadyExistsError",
    "TableNotFoundError",
    "UnsupportedKindError",
    "ValidationResult",
    "validate_field_definition",
    "validate_table_definition",
]

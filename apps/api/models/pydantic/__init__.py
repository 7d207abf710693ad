"""
Pydantic 2 models for custom table definitions and metadata.

Request models accept the camelCase wire format and reject unknown keys;
DTOs are immutable and serialize back to camelCase.
"""

# flake8: noqa: E501


from .common import ImmutableModel, RequestModel, format_validation_errors
from .custom_table import (
    CreateCustomTableRequest,
    CustomFieldDTO,
    CustomFieldRequest,
    CustomTableDTO,
)

__all__ = [
    "ImmutableModel",
    "RequestModel",
    "format_validation_errors",
    "CreateCustomTableRequest",
    "CustomFieldRequest",
    "CustomFieldDTO",
    "CustomTableDTO",
]

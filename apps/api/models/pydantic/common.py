"""
Pydantic 2 base models shared by the custom table API.

Wire payloads use camelCase keys while Python code uses snake_case
attribute names; both spellings are accepted on input.
"""

# flake8: noqa: E501


from typing import List

from pydantic import BaseModel, ValidationError
from pydantic.alias_generators import to_camel


class ImmutableModel(BaseModel):
    """Base immutable model with frozen configuration."""

    model_config = {
        "frozen": True,
        "from_attributes": True,
        "alias_generator": to_camel,
        "populate_by_name": True,
    }


class RequestModel(BaseModel):
    """Base request model; rejects unknown fields."""

    model_config = {
        "extra": "forbid",
        "from_attributes": True,
        "alias_generator": to_camel,
        "populate_by_name": True,
    }


def format_validation_errors(exc: ValidationError) -> List[str]:
    """
    Flatten a pydantic ValidationError into readable messages.

    Example:
        "fields.0.maxLength: Input should be a valid integer"
    """
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()))
        messages.append(f"{location}: {error.get('msg')}" if location else error.get("msg"))
    return messages

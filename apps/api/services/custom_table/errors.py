"""Exceptions raised by the custom table service."""

from enum import Enum
from typing import List, Optional, Sequence


class CreationOutcome(str, Enum):
    """What a table creation attempt left behind."""

    CREATED_CLEAN = "created_clean"
    # Physical objects exist without a matching metadata record
    CREATED_WITH_ORPHAN = "created_with_orphan"
    ROLLED_BACK_CLEAN = "rolled_back_clean"
    # Compensating drops failed; physical tables may be orphaned
    ROLLED_BACK_PARTIAL = "rolled_back_partial"


class CustomTableError(Exception):
    """Base class for custom table errors."""

    status_code = 500

    def to_dict(self) -> dict:
        return {"error": type(self).__name__, "message": str(self)}


class InvalidDefinitionError(CustomTableError):
    """Table or field definition failed validation."""

    status_code = 400

    def __init__(self, errors: Sequence[str]):
        self.errors: List[str] = list(errors)
        super().__init__(f"Invalid table definition: {', '.join(self.errors)}")

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["errors"] = self.errors
        return data


class TableAlreadyExistsError(CustomTableError):
    status_code = 409

    def __init__(self, name: str):
        self.name = name
        super().__init__(f'Table with name "{name}" already exists')


class TableNotFoundError(CustomTableError):
    status_code = 404

    def __init__(self, table_id):
        self.table_id = table_id
        super().__init__(f"Table {table_id} not found")


class FieldAlreadyExistsError(CustomTableError):
    status_code = 409

    def __init__(self, table_name: str, field_name: str):
        self.table_name = table_name
        self.field_name = field_name
        super().__init__(f'Field "{field_name}" already exists in table "{table_name}"')


class UnsupportedKindError(CustomTableError):
    """A data type outside the catalog reached DDL generation."""

    def __init__(self, data_type):
        self.data_type = data_type
        super().__init__(f"Unsupported data type: {data_type!r}")


class CreationFailedError(CustomTableError):
    """Creating the physical objects or metadata failed.

    Attributes:
        original: The underlying database exception
        outcome: CreationOutcome describing what was left behind
        rollback_errors: Errors raised by the compensating drops, if any
    """

    def __init__(
        self,
        name: str,
        original: BaseException,
        outcome: CreationOutcome,
        rollback_errors: Optional[Sequence[BaseException]] = None,
    ):
        self.name = name
        self.original = original
        self.outcome = outcome
        self.rollback_errors = list(rollback_errors or [])
        message = f'Failed to create table "{name}": {original}'
        if self.rollback_errors:
            message += (
                f" (rollback incomplete, physical objects may remain: "
                f"{'; '.join(str(e) for e in self.rollback_errors)})"
            )
        super().__init__(message)

    @property
    def may_have_orphans(self) -> bool:
        return self.outcome in (
            CreationOutcome.ROLLED_BACK_PARTIAL,
            CreationOutcome.CREATED_WITH_ORPHAN,
        )

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["outcome"] = self.outcome.value
        return data

"""Custom Table Service - materializes table definitions as PostgreSQL tables.

For each definition the service creates:
- the main table custom_<name> with a UUID key and audit columns
- the append-only history table custom_<name>_history
- a trigger + function copying every INSERT/UPDATE/DELETE into history
- timeseries indexes, PostGIS geometry columns and spatial indexes
- the metadata rows (custom_tables / custom_fields) describing it

DDL and the metadata insert are not one transaction. Each DDL step is
committed as it completes, and a failure triggers compensating drops of
exactly the objects this call created, so a concurrent creator of the
same name never loses its tables to our rollback.
"""

# flake8: noqa: E501


import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Set, Tuple, Union

from prometheus_client import Counter

from apps.api.models.pydantic.custom_table import (
    CreateCustomTableRequest,
    CustomFieldRequest,
    CustomTableDTO,
)

from . import ddl, postgis
from .data_types import DEFAULT_SRID, is_geometry_type
from .errors import (
    CreationFailedError,
    CreationOutcome,
    FieldAlreadyExistsError,
    InvalidDefinitionError,
    TableAlreadyExistsError,
    TableNotFoundError,
)
from .metadata_store import MetadataStore
from .validators import (
    coerce_field_definition,
    coerce_table_definition,
    validate_field_definition,
    validate_table_definition,
)

logger = logging.getLogger(__name__)

TABLE_OPERATIONS = Counter(
    "custom_table_operations_total",
    "Custom table schema operations by outcome",
    ["operation", "outcome"],
)

PHYSICAL_TABLES_SQL = (
    "SELECT table_name FROM information_schema.tables "
    "WHERE table_schema = current_schema() AND table_name LIKE 'custom\\_%';"
)

CATALOG_TABLES = frozenset({"custom_tables", "custom_fields"})


@dataclass(slots=True, frozen=True)
class _Step:
    """One DDL statement of a creation plan."""

    description: str
    sql: str
    # ("table", physical_name) or ("function", logical_name) when the step creates it
    creates: Optional[Tuple[str, str]] = None


class CustomTableService:
    """Service for creating and managing custom tables."""

    SYSTEM_USER = "system"

    def __init__(
        self, db, store: Optional[MetadataStore] = None, default_srid: int = DEFAULT_SRID
    ):
        """Initialize service with database connection."""
        self.db = db
        self.store = store or MetadataStore(db)
        self.default_srid = default_srid

    # ==================== Plan building ====================

    def _creation_plan(
        self, definition: CreateCustomTableRequest, include_history: bool = True
    ) -> List[_Step]:
        """Ordered DDL steps materializing a definition."""
        name = definition.name
        fields = definition.fields
        main = ddl.physical_table_name(name)
        history = ddl.history_table_name(name)

        steps = [_Step("main table", ddl.main_table_ddl(definition), ("table", main))]
        steps.extend(
            _Step("main geometry column", sql)
            for sql in postgis.geometry_column_statements(main, fields, default_srid=self.default_srid)
        )

        if include_history:
            steps.append(
                _Step("history table", ddl.history_table_ddl(name, definition), ("table", history))
            )
            steps.extend(
                _Step("history geometry column", sql)
                for sql in postgis.geometry_column_statements(
                    history, fields, enforce_required=False, default_srid=self.default_srid
                )
            )

        function_sql, trigger_sql = ddl.history_trigger_ddl(name, fields)
        steps.append(_Step("history trigger function", function_sql, ("function", name)))
        steps.append(_Step("history trigger", trigger_sql))

        steps.extend(_Step("timeseries index", sql) for sql in ddl.timeseries_index_ddl(name, fields))
        steps.extend(
            _Step("spatial index", sql) for sql in postgis.spatial_index_statements(main, fields)
        )
        return steps

    @staticmethod
    def _as_applied(field_def: CustomFieldRequest) -> CustomFieldRequest:
        """Field definition as it can be added to a table that may hold rows.

        Existing rows have no value for the new column, so NOT NULL is only
        kept when a default fills them. Geometry columns are always nullable.
        """
        if not field_def.is_required:
            return field_def
        has_default = field_def.default_value not in (None, "")
        if has_default and not is_geometry_type(field_def.data_type):
            return field_def
        logger.info(f"Field {field_def.name} added as nullable: existing rows have no value for it")
        return field_def.model_copy(update={"is_required": False})

    # ==================== Execution helpers ====================

    def _safe_rollback(self) -> None:
        try:
            self.db.rollback()
        except Exception as e:
            logger.warning(f"Database rollback failed: {e}")

    def _run_steps(self, steps: Sequence[_Step], created: List[Tuple[str, str]]) -> None:
        """Execute and commit steps in order, recording what each created."""
        for step in steps:
            logger.debug(f"Executing {step.description}")
            self.db.executesql(step.sql)
            self.db.commit()
            if step.creates:
                created.append(step.creates)

    def _compensate(self, name: str, created: Sequence[Tuple[str, str]]) -> List[BaseException]:
        """
        Drop the objects this call created: history table, main table,
        then the trigger function. Errors are collected, never raised.
        """
        self._safe_rollback()

        drops = []
        history = ddl.history_table_name(name)
        main = ddl.physical_table_name(name)
        if ("table", history) in created:
            drops.append(ddl.drop_table_ddl(history, if_exists=False))
        if ("table", main) in created:
            drops.append(ddl.drop_table_ddl(main, if_exists=False))
        if ("function", name) in created:
            drops.append(ddl.drop_trigger_function_ddl(name))

        errors: List[BaseException] = []
        for sql in drops:
            try:
                self.db.executesql(sql)
                self.db.commit()
            except Exception as e:
                logger.error(f"Rollback statement failed for {name}: {e}")
                errors.append(e)
                self._safe_rollback()
        return errors

    # ==================== Table Management ====================

    def create_table(
        self,
        definition: Union[CreateCustomTableRequest, Mapping[str, Any]],
        created_by: Optional[str] = None,
    ) -> CustomTableDTO:
        """Create a custom table with history tracking.

        Args:
            definition: Table definition (request model or wire-shaped dict)
            created_by: ID of the creating user

        Returns:
            Metadata record with fields in display order

        Raises:
            InvalidDefinitionError: Definition failed validation (no side effects)
            TableAlreadyExistsError: Name already in the metadata store (no side effects)
            CreationFailedError: A DDL step or the metadata insert failed;
                compensating drops were attempted, see .outcome
        """
        definition = coerce_table_definition(definition)

        result = validate_table_definition(definition)
        if not result.valid:
            TABLE_OPERATIONS.labels(operation="create", outcome="invalid").inc()
            logger.info(
                f"Rejected definition for table {definition.name!r}: {len(result.errors)} errors"
            )
            raise InvalidDefinitionError(result.errors)

        if self.store.exists(definition.name):
            TABLE_OPERATIONS.labels(operation="create", outcome="exists").inc()
            raise TableAlreadyExistsError(definition.name)

        steps = self._creation_plan(definition)
        created: List[Tuple[str, str]] = []

        try:
            self._run_steps(steps, created)

            table_id = self.store.insert_table(definition, created_by or self.SYSTEM_USER)
            self.db.commit()
        except Exception as e:
            rollback_errors = self._compensate(definition.name, created)
            outcome = (
                CreationOutcome.ROLLED_BACK_PARTIAL
                if rollback_errors
                else CreationOutcome.ROLLED_BACK_CLEAN
            )
            TABLE_OPERATIONS.labels(operation="create", outcome=outcome.value).inc()
            logger.error(
                f"Failed to create custom table {definition.name}: {e} "
                f"(outcome={outcome.value}, objects_created={len(created)})"
            )
            raise CreationFailedError(definition.name, e, outcome, rollback_errors) from e

        TABLE_OPERATIONS.labels(operation="create", outcome=CreationOutcome.CREATED_CLEAN.value).inc()
        logger.info(
            f"Created custom table {definition.name} with {len(definition.fields)} fields "
            f"({len(steps)} DDL statements)"
        )
        return self.store.get_by_id(table_id)

    def add_field_to_table(
        self, table_id: int, field_def: Union[CustomFieldRequest, Mapping[str, Any]]
    ) -> None:
        """Add a column to an existing table and its history table.

        The history trigger function is regenerated so new rows snapshot
        the column too. If the metadata insert fails after the ALTERs
        succeeded, the columns are left in place and the error propagates.
        A required field without a default is added nullable, and the
        metadata records it that way.

        Raises:
            TableNotFoundError: No metadata row for table_id
            InvalidDefinitionError: Field failed validation
            FieldAlreadyExistsError: A field with this name exists
        """
        field_def = coerce_field_definition(field_def)

        table = self.store.get_by_id(table_id)
        if not table:
            raise TableNotFoundError(table_id)

        errors = validate_field_definition(field_def, len(table.fields) + 1)
        if errors:
            raise InvalidDefinitionError(errors)

        if any(f.name == field_def.name for f in table.fields):
            raise FieldAlreadyExistsError(table.name, field_def.name)

        field_def = self._as_applied(field_def)
        main = ddl.physical_table_name(table.name)
        history = ddl.history_table_name(table.name)

        if is_geometry_type(field_def.data_type):
            statements = [
                *postgis.geometry_column_statements(
                    main, [field_def], enforce_required=False, default_srid=self.default_srid
                ),
                *postgis.geometry_column_statements(
                    history, [field_def], enforce_required=False, default_srid=self.default_srid
                ),
                *postgis.spatial_index_statements(main, [field_def]),
            ]
        else:
            statements = [
                ddl.add_column_ddl(main, field_def, with_constraints=True),
                ddl.add_column_ddl(history, field_def),
            ]
            statements.extend(ddl.timeseries_index_ddl(table.name, [field_def]))

        statements.append(
            ddl.history_trigger_function_ddl(table.name, [*table.fields, field_def])
        )

        try:
            for sql in statements:
                self.db.executesql(sql)
            self.db.commit()
        except Exception:
            self._safe_rollback()
            TABLE_OPERATIONS.labels(operation="add_field", outcome="failed").inc()
            raise

        try:
            self.store.insert_field(table_id, field_def, self.store.max_order(table_id) + 1)
            self.db.commit()
        except Exception as e:
            self._safe_rollback()
            TABLE_OPERATIONS.labels(
                operation="add_field", outcome=CreationOutcome.CREATED_WITH_ORPHAN.value
            ).inc()
            logger.error(
                f"Column {field_def.name} added to {main} but metadata insert failed: {e}"
            )
            raise

        TABLE_OPERATIONS.labels(operation="add_field", outcome="created_clean").inc()
        logger.info(f"Added field {field_def.name} to custom table {table.name}")

    def delete_table(self, table_id: int) -> None:
        """Drop both physical tables and the trigger function, then the metadata.

        Raises:
            TableNotFoundError: No metadata row for table_id
        """
        table = self.store.get_by_id(table_id)
        if not table:
            raise TableNotFoundError(table_id)

        try:
            self.db.executesql(ddl.drop_table_ddl(ddl.history_table_name(table.name)))
            self.db.executesql(ddl.drop_table_ddl(ddl.physical_table_name(table.name)))
            self.db.executesql(ddl.drop_trigger_function_ddl(table.name))
            self.store.delete(table_id)
            self.db.commit()
        except Exception:
            self._safe_rollback()
            TABLE_OPERATIONS.labels(operation="delete", outcome="failed").inc()
            raise

        TABLE_OPERATIONS.labels(operation="delete", outcome="deleted").inc()
        logger.info(f"Deleted custom table {table.name} (id={table_id})")

    # ==================== Queries ====================

    def get_tables(self) -> List[CustomTableDTO]:
        """All active tables, newest first, fields in display order."""
        return self.store.list_active()

    def get_table_by_id(self, table_id: int) -> Optional[CustomTableDTO]:
        return self.store.get_by_id(table_id)

    def get_table_by_name(self, name: str) -> Optional[CustomTableDTO]:
        return self.store.get_by_name(name)

    def get_table(self, id_or_name: Union[int, str]) -> Optional[CustomTableDTO]:
        """Look a table up by numeric ID first, then by name."""
        if isinstance(id_or_name, int) or str(id_or_name).isdigit():
            table = self.store.get_by_id(int(id_or_name))
            if table:
                return table
        return self.store.get_by_name(str(id_or_name))

    # ==================== Consistency ====================

    def _physical_tables(self) -> Set[str]:
        rows = self.db.executesql(PHYSICAL_TABLES_SQL)
        return {row[0] for row in rows} - CATALOG_TABLES

    def find_orphaned_tables(self) -> List[str]:
        """Physical custom_* tables that no metadata row accounts for."""
        expected = set()
        for name in self.store.list_names():
            expected.add(ddl.physical_table_name(name))
            expected.add(ddl.history_table_name(name))
        return sorted(self._physical_tables() - expected)

    def find_missing_tables(self) -> List[str]:
        """Names of active tables whose main physical table is absent."""
        physical = self._physical_tables()
        return [
            table.name
            for table in self.store.list_active()
            if ddl.physical_table_name(table.name) not in physical
        ]

    def check_consistency(self) -> Dict[str, List[str]]:
        return {
            "orphaned_tables": self.find_orphaned_tables(),
            "missing_tables": self.find_missing_tables(),
        }

    def repair_missing_tables(self) -> Dict[str, Any]:
        """
        Recreate physical objects for tables that exist only as metadata.

        An existing history table is kept as is. Each table is repaired
        independently; a failure is rolled back and reported.

        Returns:
            {"repaired": [names], "failed": {name: error message}}
        """
        physical = self._physical_tables()
        repaired: List[str] = []
        failed: Dict[str, str] = {}

        for table in self.store.list_active():
            if ddl.physical_table_name(table.name) in physical:
                continue

            definition = table.to_definition()
            include_history = ddl.history_table_name(table.name) not in physical
            created: List[Tuple[str, str]] = []
            try:
                self._run_steps(self._creation_plan(definition, include_history), created)
            except Exception as e:
                self._compensate(table.name, created)
                failed[table.name] = str(e)
                logger.error(f"Failed to repair custom table {table.name}: {e}")
                continue

            repaired.append(table.name)
            logger.info(f"Repaired physical tables for custom table {table.name}")

        return {"repaired": repaired, "failed": failed}

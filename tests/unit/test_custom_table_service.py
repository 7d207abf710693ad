"""
Unit tests for CustomTableService.

The PyDAL handle is a MagicMock; every DDL statement the service issues
is recorded through db.executesql and checked for order and scope.
"""

import pytest
from unittest.mock import MagicMock, call

from apps.api.models.pydantic.custom_table import CustomFieldDTO, CustomTableDTO
from apps.api.services.custom_table.errors import (
    CreationFailedError,
    CreationOutcome,
    FieldAlreadyExistsError,
    InvalidDefinitionError,
    TableAlreadyExistsError,
    TableNotFoundError,
)
from apps.api.services.custom_table.metadata_store import MetadataStore
from apps.api.services.custom_table.service import PHYSICAL_TABLES_SQL, CustomTableService


def _executed(mock_db):
    return [c.args[0] for c in mock_db.executesql.call_args_list]


def _fail_on(fragment, physical_tables=()):
    """executesql side effect raising for the first statement containing fragment."""

    def side_effect(sql, *args, **kwargs):
        if sql == PHYSICAL_TABLES_SQL:
            return [(name,) for name in physical_tables]
        if fragment and fragment in sql:
            raise RuntimeError(f"statement failed: {fragment}")
        return []

    return side_effect


def _table_dto(table_id=7, name="widgets", fields=None):
    if fields is None:
        fields = [
            CustomFieldDTO(
                id=1, table_id=table_id, name="title", display_name="Title",
                data_type="VARCHAR", max_length=100, order=0,
            ),
        ]
    return CustomTableDTO(
        id=table_id, name=name, display_name=name.title(), created_by="alice", fields=fields
    )


class TestCreateTable:
    """Test the ordered create/rollback protocol."""

    @pytest.fixture
    def store(self):
        """Create mock metadata store."""
        store = MagicMock(spec=MetadataStore)
        store.exists.return_value = False
        store.insert_table.return_value = 7
        store.get_by_id.return_value = _table_dto()
        return store

    @pytest.fixture
    def service(self, mock_pydal_db, store):
        """Create CustomTableService instance."""
        return CustomTableService(mock_pydal_db, store=store)

    def test_creates_objects_in_order(self, service, mock_pydal_db, store, widgets_definition):
        """Main table, history table, trigger, indexes, then metadata."""
        result = service.create_table(widgets_definition, "alice")

        statements = _executed(mock_pydal_db)
        assert len(statements) == 5
        assert statements[0].startswith('CREATE TABLE "custom_widgets" (')
        assert statements[1].startswith('CREATE TABLE "custom_widgets_history" (')
        assert statements[2].startswith('CREATE OR REPLACE FUNCTION "custom_widgets_history_trigger"()')
        assert statements[3].startswith('CREATE TRIGGER "custom_widgets_history_trigger"')
        assert statements[4].startswith('CREATE INDEX IF NOT EXISTS "idx_custom_widgets_seen_at"')

        definition, created_by = store.insert_table.call_args.args
        assert definition.name == "widgets"
        assert created_by == "alice"
        # One commit per DDL step plus the metadata commit
        assert mock_pydal_db.commit.call_count == 6
        assert result == store.get_by_id.return_value
        store.get_by_id.assert_called_once_with(7)

    def test_geometry_columns_follow_their_tables(self, service, mock_pydal_db, sites_definition):
        service.create_table(sites_definition, "alice")

        statements = _executed(mock_pydal_db)
        assert statements == [
            statements[0],
            "SELECT AddGeometryColumn('custom_sites', 'location', 4326, 'POINT', 2);",
            'ALTER TABLE "custom_sites" ALTER COLUMN "location" SET NOT NULL;',
            "SELECT AddGeometryColumn('custom_sites', 'area', 3857, 'POLYGON', 2);",
            statements[4],
            "SELECT AddGeometryColumn('custom_sites_history', 'location', 4326, 'POINT', 2);",
            "SELECT AddGeometryColumn('custom_sites_history', 'area', 3857, 'POLYGON', 2);",
            statements[7],
            statements[8],
            'CREATE INDEX IF NOT EXISTS "idx_custom_sites_location_gist" ON "custom_sites" USING GIST ("location");',
            'CREATE INDEX IF NOT EXISTS "idx_custom_sites_area_gist" ON "custom_sites" USING GIST ("area");',
        ]
        assert statements[0].startswith('CREATE TABLE "custom_sites" (')
        assert statements[4].startswith('CREATE TABLE "custom_sites_history" (')
        assert '"location"' in statements[7]

    def test_creator_defaults_to_system(self, service, store, widgets_definition):
        service.create_table(widgets_definition)
        assert store.insert_table.call_args.args[1] == "system"

    def test_invalid_definition_has_no_side_effects(self, service, mock_pydal_db, store, widgets_definition):
        widgets_definition["name"] = "Widgets!"
        widgets_definition["fields"][0].pop("maxLength")

        with pytest.raises(InvalidDefinitionError) as exc_info:
            service.create_table(widgets_definition, "alice")

        assert len(exc_info.value.errors) == 2
        store.exists.assert_not_called()
        mock_pydal_db.executesql.assert_not_called()
        mock_pydal_db.commit.assert_not_called()

    def test_existing_name_has_no_side_effects(self, service, mock_pydal_db, store, widgets_definition):
        store.exists.return_value = True

        with pytest.raises(TableAlreadyExistsError, match='Table with name "widgets" already exists'):
            service.create_table(widgets_definition, "alice")

        mock_pydal_db.executesql.assert_not_called()
        store.insert_table.assert_not_called()

    def test_failure_drops_only_created_objects(self, service, mock_pydal_db, store, widgets_definition):
        """History table creation fails: only the main table is dropped."""
        mock_pydal_db.executesql.side_effect = _fail_on('CREATE TABLE "custom_widgets_history"')

        with pytest.raises(CreationFailedError) as exc_info:
            service.create_table(widgets_definition, "alice")

        error = exc_info.value
        assert error.outcome is CreationOutcome.ROLLED_BACK_CLEAN
        assert not error.may_have_orphans
        assert isinstance(error.original, RuntimeError)
        assert error.__cause__ is error.original

        statements = _executed(mock_pydal_db)
        assert statements[-1] == 'DROP TABLE "custom_widgets" CASCADE;'
        assert not any("DROP TABLE \"custom_widgets_history\"" in s for s in statements)
        assert not any(s.startswith("DROP FUNCTION") for s in statements)
        mock_pydal_db.rollback.assert_called()
        store.insert_table.assert_not_called()

    def test_losing_a_creation_race_drops_nothing(self, service, mock_pydal_db, widgets_definition):
        """Main CREATE TABLE fails because another caller created it first."""
        mock_pydal_db.executesql.side_effect = _fail_on('CREATE TABLE "custom_widgets" (')

        with pytest.raises(CreationFailedError) as exc_info:
            service.create_table(widgets_definition, "alice")

        assert exc_info.value.outcome is CreationOutcome.ROLLED_BACK_CLEAN
        assert not any(s.startswith("DROP") for s in _executed(mock_pydal_db))

    def test_metadata_failure_drops_everything(self, service, mock_pydal_db, store, widgets_definition):
        store.insert_table.side_effect = RuntimeError("duplicate key value violates unique constraint")

        with pytest.raises(CreationFailedError) as exc_info:
            service.create_table(widgets_definition, "alice")

        assert exc_info.value.outcome is CreationOutcome.ROLLED_BACK_CLEAN
        assert _executed(mock_pydal_db)[-3:] == [
            'DROP TABLE "custom_widgets_history" CASCADE;',
            'DROP TABLE "custom_widgets" CASCADE;',
            'DROP FUNCTION IF EXISTS "custom_widgets_history_trigger"() CASCADE;',
        ]

    def test_failed_drop_reports_partial_rollback(self, service, mock_pydal_db, store, widgets_definition):
        store.insert_table.side_effect = RuntimeError("insert failed")
        mock_pydal_db.executesql.side_effect = _fail_on('DROP TABLE "custom_widgets" CASCADE')

        with pytest.raises(CreationFailedError) as exc_info:
            service.create_table(widgets_definition, "alice")

        error = exc_info.value
        assert error.outcome is CreationOutcome.ROLLED_BACK_PARTIAL
        assert error.may_have_orphans
        assert len(error.rollback_errors) == 1
        assert "rollback incomplete" in str(error)
        # Remaining drops still ran
        assert _executed(mock_pydal_db)[-1].startswith("DROP FUNCTION")

    def test_configured_default_srid(self, mock_pydal_db, store, sites_definition):
        service = CustomTableService(mock_pydal_db, store=store, default_srid=3857)
        service.create_table(sites_definition, "alice")
        assert "SELECT AddGeometryColumn('custom_sites', 'location', 3857, 'POINT', 2);" in _executed(
            mock_pydal_db
        )


class TestAddField:
    """Test adding a field to an existing table."""

    @pytest.fixture
    def store(self):
        store = MagicMock(spec=MetadataStore)
        store.get_by_id.return_value = _table_dto()
        store.max_order.return_value = 0
        return store

    @pytest.fixture
    def service(self, mock_pydal_db, store):
        return CustomTableService(mock_pydal_db, store=store)

    def test_alters_both_tables_and_refreshes_trigger(self, service, mock_pydal_db, store):
        field = {"name": "colour", "displayName": "Colour", "dataType": "VARCHAR", "maxLength": 30}

        assert service.add_field_to_table(7, field) is None

        statements = _executed(mock_pydal_db)
        assert statements[0] == 'ALTER TABLE "custom_widgets" ADD COLUMN "colour" VARCHAR(30);'
        assert statements[1] == 'ALTER TABLE "custom_widgets_history" ADD COLUMN "colour" VARCHAR(30);'
        assert statements[2].startswith('CREATE OR REPLACE FUNCTION "custom_widgets_history_trigger"()')
        assert 'NEW."title"' in statements[2]
        assert 'NEW."colour"' in statements[2]

        table_id, field_def, order = store.insert_field.call_args.args
        assert (table_id, field_def.name, order) == (7, "colour", 1)
        assert mock_pydal_db.commit.call_count == 2

    def test_geometry_field_uses_add_geometry_column(self, service, mock_pydal_db, store):
        field = {"name": "location", "displayName": "Location", "dataType": "GEOMETRY_POINT", "isRequired": True}

        service.add_field_to_table(7, field)

        statements = _executed(mock_pydal_db)
        assert statements[:3] == [
            "SELECT AddGeometryColumn('custom_widgets', 'location', 4326, 'POINT', 2);",
            "SELECT AddGeometryColumn('custom_widgets_history', 'location', 4326, 'POINT', 2);",
            'CREATE INDEX IF NOT EXISTS "idx_custom_widgets_location_gist" ON "custom_widgets" USING GIST ("location");',
        ]
        assert not any("SET NOT NULL" in s for s in statements)
        assert store.insert_field.call_args.args[1].is_required is False

    def test_main_table_column_keeps_constraints(self, service, mock_pydal_db, store):
        field = {
            "name": "code",
            "displayName": "Code",
            "dataType": "TEXT",
            "isUnique": True,
            "isRequired": True,
            "defaultValue": "x",
        }

        service.add_field_to_table(7, field)

        statements = _executed(mock_pydal_db)
        assert statements[0] == (
            'ALTER TABLE "custom_widgets" ADD COLUMN "code" TEXT NOT NULL UNIQUE DEFAULT \'x\';'
        )
        assert statements[1] == 'ALTER TABLE "custom_widgets_history" ADD COLUMN "code" TEXT;'
        field_def = store.insert_field.call_args.args[1]
        assert (field_def.is_required, field_def.is_unique, field_def.default_value) == (True, True, "x")

    def test_required_without_default_is_added_nullable(self, service, mock_pydal_db, store):
        field = {"name": "code", "displayName": "Code", "dataType": "TEXT", "isRequired": True}

        service.add_field_to_table(7, field)

        assert _executed(mock_pydal_db)[0] == 'ALTER TABLE "custom_widgets" ADD COLUMN "code" TEXT;'
        assert store.insert_field.call_args.args[1].is_required is False

    def test_relation_field_references_target(self, service, mock_pydal_db):
        field = {
            "name": "owner_id",
            "displayName": "Owner",
            "dataType": "RELATION",
            "relationTable": "custom_owners",
            "relationField": "id",
            "onDelete": "CASCADE",
        }

        service.add_field_to_table(7, field)

        main, history = _executed(mock_pydal_db)[:2]
        assert main.endswith('REFERENCES "custom_owners"("id") ON DELETE CASCADE;')
        assert "REFERENCES" not in history

    def test_duplicate_field(self, service, mock_pydal_db):
        field = {"name": "title", "displayName": "Title", "dataType": "TEXT"}

        with pytest.raises(FieldAlreadyExistsError, match='Field "title" already exists'):
            service.add_field_to_table(7, field)

        mock_pydal_db.executesql.assert_not_called()

    def test_invalid_field(self, service, mock_pydal_db):
        with pytest.raises(InvalidDefinitionError) as exc_info:
            service.add_field_to_table(7, {"name": "notes", "displayName": "Notes", "dataType": "CHAR"})

        assert exc_info.value.errors == ["Field notes: CHAR requires maxLength"]
        mock_pydal_db.executesql.assert_not_called()

    def test_missing_table(self, service, store):
        store.get_by_id.return_value = None

        with pytest.raises(TableNotFoundError):
            service.add_field_to_table(99, {"name": "notes", "displayName": "Notes", "dataType": "TEXT"})

    def test_metadata_failure_leaves_columns(self, service, mock_pydal_db, store):
        store.insert_field.side_effect = RuntimeError("insert failed")

        with pytest.raises(RuntimeError, match="insert failed"):
            service.add_field_to_table(7, {"name": "notes", "displayName": "Notes", "dataType": "TEXT"})

        mock_pydal_db.rollback.assert_called_once()
        assert not any(s.startswith("DROP") for s in _executed(mock_pydal_db))

    def test_ddl_failure_skips_metadata(self, service, mock_pydal_db, store):
        mock_pydal_db.executesql.side_effect = _fail_on("custom_widgets_history")

        with pytest.raises(RuntimeError):
            service.add_field_to_table(7, {"name": "notes", "displayName": "Notes", "dataType": "TEXT"})

        store.insert_field.assert_not_called()
        mock_pydal_db.rollback.assert_called_once()


class TestDeleteTable:
    """Test table deletion."""

    def test_drops_prefixed_tables_and_function(self, mock_pydal_db):
        store = MagicMock(spec=MetadataStore)
        store.get_by_id.return_value = _table_dto()
        service = CustomTableService(mock_pydal_db, store=store)

        service.delete_table(7)

        assert _executed(mock_pydal_db) == [
            'DROP TABLE IF EXISTS "custom_widgets_history" CASCADE;',
            'DROP TABLE IF EXISTS "custom_widgets" CASCADE;',
            'DROP FUNCTION IF EXISTS "custom_widgets_history_trigger"() CASCADE;',
        ]
        store.delete.assert_called_once_with(7)
        mock_pydal_db.commit.assert_called_once()

    def test_missing_table(self, mock_pydal_db):
        store = MagicMock(spec=MetadataStore)
        store.get_by_id.return_value = None
        service = CustomTableService(mock_pydal_db, store=store)

        with pytest.raises(TableNotFoundError, match="Table 99 not found"):
            service.delete_table(99)

        mock_pydal_db.executesql.assert_not_called()


class TestQueries:
    """Test lookups delegated to the metadata store."""

    def test_get_table_by_numeric_id_then_name(self, mock_pydal_db):
        store = MagicMock(spec=MetadataStore)
        store.get_by_id.return_value = None
        store.get_by_name.return_value = _table_dto()
        service = CustomTableService(mock_pydal_db, store=store)

        assert service.get_table("7").name == "widgets"
        store.get_by_id.assert_called_once_with(7)
        store.get_by_name.assert_called_once_with("7")

    def test_get_table_by_name_skips_id_lookup(self, mock_pydal_db):
        store = MagicMock(spec=MetadataStore)
        store.get_by_name.return_value = None
        service = CustomTableService(mock_pydal_db, store=store)

        assert service.get_table("widgets") is None
        store.get_by_id.assert_not_called()

    def test_get_tables(self, mock_pydal_db):
        store = MagicMock(spec=MetadataStore)
        store.list_active.return_value = [_table_dto(8, "sites"), _table_dto(7)]
        service = CustomTableService(mock_pydal_db, store=store)

        assert [t.name for t in service.get_tables()] == ["sites", "widgets"]


class TestConsistency:
    """Test orphan / missing table detection and repair."""

    @pytest.fixture
    def store(self):
        store = MagicMock(spec=MetadataStore)
        sites = _table_dto(
            8,
            "sites",
            fields=[
                CustomFieldDTO(
                    id=3, table_id=8, name="location", display_name="Location",
                    data_type="GEOMETRY_POINT", is_required=True, order=0,
                ),
            ],
        )
        store.list_names.return_value = ["widgets", "sites"]
        store.list_active.return_value = [_table_dto(), sites]
        return store

    def test_find_orphaned_tables(self, mock_pydal_db, store):
        mock_pydal_db.executesql.side_effect = _fail_on(
            None,
            ["custom_tables", "custom_fields", "custom_widgets", "custom_widgets_history", "custom_ghost", "custom_ghost_history"],
        )
        service = CustomTableService(mock_pydal_db, store=store)

        assert service.find_orphaned_tables() == ["custom_ghost", "custom_ghost_history"]

    def test_find_missing_tables(self, mock_pydal_db, store):
        mock_pydal_db.executesql.side_effect = _fail_on(None, ["custom_widgets", "custom_widgets_history"])
        service = CustomTableService(mock_pydal_db, store=store)

        assert service.find_missing_tables() == ["sites"]

    def test_check_consistency(self, mock_pydal_db, store):
        mock_pydal_db.executesql.side_effect = _fail_on(
            None, ["custom_widgets", "custom_widgets_history", "custom_sites", "custom_sites_history"]
        )
        service = CustomTableService(mock_pydal_db, store=store)

        assert service.check_consistency() == {"orphaned_tables": [], "missing_tables": []}

    def test_repair_keeps_existing_history(self, mock_pydal_db, store):
        mock_pydal_db.executesql.side_effect = _fail_on(
            None, ["custom_widgets", "custom_widgets_history", "custom_sites_history"]
        )
        service = CustomTableService(mock_pydal_db, store=store)

        result = service.repair_missing_tables()

        assert result == {"repaired": ["sites"], "failed": {}}
        statements = [s for s in _executed(mock_pydal_db) if s != PHYSICAL_TABLES_SQL]
        assert statements[0].startswith('CREATE TABLE "custom_sites" (')
        assert not any(s.startswith('CREATE TABLE "custom_sites_history"') for s in statements)
        assert "SELECT AddGeometryColumn('custom_sites', 'location', 4326, 'POINT', 2);" in statements
        store.insert_table.assert_not_called()

    def test_repair_failure_is_reported(self, mock_pydal_db, store):
        mock_pydal_db.executesql.side_effect = _fail_on(
            "CREATE TRIGGER", ["custom_widgets", "custom_widgets_history"]
        )
        service = CustomTableService(mock_pydal_db, store=store)

        result = service.repair_missing_tables()

        assert result["repaired"] == []
        assert "sites" in result["failed"]
        statements = _executed(mock_pydal_db)
        assert call('DROP TABLE "custom_sites_history" CASCADE;') in mock_pydal_db.executesql.call_args_list
        assert statements[-1] == 'DROP FUNCTION IF EXISTS "custom_sites_history_trigger"() CASCADE;'

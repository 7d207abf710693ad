"""
Unit tests for MetadataStore against an in-memory SQLite PyDAL database.
"""

import pytest

from apps.api.services.custom_table.metadata_store import MetadataStore
from apps.api.services.custom_table.validators import (
    coerce_field_definition,
    coerce_table_definition,
)


@pytest.fixture
def store(memory_db):
    return MetadataStore(memory_db)


@pytest.mark.unit
class TestMetadataStore:
    """Test catalog reads and writes."""

    def test_insert_and_read_back(self, store, memory_db, widgets_definition):
        table_id = store.insert_table(coerce_table_definition(widgets_definition), "alice")
        memory_db.commit()

        table = store.get_by_id(table_id)

        assert table.name == "widgets"
        assert table.display_name == "Widgets"
        assert table.description == "Things we track"
        assert table.created_by == "alice"
        assert table.is_active is True
        assert [f.name for f in table.fields] == ["title", "weight", "in_stock", "seen_at"]
        assert [f.order for f in table.fields] == [0, 1, 2, 3]

        title, weight, in_stock, seen_at = table.fields
        assert title.max_length == 100
        assert title.is_required is True
        assert (weight.precision, weight.scale) == (8, 3)
        assert in_stock.default_value == "true"
        assert seen_at.is_timeseries is True
        assert all(f.table_id == table_id for f in table.fields)

    def test_explicit_order_is_respected(self, store, widgets_definition):
        for field, order in zip(widgets_definition["fields"], [3, 1, 0, 2]):
            field["order"] = order

        table_id = store.insert_table(coerce_table_definition(widgets_definition), "alice")

        fields = store.get_fields(table_id)
        assert [f.name for f in fields] == ["in_stock", "weight", "seen_at", "title"]

    def test_json_columns_round_trip(self, store):
        definition = coerce_table_definition(
            {
                "name": "readings",
                "displayName": "Readings",
                "fields": [
                    {
                        "name": "sensor",
                        "displayName": "Sensor",
                        "dataType": "IOT_SENSOR",
                        "iotConfig": {"sensorType": "temperature", "minValue": -40},
                    },
                    {
                        "name": "status",
                        "displayName": "Status",
                        "dataType": "SELECT",
                        "validation": {"options": ["ok", "fault"]},
                    },
                ],
            }
        )
        table = store.get_by_id(store.insert_table(definition, "alice"))

        sensor, status = table.fields
        assert sensor.iot_config == {"sensorType": "temperature", "minValue": -40}
        assert status.validation == {"options": ["ok", "fault"]}

    def test_lookup_by_name_and_exists(self, store, widgets_definition):
        store.insert_table(coerce_table_definition(widgets_definition), "alice")

        assert store.exists("widgets")
        assert not store.exists("gadgets")
        assert store.get_by_name("widgets").name == "widgets"
        assert store.get_by_name("gadgets") is None
        assert store.get_by_id(999) is None

    def test_list_active_newest_first(self, store, widgets_definition, sites_definition):
        store.insert_table(coerce_table_definition(widgets_definition), "alice")
        store.insert_table(coerce_table_definition(sites_definition), "bob")

        assert [t.name for t in store.list_active()] == ["sites", "widgets"]
        assert sorted(store.list_names()) == ["sites", "widgets"]

    def test_max_order_and_insert_field(self, store, widgets_definition):
        table_id = store.insert_table(coerce_table_definition(widgets_definition), "alice")
        assert store.max_order(table_id) == 3
        assert store.max_order(999) == -1

        field = coerce_field_definition({"name": "colour", "displayName": "Colour", "dataType": "text"})
        store.insert_field(table_id, field, store.max_order(table_id) + 1)

        fields = store.get_fields(table_id)
        assert fields[-1].name == "colour"
        assert fields[-1].order == 4
        assert fields[-1].data_type == "TEXT"

    def test_delete_removes_table_and_fields(self, store, memory_db, widgets_definition):
        table_id = store.insert_table(coerce_table_definition(widgets_definition), "alice")

        store.delete(table_id)

        assert store.get_by_id(table_id) is None
        assert memory_db(memory_db.custom_fields.table_id == table_id).count() == 0

"""Pytest configuration and fixtures for custom tables tests.

Unit tests use a MagicMock PyDAL handle (orchestrator, blueprint) or an
in-memory SQLite PyDAL database (metadata store). Integration tests run
against a real PostGIS database only when TEST_POSTGIS_URL is set.
"""

import os
from unittest.mock import MagicMock

import pytest

# Set testing environment before any app imports
os.environ.setdefault("FLASK_ENV", "testing")
os.environ.setdefault("DATABASE_URL", "sqlite://test.db")


@pytest.fixture
def mock_pydal_db():
    """
    Create a mock PyDAL database for unit tests.

    executesql calls are recorded on the mock; inspect
    mock_pydal_db.executesql.call_args_list for the emitted SQL.
    """
    mock_db = MagicMock()
    mock_db.tables = []
    mock_db.commit = MagicMock()
    mock_db.rollback = MagicMock()
    mock_db.executesql = MagicMock(return_value=[])

    return mock_db


@pytest.fixture
def memory_db():
    """In-memory SQLite PyDAL database with the metadata tables created."""
    from pydal import DAL

    from shared.models.pydal_models import define_custom_table_models

    db = DAL("sqlite:memory")
    define_custom_table_models(db, migrate=True)
    yield db
    db.close()


@pytest.fixture
def app(mock_pydal_db):
    """
    Create Flask application for testing.

    The application gets a mock database; tests replace
    app.custom_tables with a mock service as needed.
    """
    from apps.api.main import create_app

    app = create_app("testing", db=mock_pydal_db)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    """Create Flask test client."""
    return app.test_client()


@pytest.fixture
def widgets_definition():
    """Definition with one field of each common shape."""
    return {
        "name": "widgets",
        "displayName": "Widgets",
        "description": "Things we track",
        "fields": [
            {"name": "title", "displayName": "Title", "dataType": "VARCHAR", "maxLength": 100, "isRequired": True},
            {"name": "weight", "displayName": "Weight", "dataType": "DECIMAL", "precision": 8, "scale": 3},
            {"name": "in_stock", "displayName": "In stock", "dataType": "BOOLEAN", "defaultValue": "true"},
            {"name": "seen_at", "displayName": "Seen at", "dataType": "TIMESTAMPTZ", "isTimeseries": True},
        ],
    }


@pytest.fixture
def sites_definition():
    """Definition with a required point and an optional polygon."""
    return {
        "name": "sites",
        "displayName": "Sites",
        "fields": [
            {"name": "label", "displayName": "Label", "dataType": "TEXT"},
            {"name": "location", "displayName": "Location", "dataType": "GEOMETRY_POINT", "isRequired": True},
            {"name": "area", "displayName": "Area", "dataType": "GEOMETRY_POLYGON", "srid": 3857},
        ],
    }


# Markers for test categories
def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests (no external dependencies)"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests (requires PostGIS)"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take a long time to run"
    )

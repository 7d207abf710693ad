"""Database plumbing for the custom tables service.

Alembic (through SQLAlchemy) owns the metadata schema and the postgis /
uuid-ossp extensions. PyDAL serves metadata queries and issues the DDL for
user-defined tables.
"""

# flake8: noqa: E501

import logging
import os

from alembic import command
from alembic.config import Config as AlembicConfig
from pydal import DAL

from shared.models.pydal_models import define_custom_table_models

logger = logging.getLogger(__name__)

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))
ALEMBIC_INI = os.path.join(PROJECT_ROOT, "alembic.ini")

# URI scheme each consumer expects for PostgreSQL
_SCHEMES = {"sqlalchemy": "postgresql://", "pydal": "postgres://"}


def get_database_url(app, for_system: str = "pydal") -> str:
    """
    Return the configured database URL with the scheme for_system expects.

    SQLAlchemy/Alembic want postgresql://, PyDAL wants postgres://.
    "raw" returns the URL untouched.

    Raises:
        ValueError: DATABASE_URL is not configured or for_system is unknown
    """
    database_url = app.config.get("DATABASE_URL") or os.getenv("DATABASE_URL")
    if not database_url:
        raise ValueError("DATABASE_URL not configured")

    if for_system == "raw":
        return database_url
    if for_system not in _SCHEMES:
        raise ValueError(f"Unknown system: {for_system}. Use 'sqlalchemy', 'pydal', or 'raw'")

    for scheme in _SCHEMES.values():
        if database_url.startswith(scheme):
            return _SCHEMES[for_system] + database_url[len(scheme):]
    return database_url


def run_migrations(app) -> None:
    """
    Upgrade the metadata schema to head.

    Must run before init_db(): the PyDAL definitions use migrate=False and
    custom table DDL needs the postgis and uuid-ossp extensions.
    """
    alembic_cfg = AlembicConfig(ALEMBIC_INI)
    alembic_cfg.set_main_option("script_location", os.path.join(PROJECT_ROOT, "alembic"))
    alembic_cfg.attributes["database_url"] = get_database_url(app, for_system="sqlalchemy")
    # Keep the application's logging setup
    alembic_cfg.attributes["skip_logging_config"] = True

    logger.info("Running Alembic migrations...")
    try:
        command.upgrade(alembic_cfg, "head")
    except Exception as e:
        logger.error(f"Alembic migration failed: {e}")
        raise RuntimeError(f"Database migrations failed: {e}") from e
    logger.info("Alembic migrations completed successfully")


def init_db(app):
    """Create the PyDAL handle, define the metadata tables and attach it as app.db."""
    database_url = get_database_url(app, for_system="pydal")
    logger.info(f"Initializing PyDAL: {database_url.split('://')[0]}://***")

    db = DAL(
        database_url,
        folder=app.instance_path,
        migrate=False,
        pool_size=app.config.get("DB_POOL_SIZE", 10),
    )
    define_custom_table_models(db)

    app.db = db
    return db


def ensure_database_ready(app) -> dict:
    """Probe the database; returns {"connected": bool, "version"|"error": ...}."""
    try:
        probe = DAL(get_database_url(app, for_system="pydal"), migrate=False, pool_size=1)
        try:
            (server_version,) = probe.executesql("SHOW server_version;")[0]
        finally:
            probe.close()
    except Exception as e:
        logger.error(f"Database connection check failed: {e}")
        return {"connected": False, "error": str(e)}

    return {"connected": True, "version": server_version}


def log_startup_status(status: dict) -> None:
    if status.get("connected"):
        logger.info(f"Database ready - PostgreSQL {status.get('version')}")
    else:
        logger.error(f"Database not ready: {status.get('error')}")


__all__ = [
    "get_database_url",
    "run_migrations",
    "init_db",
    "ensure_database_ready",
    "log_startup_status",
]

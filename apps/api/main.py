"""Main Flask application for the custom tables service."""

# flake8: noqa: E501


import atexit
import os

import structlog
from asgiref.wsgi import WsgiToAsgi
from flask import Flask, jsonify
from flask_cors import CORS
from prometheus_flask_exporter import PrometheusMetrics
from werkzeug.exceptions import HTTPException

from apps.api.config import get_config
from apps.api.logging_config import setup_logging
from apps.api.services.custom_table import CustomTableService
from apps.api.utils.async_utils import shutdown_thread_pool
from shared.database import ensure_database_ready, init_db, log_startup_status, run_migrations

logger = structlog.get_logger()


def create_app(config_name: str = None, db=None) -> Flask:
    """
    Build the custom tables application.

    Args:
        config_name: development, production or testing (default: FLASK_ENV)
        db: Existing PyDAL handle; when given, database start-up checks
            and migrations are skipped

    Returns:
        Configured Flask application
    """
    app = Flask(__name__)

    if config_name is None:
        config_name = os.getenv("FLASK_ENV", "development")

    config = get_config(config_name)
    app.config.from_object(config)
    config.init_app(app)

    # Logging reads LOG_LEVEL, so it follows config
    setup_logging(app)

    _init_extensions(app)

    if db is None:
        db_status = ensure_database_ready(app)
        log_startup_status(db_status)

        if not db_status["connected"]:
            raise RuntimeError("Cannot start application - database not available")

        # Alembic owns the metadata schema; PyDAL serves runtime queries
        if app.config["RUN_MIGRATIONS"]:
            run_migrations(app)
        db = init_db(app)
    else:
        app.db = db

    app.custom_tables = CustomTableService(db, default_srid=app.config["DEFAULT_SRID"])

    _register_blueprints(app)
    _register_error_handlers(app)

    @app.route("/healthz")
    def health_check():
        """Health check endpoint."""
        return jsonify({"status": "healthy", "service": "custom-tables"}), 200

    logger.info(
        "custom_tables_app_created",
        config=config_name,
        debug=app.config["DEBUG"],
        version=app.config["APP_VERSION"],
    )

    return app


def create_asgi_app(config_name: str = None):
    """Wrap the Flask WSGI app with an ASGI adapter for uvicorn."""
    atexit.register(shutdown_thread_pool)
    return WsgiToAsgi(create_app(config_name))


def _init_extensions(app: Flask) -> None:
    """CORS for the designer UI, request metrics when enabled."""
    CORS(
        app,
        origins=app.config["CORS_ORIGINS"],
        methods=app.config["CORS_METHODS"],
        allow_headers=app.config["CORS_ALLOW_HEADERS"],
    )

    if app.config.get("METRICS_ENABLED"):
        metrics = PrometheusMetrics(app)
        metrics.info(
            "custom_tables_app_info", "Custom Tables Service", version=app.config["APP_VERSION"]
        )

    logger.info("extensions_initialized", metrics=bool(app.config.get("METRICS_ENABLED")))


def _register_blueprints(app: Flask) -> None:
    """Mount the custom tables API under API_PREFIX."""
    from apps.api.api.v1 import custom_tables

    api_prefix = app.config["API_PREFIX"]
    app.register_blueprint(custom_tables.bp, url_prefix=f"{api_prefix}/custom-tables")

    logger.info("blueprints_registered", api_prefix=api_prefix, blueprints=["custom_tables"])


def _register_error_handlers(app: Flask) -> None:
    """JSON bodies for HTTP errors raised outside the blueprint handlers."""

    @app.errorhandler(HTTPException)
    def http_error(error: HTTPException):
        if error.code and error.code >= 500:
            logger.error("http_error", status=error.code, error=str(error))
        return jsonify({"error": error.name, "message": error.description}), error.code

    @app.errorhandler(Exception)
    def unhandled_error(error: Exception):
        logger.exception("unhandled_error", error=str(error))
        return jsonify({"error": "Internal Server Error", "message": "An error occurred"}), 500


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        create_asgi_app(),
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", 5000)),
    )

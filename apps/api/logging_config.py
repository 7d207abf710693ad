"""Structured logging setup for the custom tables API."""

# flake8: noqa: E501


import logging
import sys

import structlog


def setup_logging(app) -> None:
    """
    Configure stdlib logging and structlog from app config.

    Service modules log through logging.getLogger(__name__); the app and
    blueprints emit structured events through structlog. Both end up on
    stdout with the same level.
    """
    log_level = getattr(logging, app.config.get("LOG_LEVEL", "INFO"), logging.INFO)

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stdout,
        force=True,
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Quiet per-request access logs unless debugging
    if not app.config.get("DEBUG"):
        logging.getLogger("werkzeug").setLevel(logging.WARNING)

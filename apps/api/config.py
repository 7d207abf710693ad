"""Configuration for the custom tables API."""

# flake8: noqa: E501


from typing import Optional
from urllib.parse import quote_plus

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-driven settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="allow",
    )

    # Database Configuration
    database_url: Optional[str] = Field(
        default=None,
        description="Full database URL; takes precedence over DB_* components",
    )
    db_type: str = Field(default="postgresql", description="Database type")
    db_host: str = Field(default="localhost", description="Database host")
    db_port: int = Field(default=5432, description="Database port")
    db_name: str = Field(default="custom_tables", description="Database name")
    db_user: str = Field(default="postgres", description="Database user")
    db_password: str = Field(default="postgres", description="Database password")
    db_pool_size: int = Field(default=10, description="PyDAL connection pool size")

    # Application Configuration
    log_level: str = Field(default="INFO", description="Logging level")
    api_prefix: str = Field(default="/api/v1", description="URL prefix for API blueprints")
    cors_origins: str = Field(
        default="*",
        description="Comma-separated list of allowed CORS origins",
    )
    metrics_enabled: bool = Field(default=True, description="Expose Prometheus metrics")
    run_migrations: bool = Field(
        default=True,
        description="Run Alembic migrations at start-up",
    )
    default_srid: int = Field(
        default=4326,
        description="SRID used for geometry fields that do not specify one",
    )

    @field_validator("database_url", mode="before")
    @classmethod
    def validate_database_url(cls, v):
        """Convert empty string to None for database_url."""
        if v == "" or v is None:
            return None
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v_upper

    @property
    def resolved_database_url(self) -> str:
        """DATABASE_URL, or a postgresql:// URL built from the DB_* components."""
        if self.database_url:
            return self.database_url
        return (
            f"postgresql://{quote_plus(self.db_user)}:{quote_plus(self.db_password)}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )

    @property
    def cors_origins_list(self) -> list[str]:
        """Get CORS origins as a list."""
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


class Config:
    """Base Flask configuration."""

    APP_VERSION = "1.0.0"
    DEBUG = False
    TESTING = False

    CORS_METHODS = ["GET", "POST", "DELETE", "OPTIONS"]
    CORS_ALLOW_HEADERS = ["Content-Type", "Authorization", "X-User-Id"]

    def __init__(self, settings: Optional[Settings] = None):
        settings = settings or Settings()
        self.DATABASE_URL = settings.resolved_database_url
        self.DB_TYPE = settings.db_type
        self.DB_POOL_SIZE = settings.db_pool_size
        self.LOG_LEVEL = settings.log_level
        self.API_PREFIX = settings.api_prefix
        self.CORS_ORIGINS = settings.cors_origins_list
        self.METRICS_ENABLED = settings.metrics_enabled
        self.RUN_MIGRATIONS = settings.run_migrations
        self.DEFAULT_SRID = settings.default_srid

    def init_app(self, app) -> None:
        """Hook for environment-specific app setup."""


class DevelopmentConfig(Config):
    DEBUG = True


class TestingConfig(Config):
    TESTING = True

    def __init__(self, settings: Optional[Settings] = None):
        super().__init__(settings)
        self.METRICS_ENABLED = False
        self.RUN_MIGRATIONS = False


class ProductionConfig(Config):
    def init_app(self, app) -> None:
        if "*" in app.config["CORS_ORIGINS"]:
            app.logger.warning("CORS_ORIGINS allows any origin in production")


CONFIGS = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
}


def get_config(name: Optional[str] = None, settings: Optional[Settings] = None) -> Config:
    """
    Get configuration object by name.

    Unknown names fall back to development.
    """
    config_class = CONFIGS.get((name or "development").lower(), DevelopmentConfig)
    return config_class(settings)

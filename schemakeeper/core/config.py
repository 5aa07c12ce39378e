"""Settings management with validation and per-environment env files."""
import re
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Union

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from schemakeeper.core.environment import Environment, env_files, parse_environment
from schemakeeper.exceptions import ConfigError
from schemakeeper.models.database import DEFAULT_ADMIN_DATABASE, DEFAULT_LEDGER_TABLE, DatabaseDescriptor

IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class Settings(BaseSettings):
    """Settings read from environment variables and env files."""
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    environment: Environment = Environment.DEVELOPMENT
    log_level: str = "INFO"

    # Database
    database_url: str
    admin_database: str = DEFAULT_ADMIN_DATABASE
    database_echo: bool = False
    connect_retries: int = Field(default=3, ge=1, le=10)

    # Migrations and seeds
    migrations_dir: Path = Path("db/migrations")
    seed_file: Path = Path("db/seeds.sql")
    ledger_table: str = DEFAULT_LEDGER_TABLE

    # Allow drop/reset in production without an interactive prompt
    allow_destructive: bool = False

    @field_validator("environment", mode="before")
    @classmethod
    def validate_environment(cls, v: Union[str, Environment]) -> Environment:
        if isinstance(v, Environment):
            return v
        try:
            return parse_environment(v)
        except ConfigError as e:
            raise ValueError(str(e)) from e

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid_levels = ["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of: {', '.join(valid_levels)}")
        return v.upper()

    @field_validator("ledger_table")
    @classmethod
    def validate_ledger_table(cls, v: str) -> str:
        if not IDENTIFIER.match(v):
            raise ValueError("LEDGER_TABLE must be a plain SQL identifier")
        return v

    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == Environment.PRODUCTION


@lru_cache()
def get_settings(environment: str = Environment.DEVELOPMENT.value) -> Settings:
    """Get cached settings for ``environment``."""
    env = parse_environment(environment)
    try:
        return Settings(environment=env, _env_file=env_files(env))
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration for {env.value} environment: {e}") from e


def get_descriptor(settings: Settings) -> DatabaseDescriptor:
    """Database descriptor for the configured target database."""
    return DatabaseDescriptor.from_url(settings.database_url, admin_database=settings.admin_database)


def get_config_summary(settings: Settings) -> Dict[str, Any]:
    """Summary of the current configuration for debugging; secrets masked."""
    return {
        "environment": settings.environment.value,
        "database": {
            "url": get_descriptor(settings).masked_url,
            "admin_database": settings.admin_database,
            "connect_retries": settings.connect_retries,
        },
        "migrations": {
            "directory": str(settings.migrations_dir),
            "ledger_table": settings.ledger_table,
            "seed_file": str(settings.seed_file),
        },
    }

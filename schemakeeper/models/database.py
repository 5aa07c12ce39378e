"""Database descriptor and ledger table definition."""
from enum import Enum

from pydantic import BaseModel, ConfigDict, field_validator
from sqlalchemy import BigInteger, Column, DateTime, LargeBinary, MetaData, Table, Text
from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import ArgumentError

from schemakeeper.exceptions import ConfigError

DEFAULT_ADMIN_DATABASE = "postgres"
DEFAULT_LEDGER_TABLE = "_schema_migrations"

# Sync driver names mapped to the async driver used by the connection provider
ASYNC_DRIVERS = {
    "postgres": "postgresql+asyncpg",
    "postgresql": "postgresql+asyncpg",
    "postgresql+psycopg2": "postgresql+asyncpg",
    "sqlite": "sqlite+aiosqlite",
}


class DatabaseRole(str, Enum):
    """Which database on the server a connection is attached to."""
    TARGET = "target"
    ADMINISTRATIVE = "administrative"


def parse_url(url: str) -> URL:
    """Parse a database URL, switching sync drivers to their async counterpart."""
    try:
        parsed = make_url(url)
    except (ArgumentError, ValueError) as e:
        raise ConfigError(f"Invalid database URL: {e}") from e

    drivername = ASYNC_DRIVERS.get(parsed.drivername)
    if drivername:
        parsed = parsed.set(drivername=drivername)
    return parsed


class DatabaseDescriptor(BaseModel):
    """Connection URL plus the resolved target and administrative database names."""
    model_config = ConfigDict(frozen=True)

    url: str
    database: str
    admin_database: str = DEFAULT_ADMIN_DATABASE

    @field_validator("database", "admin_database")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("database name must not be empty")
        return v

    @classmethod
    def from_url(cls, url: str, admin_database: str = DEFAULT_ADMIN_DATABASE) -> "DatabaseDescriptor":
        """Build a descriptor, resolving the target database name from the URL."""
        parsed = parse_url(url)
        if not parsed.database:
            raise ConfigError("Database URL does not name a database")
        return cls(url=url, database=parsed.database, admin_database=admin_database)

    def url_for(self, role: DatabaseRole) -> URL:
        """SQLAlchemy URL for the target or the administrative database."""
        parsed = parse_url(self.url)
        if role == DatabaseRole.ADMINISTRATIVE:
            return parsed.set(database=self.admin_database)
        return parsed.set(database=self.database)

    @property
    def masked_url(self) -> str:
        """URL safe for logging."""
        return parse_url(self.url).render_as_string(hide_password=True)

    def __repr__(self) -> str:
        return f"<DatabaseDescriptor(database='{self.database}', url='{self.masked_url}')>"


def build_ledger_table(name: str = DEFAULT_LEDGER_TABLE, metadata: MetaData = None) -> Table:
    """Table recording which migration versions have been applied."""
    return Table(
        name,
        metadata if metadata is not None else MetaData(),
        Column("version", BigInteger, primary_key=True, autoincrement=False),
        Column("description", Text, nullable=False),
        Column("applied_at", DateTime(timezone=True), nullable=False),
        Column("checksum", LargeBinary, nullable=True),
        Column("execution_time", BigInteger, nullable=True),  # milliseconds
    )

"""Scoped connections to the target or the administrative database."""
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy import event
from sqlalchemy.exc import ArgumentError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool

from schemakeeper.exceptions import ConfigError, PreflightError
from schemakeeper.exceptions import ConnectionError as DBConnectionError
from schemakeeper.models.database import DatabaseDescriptor, DatabaseRole
from schemakeeper.utils.logging import get_logger
from schemakeeper.utils.retry import call_with_retry

logger = get_logger(__name__)


def _enable_sqlite_transactions(engine: AsyncEngine) -> None:
    """Let SQLite run DDL inside transactions instead of autocommitting it."""

    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        # Disable the driver's own BEGIN handling
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")


class ConnectionProvider:
    """
    Opens one connection per lifecycle operation.

    Every acquisition gets its own engine without pooling; the connection is
    closed and the engine disposed on every exit path. Connections are never
    shared between operations.
    """

    def __init__(self, descriptor: DatabaseDescriptor, connect_retries: int = 3, echo: bool = False):
        self.descriptor = descriptor
        self.connect_retries = connect_retries
        self.echo = echo

    def create_engine(self, role: DatabaseRole) -> AsyncEngine:
        url = self.descriptor.url_for(role)
        options = {
            "poolclass": NullPool,
            "echo": self.echo,
        }
        if role == DatabaseRole.ADMINISTRATIVE:
            # CREATE/DROP DATABASE cannot run inside a transaction block
            options["isolation_level"] = "AUTOCOMMIT"

        try:
            engine = create_async_engine(url, **options)
        except ArgumentError as e:
            raise ConfigError(f"Invalid database URL {self.descriptor.masked_url}: {e}") from e
        except ImportError as e:
            raise PreflightError(f"Database driver for {url.drivername} is not installed: {e}") from e

        if url.get_backend_name() == "sqlite":
            _enable_sqlite_transactions(engine)
        return engine

    @asynccontextmanager
    async def connect(self, role: DatabaseRole = DatabaseRole.TARGET) -> AsyncIterator[AsyncConnection]:
        """
        Connect to the target or the administrative database.

        Only failures while connecting are translated into ``ConnectionError``;
        exceptions raised inside the ``async with`` block propagate unchanged.
        """
        database = self.descriptor.admin_database if role == DatabaseRole.ADMINISTRATIVE else self.descriptor.database
        engine = self.create_engine(role)
        try:
            try:
                connection = await call_with_retry(engine.connect, max_attempts=self.connect_retries)
            except (SQLAlchemyError, OSError) as e:
                logger.error(f"Failed to connect to database {database}: {e}", role=role.value)
                raise DBConnectionError(f"Failed to connect to database {database}: {e}") from e

            logger.debug(f"Connected to {role.value} database {database}")
            try:
                yield connection
            finally:
                await connection.close()
        finally:
            await engine.dispose()


def check_driver(descriptor: DatabaseDescriptor) -> None:
    """
    Pre-flight check: the DBAPI driver named by the URL can be imported.

    Raises:
        ConfigError: If the URL names an unknown dialect or driver
        PreflightError: If the driver package is not installed
    """
    url = descriptor.url_for(DatabaseRole.TARGET)
    try:
        dialect = url.get_dialect()
    except ArgumentError as e:
        raise ConfigError(f"Unsupported database URL {descriptor.masked_url}: {e}") from e

    try:
        dialect.import_dbapi()
    except ImportError as e:
        raise PreflightError(
            f"Database driver for {url.drivername} is not installed; install it and retry ({e})"
        ) from e

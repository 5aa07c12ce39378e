"""Persisted record of applied migration versions."""
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import insert, inspect, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection

from schemakeeper.exceptions import LedgerError
from schemakeeper.models.database import DEFAULT_LEDGER_TABLE, build_ledger_table
from schemakeeper.models.migration import AppliedMigration, Migration
from schemakeeper.utils.logging import get_logger

logger = get_logger(__name__)


class MigrationLedger:
    """
    Ledger table inside the target database.

    Bound to an already-open connection. The ledger never begins or commits
    transactions itself; callers decide the transaction scope so that a
    migration's statements and its ledger row commit together.
    """

    def __init__(self, connection: AsyncConnection, table_name: str = DEFAULT_LEDGER_TABLE):
        self.connection = connection
        self.table = build_ledger_table(table_name)

    async def ensure_storage(self) -> None:
        """Create the ledger table if it does not exist yet."""
        try:
            await self.connection.run_sync(self.table.metadata.create_all, tables=[self.table], checkfirst=True)
        except SQLAlchemyError as e:
            logger.error(f"Failed to ensure ledger table {self.table.name}: {e}")
            raise LedgerError(f"Failed to ensure ledger table {self.table.name}: {e}") from e

    async def exists(self) -> bool:
        """Whether the ledger table has been created; never creates it."""
        try:
            return await self.connection.run_sync(
                lambda sync_connection: inspect(sync_connection).has_table(self.table.name)
            )
        except SQLAlchemyError as e:
            logger.error(f"Failed to inspect ledger table {self.table.name}: {e}")
            raise LedgerError(f"Failed to inspect ledger table {self.table.name}: {e}") from e

    async def list_applied(self) -> List[AppliedMigration]:
        """Applied migrations, ascending by version."""
        query = select(
            self.table.c.version,
            self.table.c.applied_at,
            self.table.c.description,
            self.table.c.checksum,
            self.table.c.execution_time,
        ).order_by(self.table.c.version)

        try:
            result = await self.connection.execute(query)
            rows = result.all()
        except SQLAlchemyError as e:
            logger.error(f"Failed to list applied migrations: {e}")
            raise LedgerError(f"Failed to list applied migrations: {e}") from e

        return [
            AppliedMigration(
                version=row.version,
                applied_at=row.applied_at,
                description=row.description,
                checksum=row.checksum,
                execution_time=row.execution_time,
            )
            for row in rows
        ]

    async def record_applied(self, migration: Migration, execution_time: Optional[int] = None) -> None:
        """Insert the ledger row for ``migration`` in the caller's transaction."""
        statement = insert(self.table).values(
            version=migration.version,
            description=migration.description,
            applied_at=datetime.now(timezone.utc),
            checksum=migration.checksum,
            execution_time=execution_time,
        )

        try:
            await self.connection.execute(statement)
        except SQLAlchemyError as e:
            raise LedgerError(f"Failed to record migration {migration.version}: {e}") from e

"""Migration engine: applies pending migrations in order, one transaction each."""
import time
from typing import Callable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection

from schemakeeper.exceptions import ApplicationError, LedgerError
from schemakeeper.database.ledger import MigrationLedger
from schemakeeper.database.source import MigrationSource
from schemakeeper.models.migration import AppliedMigration, Migration, MigrationStatus
from schemakeeper.utils.logging import get_logger

logger = get_logger(__name__)

ProgressCallback = Callable[[Migration], None]


class MigrationEngine:
    """
    Computes pending migrations and applies them strictly in ascending order.

    Each migration's statements and its ledger row run in one transaction, so
    the ledger never claims a version whose statements were rolled back. The
    first failure stops the run; the committed prefix stays applied.
    """

    async def apply(
        self,
        source: MigrationSource,
        ledger: MigrationLedger,
        connection: AsyncConnection,
        progress: Optional[ProgressCallback] = None,
    ) -> int:
        """
        Apply every pending migration.

        Returns:
            Number of migrations newly applied in this run

        Raises:
            DiscoveryError: If the migration source is malformed
            LedgerError: If the ledger cannot be read or disagrees with the source
            ApplicationError: If a migration fails; carries the failing version
                and the count committed before it
        """
        migrations = source.discover()
        applied_records = await self._read_ledger(ledger, connection)
        self._check_consistency(migrations, applied_records)

        applied_versions = {record.version for record in applied_records}
        pending = [m for m in migrations if m.version not in applied_versions]

        if not pending:
            logger.info("Database is already up to date")
            return 0

        logger.info(f"{len(pending)} pending migrations")

        applied = 0
        for migration in pending:
            try:
                async with connection.begin():
                    execution_time = await self._execute(connection, migration)
                    await ledger.record_applied(migration, execution_time)
            except (SQLAlchemyError, LedgerError) as e:
                logger.error(
                    f"Migration {migration.version} failed, rolled back",
                    version=migration.version,
                    applied=applied,
                    error=str(e),
                )
                raise ApplicationError(migration.version, applied, str(e)) from e

            applied += 1
            logger.info(f"Applied migration {migration}", version=migration.version, execution_ms=execution_time)
            if progress is not None:
                progress(migration)

        return applied

    async def status(
        self,
        source: MigrationSource,
        ledger: MigrationLedger,
        connection: AsyncConnection,
    ) -> MigrationStatus:
        """Compare the source against the ledger without applying anything."""
        migrations = source.discover()
        applied_records = await self._peek_ledger(ledger, connection)

        known = {m.version: m for m in migrations}
        applied_versions = {record.version for record in applied_records}

        return MigrationStatus(
            applied=applied_records,
            pending=[m for m in migrations if m.version not in applied_versions],
            missing=[r.version for r in applied_records if r.version not in known],
            modified=[
                r.version
                for r in applied_records
                if r.version in known and r.checksum is not None and r.checksum != known[r.version].checksum
            ],
        )

    async def _read_ledger(self, ledger: MigrationLedger, connection: AsyncConnection) -> List[AppliedMigration]:
        async with connection.begin():
            await ledger.ensure_storage()
            return await ledger.list_applied()

    async def _peek_ledger(self, ledger: MigrationLedger, connection: AsyncConnection) -> List[AppliedMigration]:
        """Read the ledger without creating it; a missing table means nothing is applied."""
        async with connection.begin():
            if not await ledger.exists():
                return []
            return await ledger.list_applied()

    def _check_consistency(self, migrations: List[Migration], applied_records: List[AppliedMigration]) -> None:
        known = {m.version: m for m in migrations}

        missing = [r.version for r in applied_records if r.version not in known]
        if missing:
            raise LedgerError(
                f"Applied migration(s) {', '.join(map(str, missing))} not found in the migration source"
            )

        for record in applied_records:
            if record.checksum is not None and record.checksum != known[record.version].checksum:
                logger.warning(
                    f"Migration {record.version} was modified after it was applied",
                    version=record.version,
                )

    async def _execute(self, connection: AsyncConnection, migration: Migration) -> int:
        """Run the migration's statements; returns elapsed milliseconds."""
        started = time.perf_counter()
        for statement in migration.statements:
            await connection.exec_driver_sql(statement)
        return int((time.perf_counter() - started) * 1000)

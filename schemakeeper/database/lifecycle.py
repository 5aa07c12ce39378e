"""Lifecycle orchestration: drop, create, migrate, seed, reset and status."""
from enum import Enum
from functools import partial
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from opentelemetry import trace
from sqlalchemy.exc import SQLAlchemyError

from schemakeeper.exceptions import (
    DatabaseCommandError,
    OperationCancelled,
    ResetError,
    SchemaKeeperError,
    SeedError,
)
from schemakeeper.database.connection import ConnectionProvider, check_driver
from schemakeeper.database.ledger import MigrationLedger
from schemakeeper.database.migrations import MigrationEngine, ProgressCallback
from schemakeeper.database.source import MigrationSource, split_statements
from schemakeeper.models.database import DEFAULT_LEDGER_TABLE, DatabaseDescriptor, DatabaseRole
from schemakeeper.models.migration import MigrationStatus
from schemakeeper.utils.logging import get_logger, set_operation_context

logger = get_logger(__name__)
tracer = trace.get_tracer(__name__)

DEFAULT_SEED_FILE = Path("db/seeds.sql")

Confirmation = Callable[[str], bool]
Preflight = Callable[[DatabaseDescriptor], None]
ProviderFactory = Callable[[DatabaseDescriptor], ConnectionProvider]


class Command(str, Enum):
    """Lifecycle operations exposed to the command line."""
    DROP = "drop"
    CREATE = "create"
    MIGRATE = "migrate"
    SEED = "seed"
    RESET = "reset"
    STATUS = "status"

    @property
    def destructive(self) -> bool:
        return self in (Command.DROP, Command.RESET)


def always_confirm(prompt: str) -> bool:
    return True


class LifecycleOrchestrator:
    """
    Composes the connection provider, migration engine and the database
    CREATE/DROP primitives into the lifecycle operations.

    ``reset`` runs drop, create and migrate in sequence and stops at the first
    failure; it never tries to undo a completed step.
    """

    def __init__(
        self,
        source: MigrationSource,
        seed_file: Union[str, Path] = DEFAULT_SEED_FILE,
        ledger_table: str = DEFAULT_LEDGER_TABLE,
        provider_factory: ProviderFactory = ConnectionProvider,
        confirm: Confirmation = always_confirm,
        preflight: Optional[Preflight] = check_driver,
        engine: Optional[MigrationEngine] = None,
    ):
        self.source = source
        self.seed_file = Path(seed_file)
        self.ledger_table = ledger_table
        self.provider_factory = provider_factory
        self.confirm = confirm
        self.preflight = preflight
        self.engine = engine or MigrationEngine()
        self._preflight_passed = False
        self._handlers: Dict[Command, Callable[..., Awaitable[Any]]] = {
            Command.DROP: self.drop,
            Command.CREATE: self.create,
            Command.MIGRATE: self.migrate,
            Command.SEED: self.seed,
            Command.RESET: self.reset,
            Command.STATUS: self.status,
        }

    async def run(self, command: Union[Command, str], descriptor: DatabaseDescriptor, **options: Any) -> Any:
        """
        Dispatch a lifecycle command.

        Runs the pre-flight check before the first command and asks for
        confirmation before destructive ones.

        Raises:
            OperationCancelled: If a destructive command was not confirmed
        """
        command = Command(command)
        self.ensure_preflight(descriptor)

        if command.destructive:
            prompt = f"This will {command.value} database {descriptor.database} and destroy all of its data. Continue?"
            if not self.confirm(prompt):
                logger.info(f"{command.value} of {descriptor.database} cancelled")
                raise OperationCancelled(f"{command.value.capitalize()} of database {descriptor.database} cancelled")

        set_operation_context(operation=command.value)
        with tracer.start_as_current_span(f"schemakeeper.{command.value}") as span:
            span.set_attribute("db.name", descriptor.database)
            return await self._handlers[command](descriptor, **options)

    def ensure_preflight(self, descriptor: DatabaseDescriptor) -> None:
        """Run the pre-flight check once per orchestrator."""
        if self._preflight_passed or self.preflight is None:
            return
        self.preflight(descriptor)
        self._preflight_passed = True

    async def drop(self, descriptor: DatabaseDescriptor, if_exists: bool = False) -> str:
        """Drop the target database from the administrative database."""
        template = "DROP DATABASE IF EXISTS {}" if if_exists else "DROP DATABASE {}"
        await self._administer(descriptor, "drop", template)
        return descriptor.database

    async def create(self, descriptor: DatabaseDescriptor) -> str:
        """Create the target database from the administrative database."""
        await self._administer(descriptor, "create", "CREATE DATABASE {}")
        return descriptor.database

    async def migrate(self, descriptor: DatabaseDescriptor, progress: Optional[ProgressCallback] = None) -> int:
        """Apply pending migrations; returns how many were applied."""
        provider = self.provider_factory(descriptor)
        async with provider.connect(DatabaseRole.TARGET) as connection:
            ledger = MigrationLedger(connection, self.ledger_table)
            applied = await self.engine.apply(self.source, ledger, connection, progress)

        logger.info(f"{applied} migrations applied to {descriptor.database}")
        return applied

    async def seed(self, descriptor: DatabaseDescriptor) -> None:
        """Run the seed file as a single transaction."""
        statements = self._load_seed()
        if not statements:
            logger.warning(f"Seed file {self.seed_file} contains no statements")
            return

        provider = self.provider_factory(descriptor)
        async with provider.connect(DatabaseRole.TARGET) as connection:
            try:
                async with connection.begin():
                    for statement in statements:
                        await connection.exec_driver_sql(statement)
            except SQLAlchemyError as e:
                logger.error(f"Seeding {descriptor.database} failed, rolled back: {e}")
                raise SeedError(f"Failed to execute seeds from {self.seed_file}: {e}", self.seed_file) from e

        logger.info(f"Seeded {descriptor.database} with {len(statements)} statements")

    async def reset(
        self,
        descriptor: DatabaseDescriptor,
        if_exists: bool = False,
        progress: Optional[ProgressCallback] = None,
    ) -> str:
        """
        Drop, re-create and migrate the target database.

        Raises:
            ResetError: Naming the step that failed; later steps are not attempted
        """
        logger.info("Dropping database")
        await self._step(Command.DROP, partial(self.drop, descriptor, if_exists=if_exists))
        logger.info("Recreating database")
        await self._step(Command.CREATE, partial(self.create, descriptor))
        logger.info("Migrating database")
        await self._step(Command.MIGRATE, partial(self.migrate, descriptor, progress=progress))
        return descriptor.database

    async def status(self, descriptor: DatabaseDescriptor) -> MigrationStatus:
        """Report applied, pending, missing and modified migrations."""
        provider = self.provider_factory(descriptor)
        async with provider.connect(DatabaseRole.TARGET) as connection:
            ledger = MigrationLedger(connection, self.ledger_table)
            status = await self.engine.status(self.source, ledger, connection)

        logger.info(f"Migration status of {descriptor.database}", **status.to_dict())
        return status

    async def _step(self, step: Command, operation: Callable[[], Awaitable[Any]]) -> Any:
        try:
            return await operation()
        except SchemaKeeperError as e:
            logger.error(f"Reset failed at step {step.value}: {e}", step=step.value)
            raise ResetError(step, e) from e

    async def _administer(self, descriptor: DatabaseDescriptor, action: str, template: str) -> None:
        provider = self.provider_factory(descriptor)
        async with provider.connect(DatabaseRole.ADMINISTRATIVE) as connection:
            name = connection.dialect.identifier_preparer.quote(descriptor.database)
            try:
                await connection.exec_driver_sql(template.format(name))
            except SQLAlchemyError as e:
                logger.error(f"Failed to {action} database {descriptor.database}: {e}")
                raise DatabaseCommandError(descriptor.database, action, str(e)) from e

        logger.info(f"Database {descriptor.database}: {action} complete")

    def _load_seed(self) -> List[str]:
        try:
            content = self.seed_file.read_text(encoding="utf-8-sig")
        except OSError as e:
            raise SeedError(f"Could not read seeds; make sure {self.seed_file} exists", self.seed_file) from e
        except UnicodeDecodeError as e:
            raise SeedError(f"Seed file {self.seed_file} is not valid UTF-8", self.seed_file) from e

        try:
            return split_statements(content)
        except ValueError as e:
            raise SeedError(f"Malformed seed file {self.seed_file}: {e}", self.seed_file) from e

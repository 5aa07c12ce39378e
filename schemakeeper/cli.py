"""Database management CLI."""
import argparse
import asyncio
import os
import sys
from functools import partial
from typing import List, Optional

from schemakeeper.core.config import Settings, get_config_summary, get_descriptor, get_settings
from schemakeeper.core.environment import requires_confirmation
from schemakeeper.database.connection import ConnectionProvider
from schemakeeper.database.lifecycle import Command, LifecycleOrchestrator, always_confirm
from schemakeeper.database.source import MigrationSource
from schemakeeper.exceptions import ApplicationError, OperationCancelled, ResetError, SchemaKeeperError
from schemakeeper.models.database import DatabaseDescriptor
from schemakeeper.models.migration import Migration
from schemakeeper.utils.logging import clear_context, get_logger, set_operation_context, setup_logging

logger = get_logger(__name__)


def terminal_confirmation(prompt: str) -> bool:
    """Ask on the terminal; anything but y/yes declines, as does a closed stdin."""
    try:
        answer = input(f"{prompt} (y/N): ")
    except EOFError:
        print()
        return False
    return answer.strip().lower() in ("y", "yes")


def build_orchestrator(settings: Settings, assume_yes: bool = False) -> LifecycleOrchestrator:
    """Wire the orchestrator from settings."""
    if requires_confirmation(settings.environment, assume_yes, settings.allow_destructive):
        confirm = terminal_confirmation
    else:
        confirm = always_confirm

    return LifecycleOrchestrator(
        source=MigrationSource(settings.migrations_dir),
        seed_file=settings.seed_file,
        ledger_table=settings.ledger_table,
        provider_factory=partial(
            ConnectionProvider,
            connect_retries=settings.connect_retries,
            echo=settings.database_echo,
        ),
        confirm=confirm,
    )


def print_applied(migration: Migration) -> None:
    print(f"   Applied migration {migration.version}.")


def explain_failure(error: SchemaKeeperError) -> str:
    if isinstance(error, ResetError):
        return f"{error} (step: {error.step.value})"
    if isinstance(error, ApplicationError):
        return f"{error} (migration {error.version}, {error.applied} applied before it)"
    return str(error)


async def drop_database(orchestrator: LifecycleOrchestrator, descriptor: DatabaseDescriptor, env: str, if_exists: bool = False) -> bool:
    """Drop the database."""
    print(f"🗑️  Dropping {env} database…")
    name = await orchestrator.run(Command.DROP, descriptor, if_exists=if_exists)
    print(f"✅ Dropped database {name} successfully.")
    return True


async def create_database(orchestrator: LifecycleOrchestrator, descriptor: DatabaseDescriptor, env: str) -> bool:
    """Create the database."""
    print(f"🏗️  Creating {env} database…")
    name = await orchestrator.run(Command.CREATE, descriptor)
    print(f"✅ Created database {name} successfully.")
    return True


async def migrate_database(orchestrator: LifecycleOrchestrator, descriptor: DatabaseDescriptor, env: str) -> bool:
    """Run all pending migrations."""
    print(f"🚀 Migrating {env} database…")
    applied = await orchestrator.run(Command.MIGRATE, descriptor, progress=print_applied)
    print(f"✅ {applied} migrations applied.")
    return True


async def seed_database(orchestrator: LifecycleOrchestrator, descriptor: DatabaseDescriptor, env: str) -> bool:
    """Load the seed file."""
    print(f"🌱 Seeding {env} database…")
    await orchestrator.run(Command.SEED, descriptor)
    print("✅ Seeded database successfully.")
    return True


async def reset_database(orchestrator: LifecycleOrchestrator, descriptor: DatabaseDescriptor, env: str, if_exists: bool = False) -> bool:
    """Drop, re-create and migrate the database."""
    print(f"♻️  Resetting {env} database…")
    name = await orchestrator.run(Command.RESET, descriptor, if_exists=if_exists, progress=print_applied)
    print(f"✅ Reset database {name} successfully.")
    return True


async def print_status(orchestrator: LifecycleOrchestrator, descriptor: DatabaseDescriptor, env: str) -> bool:
    """Print current migration status."""
    status = await orchestrator.run(Command.STATUS, descriptor)

    print(f"🗄️  Database Migration Status ({env})")
    print("=" * 40)
    print(f"Applied Migrations: {len(status.applied)}")
    print(f"Pending Migrations: {len(status.pending)}")
    print(f"Up to Date: {'✅' if status.up_to_date else '❌'}")

    if status.pending:
        print("\nPending Migrations:")
        for migration in status.pending:
            print(f"  - {migration.version}: {migration.description}")

    if status.missing:
        print("\nApplied but missing from the migrations directory:")
        for version in status.missing:
            print(f"  - {version}")

    if status.modified:
        print("\nModified after being applied:")
        for version in status.modified:
            print(f"  - {version}")

    return True


FAILURE_MESSAGES = {
    Command.DROP: "Could not drop database!",
    Command.CREATE: "Could not create database!",
    Command.MIGRATE: "Could not migrate database!",
    Command.SEED: "Could not seed database!",
    Command.RESET: "Could not reset database!",
    Command.STATUS: "Could not read migration status!",
}


async def dispatch(orchestrator: LifecycleOrchestrator, descriptor: DatabaseDescriptor, args: argparse.Namespace, env: str) -> bool:
    command = Command(args.command)
    try:
        if command == Command.DROP:
            return await drop_database(orchestrator, descriptor, env, args.if_exists)
        elif command == Command.CREATE:
            return await create_database(orchestrator, descriptor, env)
        elif command == Command.MIGRATE:
            return await migrate_database(orchestrator, descriptor, env)
        elif command == Command.SEED:
            return await seed_database(orchestrator, descriptor, env)
        elif command == Command.RESET:
            return await reset_database(orchestrator, descriptor, env, args.if_exists)
        else:
            return await print_status(orchestrator, descriptor, env)
    except OperationCancelled:
        print("Operation cancelled")
        return False
    except SchemaKeeperError as e:
        print(f"❌ {FAILURE_MESSAGES[command]} {explain_failure(e)}")
        return False


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="A CLI tool to manage the project's database.")
    parser.add_argument(
        "-e", "--env",
        default=os.getenv("ENVIRONMENT", "development"),
        help="Choose the environment (development, test, production).",
    )
    parser.add_argument("-y", "--yes", action="store_true", help="Do not ask before destructive commands.")
    parser.add_argument("-q", "--quiet", action="store_true", help="Only log warnings and errors.")
    parser.add_argument("--no-color", action="store_true", help="Disable colored log output.")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    drop_parser = subparsers.add_parser("drop", help="Drop the database")
    drop_parser.add_argument("--if-exists", action="store_true", help="Do not fail if the database does not exist")

    subparsers.add_parser("create", help="Create the database")
    subparsers.add_parser("migrate", help="Run all pending migrations")
    subparsers.add_parser("seed", help="Seed the database")

    reset_parser = subparsers.add_parser("reset", help="Reset (drop, create, migrate) the database")
    reset_parser.add_argument("--if-exists", action="store_true", help="Do not fail if the database does not exist")

    subparsers.add_parser("status", help="Show migration status")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    try:
        settings = get_settings(args.env)
        setup_logging("WARNING" if args.quiet else settings.log_level, colors=not args.no_color)
        env = settings.environment.value
        set_operation_context(environment=env)
        logger.debug("Loaded configuration", config=get_config_summary(settings))

        descriptor = get_descriptor(settings)
        orchestrator = build_orchestrator(settings, assume_yes=args.yes)
    except SchemaKeeperError as e:
        print(f"❌ Could not load config! {e}")
        return 1

    if settings.is_production():
        print(f"⚠️  Running against the production database {descriptor.database}.")

    try:
        success = asyncio.run(dispatch(orchestrator, descriptor, args, env))
    finally:
        clear_context()
    return 0 if success else 1


if __name__ == "__main__":
    sys.exit(main())

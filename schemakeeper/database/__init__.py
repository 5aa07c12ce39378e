"""Database connections, migrations and lifecycle orchestration."""

from .connection import ConnectionProvider, check_driver
from .ledger import MigrationLedger
from .lifecycle import Command, LifecycleOrchestrator
from .migrations import MigrationEngine
from .source import MigrationSource, split_statements

__all__ = [
    "ConnectionProvider",
    "check_driver",
    "MigrationLedger",
    "Command",
    "LifecycleOrchestrator",
    "MigrationEngine",
    "MigrationSource",
    "split_statements",
]

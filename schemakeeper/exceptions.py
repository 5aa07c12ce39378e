"""Exception hierarchy for database lifecycle operations.

Every failure surfaced by the core is one of these types. Driver errors are
translated at the layer that observes them and chained with ``raise ... from``
so the original exception stays available on ``__cause__``.
"""
from pathlib import Path
from typing import Optional


class SchemaKeeperError(Exception):
    """Base exception for all lifecycle errors."""
    pass


class ConfigError(SchemaKeeperError):
    """Settings or database descriptor are malformed."""
    pass


class ConnectionError(SchemaKeeperError):
    """The database server or the requested database is unreachable."""
    pass


class PreflightError(SchemaKeeperError):
    """A required capability (e.g. the database driver) is unavailable."""
    pass


class DiscoveryError(SchemaKeeperError):
    """
    Migration source is unreadable or malformed.

    Attributes:
        path: File or directory that could not be read or parsed
    """
    def __init__(self, message: str, path: Optional[Path] = None):
        super().__init__(message)
        self.path = path


class LedgerError(SchemaKeeperError):
    """Ledger table cannot be created, read or written, or disagrees with the source."""
    pass


class ApplicationError(SchemaKeeperError):
    """
    A migration's statements failed and its transaction was rolled back.

    Attributes:
        version: Version of the migration that failed
        applied: Migrations committed earlier in the same run
    """
    def __init__(self, version: int, applied: int, reason: str = ""):
        message = f"Migration {version} failed after {applied} migration(s) were applied"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.version = version
        self.applied = applied


class SeedError(SchemaKeeperError):
    """
    Seed batch failed; all of its effects were rolled back.

    Attributes:
        path: Seed file that was being loaded
    """
    def __init__(self, message: str, path: Optional[Path] = None):
        super().__init__(message)
        self.path = path


class DatabaseCommandError(SchemaKeeperError):
    """
    Server rejected CREATE DATABASE or DROP DATABASE.

    Attributes:
        database: Target database name
        action: "create" or "drop"
    """
    def __init__(self, database: str, action: str, reason: str = ""):
        message = f"Failed to {action} database {database}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.database = database
        self.action = action


class ResetError(SchemaKeeperError):
    """
    A step of ``reset`` failed; later steps were not attempted.

    Attributes:
        step: The lifecycle command that failed
        cause: Original exception raised by that step
    """
    def __init__(self, step, cause: Exception):
        step_name = getattr(step, "value", step)
        super().__init__(f"Reset aborted at step '{step_name}': {cause}")
        self.step = step
        self.cause = cause


class OperationCancelled(SchemaKeeperError):
    """A destructive operation was not confirmed."""
    pass

"""Migration domain models."""
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Tuple


@dataclass(frozen=True)
class Migration:
    """One versioned, ordered unit of schema change, parsed from a ``.sql`` file."""
    version: int
    description: str
    statements: Tuple[str, ...]
    checksum: bytes
    path: Optional[Path] = field(default=None, compare=False)

    def __str__(self) -> str:
        return f"{self.version} ({self.description})"


@dataclass(frozen=True)
class AppliedMigration:
    """A row of the migration ledger."""
    version: int
    applied_at: datetime
    description: str = ""
    checksum: Optional[bytes] = None
    execution_time: Optional[int] = None  # milliseconds


@dataclass
class MigrationStatus:
    """Comparison of the migration source against the ledger."""
    applied: List[AppliedMigration]
    pending: List[Migration]
    missing: List[int] = field(default_factory=list)
    modified: List[int] = field(default_factory=list)

    @property
    def up_to_date(self) -> bool:
        return not self.pending

    def to_dict(self) -> Dict[str, object]:
        """Convert to a dictionary for display."""
        return {
            "applied_versions": [record.version for record in self.applied],
            "pending_versions": [migration.version for migration in self.pending],
            "pending_count": len(self.pending),
            "missing_versions": list(self.missing),
            "modified_versions": list(self.modified),
            "up_to_date": self.up_to_date,
        }

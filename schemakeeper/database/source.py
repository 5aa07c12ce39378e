"""Discovery and parsing of versioned SQL migration files."""
import hashlib
import re
from pathlib import Path
from typing import Dict, List, Union

from schemakeeper.exceptions import DiscoveryError
from schemakeeper.models.migration import Migration
from schemakeeper.utils.logging import get_logger

logger = get_logger(__name__)

# <version>_<description>.sql or <version>_<description>.up.sql
MIGRATION_FILENAME = re.compile(r"^(?P<version>\d+)_(?P<description>.+?)(?:\.up)?\.sql$")
DOWN_MIGRATION_SUFFIX = ".down.sql"

_TOKEN = re.compile(
    r"""
      (?P<line_comment>--[^\n]*)
    | (?P<block_comment>/\*)
    | (?P<escape_string>(?<![\w$])[Ee]')
    | (?P<quote>['"])
    | (?P<dollar>\$(?:[A-Za-z_][A-Za-z_0-9]*)?\$)
    | (?P<semicolon>;)
    """,
    re.VERBOSE,
)
_COMMENT_DELIMITER = re.compile(r"/\*|\*/")


def _skip_quoted(sql: str, quote: str, pos: int) -> int:
    """Return the index just past the closing quote; doubled quotes are escapes."""
    while True:
        end = sql.find(quote, pos)
        if end == -1:
            raise ValueError(f"unterminated {quote} quoted string")
        if sql.startswith(quote, end + 1):
            pos = end + 2
            continue
        return end + 1


def _skip_escape_string(sql: str, pos: int) -> int:
    """Like ``_skip_quoted`` for E'...' strings, where a backslash escapes the next character."""
    while pos < len(sql):
        char = sql[pos]
        if char == "\\":
            pos += 2
        elif char == "'":
            if not sql.startswith("'", pos + 1):
                return pos + 1
            pos += 2
        else:
            pos += 1
    raise ValueError("unterminated ' quoted string")


def _skip_block_comment(sql: str, pos: int) -> int:
    """Return the index just past the comment opened before ``pos``; block comments nest."""
    depth = 1
    while depth:
        match = _COMMENT_DELIMITER.search(sql, pos)
        if match is None:
            raise ValueError("unterminated block comment")
        depth += 1 if match.group() == "/*" else -1
        pos = match.end()
    return pos


def split_statements(sql: str) -> List[str]:
    """
    Split a SQL script into individual statements.

    Semicolons inside quoted strings, quoted identifiers, comments and
    dollar-quoted bodies do not terminate a statement. Fragments that hold
    nothing but whitespace and comments are dropped.

    Raises:
        ValueError: If a quote, block comment or dollar-quoted body is unterminated
    """
    statements = []
    start = pos = 0
    has_code = False

    while True:
        match = _TOKEN.search(sql, pos)
        if sql[pos:match.start() if match else len(sql)].strip():
            has_code = True
        if match is None:
            break

        kind = match.lastgroup
        if kind == "line_comment":
            pos = match.end()
        elif kind == "block_comment":
            pos = _skip_block_comment(sql, match.end())
        elif kind == "escape_string":
            has_code = True
            pos = _skip_escape_string(sql, match.end())
        elif kind == "quote":
            has_code = True
            pos = _skip_quoted(sql, match.group(), match.end())
        elif kind == "dollar":
            has_code = True
            tag = match.group()
            end = sql.find(tag, match.end())
            if end == -1:
                raise ValueError(f"unterminated dollar-quoted body {tag}")
            pos = end + len(tag)
        else:
            if has_code:
                statements.append(sql[start:match.start()].strip())
            start = pos = match.end()
            has_code = False

    if has_code:
        statements.append(sql[start:].strip())

    return statements


class MigrationSource:
    """Reads ``<version>_<description>.sql`` files from a directory."""

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)

    def discover(self) -> List[Migration]:
        """
        Parse every migration file, sorted ascending by version.

        The directory is re-read on every call.

        Raises:
            DiscoveryError: If the directory or any migration file is unreadable or malformed
        """
        if not self.directory.is_dir():
            raise DiscoveryError(f"Migration directory not found: {self.directory}", self.directory)

        try:
            paths = sorted(p for p in self.directory.iterdir() if p.is_file())
        except OSError as e:
            raise DiscoveryError(f"Cannot read migration directory {self.directory}: {e}", self.directory) from e

        migrations: Dict[int, Migration] = {}
        for path in paths:
            if not path.name.endswith(".sql"):
                continue
            if path.name.endswith(DOWN_MIGRATION_SUFFIX):
                logger.warning(f"Skipping down migration {path.name}: down migrations are not supported")
                continue

            migration = self._parse(path)
            if migration.version in migrations:
                other = migrations[migration.version].path
                raise DiscoveryError(
                    f"Duplicate migration version {migration.version}: {other.name} and {path.name}",
                    path,
                )
            migrations[migration.version] = migration

        logger.debug(f"Discovered {len(migrations)} migrations in {self.directory}")
        return [migrations[version] for version in sorted(migrations)]

    def _parse(self, path: Path) -> Migration:
        match = MIGRATION_FILENAME.match(path.name)
        if not match:
            raise DiscoveryError(
                f"Invalid migration file name {path.name}: expected <version>_<description>.sql",
                path,
            )

        try:
            raw = path.read_bytes()
        except OSError as e:
            raise DiscoveryError(f"Cannot read migration {path.name}: {e}", path) from e

        try:
            statements = split_statements(raw.decode("utf-8-sig"))
        except UnicodeDecodeError as e:
            raise DiscoveryError(f"Migration {path.name} is not valid UTF-8", path) from e
        except ValueError as e:
            raise DiscoveryError(f"Malformed migration {path.name}: {e}", path) from e

        if not statements:
            raise DiscoveryError(f"Migration {path.name} contains no statements", path)

        return Migration(
            version=int(match.group("version")),
            description=match.group("description").replace("_", " "),
            statements=tuple(statements),
            checksum=hashlib.sha384(raw).digest(),
            path=path,
        )

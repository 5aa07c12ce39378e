"""Environment selection and environment-specific behaviour."""
from enum import Enum
from pathlib import Path
from typing import Tuple

from schemakeeper.exceptions import ConfigError

ENVIRONMENT_ALIASES = {
    "dev": "development",
    "development": "development",
    "test": "test",
    "testing": "test",
    "prod": "production",
    "production": "production",
}


class Environment(str, Enum):
    """Application environments, each with its own database."""
    DEVELOPMENT = "development"
    TEST = "test"
    PRODUCTION = "production"


def parse_environment(value: str) -> Environment:
    """Parse an environment name, accepting the usual short forms."""
    name = ENVIRONMENT_ALIASES.get(str(value).strip().lower())
    if name is None:
        raise ConfigError(
            f"Unknown environment '{value}'; choose one of: {', '.join(e.value for e in Environment)}"
        )
    return Environment(name)


def env_files(environment: Environment, root: Path = Path(".")) -> Tuple[Path, ...]:
    """Env files for ``environment``, later files overriding earlier ones."""
    return (root / ".env", root / f".env.{environment.value}")


def requires_confirmation(environment: Environment, assume_yes: bool, allow_destructive: bool = False) -> bool:
    """
    Whether a destructive command must be confirmed interactively.

    ``--yes`` skips the prompt except in production, where only an explicit
    ALLOW_DESTRUCTIVE setting does.
    """
    if environment == Environment.PRODUCTION:
        return not allow_destructive
    return not assume_yes

"""Core configuration and environment selection."""

from .config import Settings, get_config_summary, get_descriptor, get_settings
from .environment import Environment, parse_environment, requires_confirmation

__all__ = [
    "Settings",
    "get_settings",
    "get_descriptor",
    "get_config_summary",
    "Environment",
    "parse_environment",
    "requires_confirmation",
]

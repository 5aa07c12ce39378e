"""Database lifecycle management: create, drop, migrate, seed and reset."""

__version__ = "1.0.0"

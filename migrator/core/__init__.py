"""
Core module for the migration engine.

Holds the base exception type shared by every subsystem.
"""

from .exceptions import MigratorError

__all__ = [
    "MigratorError",
]

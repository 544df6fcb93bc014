"""
Configuration management for the migration engine.
"""

from .exceptions import ConfigError, ConfigNotFoundError, ConfigValidationError
from .manager import ConfigLoader, ConfigValidator
from .settings import MigratorSettings, load_settings

__all__ = [
    # Exceptions
    "ConfigError",
    "ConfigNotFoundError",
    "ConfigValidationError",
    # Main classes
    "ConfigLoader",
    "ConfigValidator",
    "MigratorSettings",
    "load_settings",
]

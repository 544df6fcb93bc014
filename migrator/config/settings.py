"""
Runtime settings for the migration engine.

Settings come from, in increasing precedence: defaults, ``MIGRATOR_*``
environment variables (and a ``.env`` file), an optional YAML/JSON
configuration file, and explicit overrides such as CLI flags.
"""

from pathlib import Path
from typing import Any, Optional, Union

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigValidationError
from .manager import ConfigLoader


class MigratorSettings(BaseSettings):
    """Migration engine settings with environment variable support."""

    # Database settings
    database_url: str = Field(
        default="postgresql://postgres@localhost:5432/postgres",
        validation_alias=AliasChoices("MIGRATOR_DATABASE_URL", "DATABASE_URL", "database_url"),
    )
    pool_size: int = 5
    min_pool_size: int = 1
    query_timeout: float = 60.0
    application_name: str = "migrator"

    # Migration settings
    migrations_dir: Path = Path("migrations")
    advisory_lock: bool = False

    # Logging settings
    log_level: str = "INFO"
    log_format: Optional[str] = None
    log_file: Optional[str] = None
    use_colors: bool = True

    model_config = SettingsConfigDict(
        env_prefix="MIGRATOR_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v.upper()

    @field_validator('pool_size', 'min_pool_size')
    @classmethod
    def validate_pool_size(cls, v: int) -> int:
        """Validate pool sizes."""
        if v < 1:
            raise ValueError("Pool sizes must be at least 1")
        return v

    @field_validator('query_timeout')
    @classmethod
    def validate_query_timeout(cls, v: float) -> float:
        """Validate query timeout."""
        if v <= 0:
            raise ValueError("Query timeout must be positive")
        return v


def load_settings(
    config_file: Optional[Union[str, Path]] = None,
    **overrides: Any,
) -> MigratorSettings:
    """
    Build settings from the environment, an optional file and overrides.

    Args:
        config_file: Optional YAML or JSON configuration file
        **overrides: Explicit values; ``None`` values are ignored

    Returns:
        Validated settings

    Raises:
        ConfigError: If the file cannot be loaded
        ConfigValidationError: If the resulting settings are invalid
    """
    values = {}
    if config_file is not None:
        loader = ConfigLoader()
        values.update(loader.to_settings_kwargs(loader.load_from_file(config_file)))

    values.update({key: value for key, value in overrides.items() if value is not None})

    try:
        return MigratorSettings(**values)
    except ValueError as e:
        raise ConfigValidationError(f"Invalid settings: {e}", cause=e) from e

"""
Configuration file loading and validation for the migration engine.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Union

import yaml

from .exceptions import ConfigError, ConfigNotFoundError, ConfigValidationError


class ConfigValidator:
    """
    Validator for configuration file data.

    Checks the structure of the ``database``, ``migrations`` and
    ``logging`` sections and the types and ranges of their values.
    """

    def __init__(self) -> None:
        """Initialize the validator."""
        self.known_sections = ["database", "migrations", "logging"]
        self.valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

    def validate(self, config: Dict[str, Any]) -> None:
        """
        Validate configuration data.

        Args:
            config: Configuration dictionary to validate

        Raises:
            ConfigValidationError: If validation fails
        """
        if not isinstance(config, dict):
            raise ConfigValidationError("Configuration root must be a mapping")

        unknown = [key for key in config if key not in self.known_sections]
        if unknown:
            raise ConfigValidationError(
                f"Unknown configuration sections: {unknown}",
                context={"unknown_keys": unknown, "known_keys": self.known_sections}
            )

        for section in self.known_sections:
            if section in config and not isinstance(config[section], dict):
                raise ConfigValidationError(f"{section} configuration must be a dictionary")

        self._validate_database(config.get("database", {}))
        self._validate_migrations(config.get("migrations", {}))
        self._validate_logging(config.get("logging", {}))

    def _validate_database(self, config: Dict[str, Any]) -> None:
        """Validate database configuration."""
        if "url" in config and not isinstance(config["url"], str):
            raise ConfigValidationError("database url must be a string")

        for key in ("pool_size", "min_pool_size"):
            if key in config:
                if not isinstance(config[key], int) or isinstance(config[key], bool) or config[key] <= 0:
                    raise ConfigValidationError(f"database {key} must be a positive integer")

        if "query_timeout" in config:
            value = config["query_timeout"]
            if not isinstance(value, (int, float)) or isinstance(value, bool) or value <= 0:
                raise ConfigValidationError("database query_timeout must be a positive number")

        if "application_name" in config and not isinstance(config["application_name"], str):
            raise ConfigValidationError("database application_name must be a string")

    def _validate_migrations(self, config: Dict[str, Any]) -> None:
        """Validate migrations configuration."""
        if "directory" in config and not isinstance(config["directory"], str):
            raise ConfigValidationError("migrations directory must be a string")

        if "advisory_lock" in config and not isinstance(config["advisory_lock"], bool):
            raise ConfigValidationError("migrations advisory_lock must be a boolean")

    def _validate_logging(self, config: Dict[str, Any]) -> None:
        """Validate logging configuration."""
        if "level" in config:
            level = config["level"]
            if not isinstance(level, str) or level.upper() not in self.valid_log_levels:
                raise ConfigValidationError(
                    f"logging level must be one of: {self.valid_log_levels}",
                    context={"provided_level": level, "valid_levels": self.valid_log_levels}
                )

        for key in ("format", "file"):
            if key in config and not isinstance(config[key], str):
                raise ConfigValidationError(f"logging {key} must be a string")

        if "use_colors" in config and not isinstance(config["use_colors"], bool):
            raise ConfigValidationError("logging use_colors must be a boolean")


class ConfigLoader:
    """
    Configuration loader supporting JSON and YAML files.

    Loaded files are validated and flattened into keyword arguments for
    :class:`~migrator.config.settings.MigratorSettings`.
    """

    # (section, key) -> settings field
    FIELD_MAP: Dict[tuple, str] = {
        ("database", "url"): "database_url",
        ("database", "pool_size"): "pool_size",
        ("database", "min_pool_size"): "min_pool_size",
        ("database", "query_timeout"): "query_timeout",
        ("database", "application_name"): "application_name",
        ("migrations", "directory"): "migrations_dir",
        ("migrations", "advisory_lock"): "advisory_lock",
        ("logging", "level"): "log_level",
        ("logging", "format"): "log_format",
        ("logging", "file"): "log_file",
        ("logging", "use_colors"): "use_colors",
    }

    def __init__(self) -> None:
        """Initialize the configuration loader."""
        self.supported_formats: List[str] = ['.json', '.yaml', '.yml']
        self.validator = ConfigValidator()

    def load_from_file(self, file_path: Union[str, Path]) -> Dict[str, Any]:
        """
        Load configuration from a file.

        Args:
            file_path: Path to the configuration file

        Returns:
            Configuration dictionary

        Raises:
            ConfigNotFoundError: If file is not found
            ConfigError: If file format is unsupported or parsing fails
        """
        path = Path(file_path)

        if not path.exists():
            raise ConfigNotFoundError(
                f"Configuration file not found: {file_path}",
                context={"file_path": str(file_path)}
            )

        if path.suffix not in self.supported_formats:
            raise ConfigError(
                f"Unsupported file format: {path.suffix}. Supported formats: {self.supported_formats}",
                context={"file_path": str(file_path), "suffix": path.suffix}
            )

        try:
            with open(path, encoding='utf-8') as f:
                if path.suffix == '.json':
                    config = json.load(f)
                else:
                    config = yaml.safe_load(f) or {}
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise ConfigError(f"Failed to parse configuration file: {e}", cause=e) from e
        except OSError as e:
            raise ConfigError(f"Failed to read configuration file: {e}", cause=e) from e

        self.validator.validate(config)
        return config

    def to_settings_kwargs(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """
        Flatten a validated configuration into settings keyword arguments.

        Args:
            config: Configuration dictionary with nested sections

        Returns:
            Dictionary keyed by settings field name
        """
        kwargs: Dict[str, Any] = {}
        for (section, key), field_name in self.FIELD_MAP.items():
            section_config = config.get(section) or {}
            if key in section_config:
                kwargs[field_name] = section_config[key]
        return kwargs

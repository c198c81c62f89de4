"""
Configuration settings management for cardsafe.

This module handles loading, validating, and saving configuration settings
from YAML files with support for environment variable overrides.

Configuration is loaded from ~/.cardsafe/config.yaml by default, with the
path overridable via the CARDSAFE_CONFIG environment variable.
"""

import os
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# Default configuration directory
DEFAULT_CONFIG_DIR = Path.home() / ".cardsafe"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.yaml"

DEFAULT_KEEP_COUNT = 10
DEFAULT_PASSWORD_HASH_ITERATIONS = 310_000


@dataclass
class BackupConfig:
    """Backup and retention settings."""

    # Empty means "<data_dir>/Backups"
    directory: str = ""
    keep_count: int = DEFAULT_KEEP_COUNT
    auto_backup: bool = True
    schedule: str = "daily"
    password_file: str = ""


@dataclass
class SecurityConfig:
    """Login credential hashing settings."""

    password_hash_iterations: int = DEFAULT_PASSWORD_HASH_ITERATIONS


@dataclass
class Settings:
    """
    Complete cardsafe configuration settings.

    Settings are loaded from a YAML configuration file and can be overridden
    by environment variables prefixed with CARDSAFE_.

    Attributes:
        data_dir: Directory holding the record database.
        log_level: Logging verbosity (DEBUG, INFO, WARNING, ERROR).
        backup: Backup location and retention settings.
        security: Credential hashing settings.
    """

    data_dir: str = str(DEFAULT_CONFIG_DIR / "data")
    log_level: str = "WARNING"

    backup: BackupConfig = field(default_factory=BackupConfig)
    security: SecurityConfig = field(default_factory=SecurityConfig)

    @property
    def backup_dir(self) -> Path:
        """Resolved directory backups are written to."""
        if self.backup.directory:
            return Path(self.backup.directory).expanduser()
        return Path(self.data_dir).expanduser() / "Backups"


class ConfigurationError(Exception):
    """Raised when configuration is invalid or cannot be loaded."""

    pass


def get_config_path() -> Path:
    """
    Get the configuration file path.

    Returns the path from CARDSAFE_CONFIG environment variable if set,
    otherwise returns the default path (~/.cardsafe/config.yaml).
    """
    env_path = os.environ.get("CARDSAFE_CONFIG")
    if env_path:
        return Path(env_path)
    return DEFAULT_CONFIG_FILE


def load_config(config_path: Path | None = None) -> Settings:
    """
    Load configuration from YAML file.

    Reads configuration from the specified path (or default if not provided),
    applies environment variable overrides, and validates the configuration.

    Args:
        config_path: Optional path to configuration file. If not provided,
                    uses CARDSAFE_CONFIG environment variable or default path.

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If the configuration file cannot be read or
                          contains invalid settings.
    """
    if config_path is None:
        config_path = get_config_path()

    settings = Settings()

    if config_path.exists():
        try:
            with open(config_path) as f:
                config_data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in config file: {e}") from e
        except OSError as e:
            raise ConfigurationError(f"Cannot read config file: {e}") from e

        if not isinstance(config_data, dict):
            raise ConfigurationError("Config file must contain a mapping at the top level")

        settings = _apply_config_data(settings, config_data)

    settings = _apply_environment_overrides(settings)

    _validate_config(settings)

    return settings


def save_config(settings: Settings, config_path: Path | None = None) -> None:
    """
    Save configuration to YAML file.

    Raises:
        ConfigurationError: If the configuration cannot be written.
    """
    if config_path is None:
        config_path = get_config_path()

    config_path.parent.mkdir(parents=True, exist_ok=True)

    config_data = _settings_to_dict(settings)

    try:
        with open(config_path, "w") as f:
            yaml.safe_dump(config_data, f, default_flow_style=False, sort_keys=False)
    except OSError as e:
        raise ConfigurationError(f"Cannot write config file: {e}") from e


def _apply_config_data(settings: Settings, data: dict[str, Any]) -> Settings:
    """Apply configuration data from parsed YAML to settings."""
    cardsafe_data = data.get("cardsafe", {}) or {}

    if "data_dir" in cardsafe_data:
        settings.data_dir = str(cardsafe_data["data_dir"])
    if "log_level" in cardsafe_data:
        settings.log_level = str(cardsafe_data["log_level"]).upper()

    backup = data.get("backup", {}) or {}
    try:
        if "directory" in backup:
            settings.backup.directory = str(backup["directory"] or "")
        if "keep_count" in backup:
            settings.backup.keep_count = int(backup["keep_count"])
        if "auto_backup" in backup:
            settings.backup.auto_backup = bool(backup["auto_backup"])
        if "schedule" in backup:
            settings.backup.schedule = str(backup["schedule"]).lower()
        if "password_file" in backup:
            settings.backup.password_file = str(backup["password_file"] or "")

        security = data.get("security", {}) or {}
        if "password_hash_iterations" in security:
            settings.security.password_hash_iterations = int(
                security["password_hash_iterations"]
            )
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid value in config file: {e}") from e

    return settings


def _apply_environment_overrides(settings: Settings) -> Settings:
    """Apply environment variable overrides to settings."""
    env_map: dict[str, tuple[str, Callable[[str], Any]]] = {
        "CARDSAFE_DATA_DIR": ("data_dir", str),
        "CARDSAFE_LOG_LEVEL": ("log_level", lambda x: x.upper()),
        "CARDSAFE_BACKUP_DIR": ("backup.directory", str),
        "CARDSAFE_BACKUP_KEEP": ("backup.keep_count", int),
    }

    for env_var, (attr_path, converter) in env_map.items():
        value = os.environ.get(env_var)
        if value is not None:
            try:
                _set_nested_attr(settings, attr_path, converter(value))
            except ValueError as e:
                raise ConfigurationError(f"Invalid value for {env_var}: {value}") from e

    return settings


def _set_nested_attr(obj: Any, path: str, value: Any) -> None:
    """Set a nested attribute on an object using dot notation."""
    parts = path.split(".")
    for part in parts[:-1]:
        obj = getattr(obj, part)
    setattr(obj, parts[-1], value)


def _validate_config(settings: Settings) -> None:
    """
    Validate configuration settings.

    Raises:
        ConfigurationError: If configuration is invalid.
    """
    valid_log_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
    if settings.log_level not in valid_log_levels:
        raise ConfigurationError(
            f"Invalid log_level: {settings.log_level}. "
            f"Must be one of: {', '.join(sorted(valid_log_levels))}"
        )

    if settings.backup.keep_count < 1:
        raise ConfigurationError("backup.keep_count must be at least 1")

    valid_schedules = {"hourly", "daily", "weekly"}
    if settings.backup.schedule not in valid_schedules:
        raise ConfigurationError(
            f"Invalid schedule: {settings.backup.schedule}. "
            f"Must be one of: {', '.join(sorted(valid_schedules))}"
        )

    if settings.security.password_hash_iterations < 1:
        raise ConfigurationError("security.password_hash_iterations must be positive")


def _settings_to_dict(settings: Settings) -> dict[str, Any]:
    """Convert Settings instance to dictionary for YAML serialization."""
    return {
        "cardsafe": {
            "data_dir": settings.data_dir,
            "log_level": settings.log_level,
        },
        "backup": {
            "directory": settings.backup.directory,
            "keep_count": settings.backup.keep_count,
            "auto_backup": settings.backup.auto_backup,
            "schedule": settings.backup.schedule,
            "password_file": settings.backup.password_file,
        },
        "security": {
            "password_hash_iterations": settings.security.password_hash_iterations,
        },
    }

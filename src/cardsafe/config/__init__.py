"""
Configuration management for cardsafe.

This module handles loading, validating, and saving configuration settings.
"""

from cardsafe.config.settings import (
    DEFAULT_CONFIG_DIR,
    BackupConfig,
    ConfigurationError,
    SecurityConfig,
    Settings,
    load_config,
    save_config,
)

__all__ = [
    "DEFAULT_CONFIG_DIR",
    "Settings",
    "BackupConfig",
    "SecurityConfig",
    "load_config",
    "save_config",
    "ConfigurationError",
]

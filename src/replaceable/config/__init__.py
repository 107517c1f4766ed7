"""Application configuration helpers."""

from __future__ import annotations

from .env import env_flag, env_float, require_env_var, require_env_vars
from .errors import ConfigurationError, MissingConfigurationError
from .locking import (
    DEFAULT_LOCK_GRACE,
    DEFAULT_LOCK_TIMEOUT,
    DEFAULT_POLL_INTERVAL,
    LOCK_KEY_NAMESPACE,
    LockConfig,
    get_lock_config,
)
from .logging import configure_logging, log_level_from_env
from .storage import DatabaseConfig, StorageConfig, get_database_config, get_storage_config

__all__ = [
    "DEFAULT_LOCK_GRACE",
    "DEFAULT_LOCK_TIMEOUT",
    "DEFAULT_POLL_INTERVAL",
    "LOCK_KEY_NAMESPACE",
    "ConfigurationError",
    "DatabaseConfig",
    "LockConfig",
    "MissingConfigurationError",
    "StorageConfig",
    "configure_logging",
    "env_flag",
    "env_float",
    "get_database_config",
    "get_lock_config",
    "get_storage_config",
    "log_level_from_env",
    "require_env_var",
    "require_env_vars",
]

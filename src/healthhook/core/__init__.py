"""Core plumbing: configuration, exceptions, utilities."""

from .config import Config, get_config, reset_config
from .exceptions import (
    ConfigInvalidError,
    ConfigurationError,
    DataSourceError,
    HealthhookError,
    PermissionMissingError,
    SourceUnavailableError,
    StoreError,
)

__all__ = [
    "Config",
    "ConfigInvalidError",
    "ConfigurationError",
    "DataSourceError",
    "HealthhookError",
    "PermissionMissingError",
    "SourceUnavailableError",
    "StoreError",
    "get_config",
    "reset_config",
]

"""
healthhook exception hierarchy.

All healthhook exceptions inherit from HealthhookError, making it easy for
consumers to catch library-level errors while still distinguishing specific
failure modes.  Expected sync outcomes (no data, failed delivery) are
returned as values from ``healthhook.sync.models`` instead of raised.
"""


class HealthhookError(Exception):
    """Base exception class for all healthhook errors."""


class ConfigurationError(HealthhookError):
    """Raised for configuration errors (missing keys, invalid values)."""


class ConfigInvalidError(ConfigurationError):
    """Raised when a setting is outside its allowed range (e.g. interval < 15 minutes)."""


class DataSourceError(HealthhookError):
    """Raised by health data sources."""


class PermissionMissingError(DataSourceError):
    """Raised when the data source has not granted read access."""


class SourceUnavailableError(DataSourceError):
    """Raised when the data source is not installed or cannot be reached."""


class StoreError(HealthhookError):
    """Raised when the preference store cannot be written."""

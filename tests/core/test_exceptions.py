"""Tests for healthhook.core.exceptions."""

from healthhook.core.exceptions import (
    ConfigInvalidError,
    ConfigurationError,
    DataSourceError,
    HealthhookError,
    PermissionMissingError,
    SourceUnavailableError,
    StoreError,
)


def test_hierarchy():
    """All exceptions should inherit from HealthhookError."""
    for exc_cls in [
        ConfigurationError,
        ConfigInvalidError,
        DataSourceError,
        PermissionMissingError,
        SourceUnavailableError,
        StoreError,
    ]:
        assert issubclass(exc_cls, HealthhookError)


def test_config_invalid_is_configuration_error():
    assert issubclass(ConfigInvalidError, ConfigurationError)


def test_source_errors_share_base():
    assert issubclass(PermissionMissingError, DataSourceError)
    assert issubclass(SourceUnavailableError, DataSourceError)


def test_exception_message():
    err = ConfigInvalidError("Sync interval must be at least 15 minutes, got 10")
    assert "at least 15" in str(err)


def test_catch_base():
    """Catching HealthhookError should catch all subtypes."""
    try:
        raise SourceUnavailableError("export missing")
    except HealthhookError as e:
        assert "export missing" in str(e)

"""Persistent configuration, checkpoints and delivery log."""

from .models import (
    MIN_INTERVAL_MINUTES,
    DeliveryLogEntry,
    IntervalMode,
    ScheduledMode,
    ScheduledTrigger,
    SyncMode,
    WebhookEndpoint,
    validate_interval_minutes,
)
from .preferences import PreferenceStore

__all__ = [
    "MIN_INTERVAL_MINUTES",
    "DeliveryLogEntry",
    "IntervalMode",
    "PreferenceStore",
    "ScheduledMode",
    "ScheduledTrigger",
    "SyncMode",
    "WebhookEndpoint",
    "validate_interval_minutes",
]

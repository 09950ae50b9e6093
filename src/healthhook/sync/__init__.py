"""Sync & delivery engine: incremental fetch, webhook delivery, outcomes."""

from .delivery import DeliveryEngine
from .models import (
    Delivered,
    DeliveryOutcome,
    NoData,
    SyncError,
    SyncErrorKind,
    SyncOutcome,
    SyncResult,
    SyncSuccess,
    describe,
)
from .orchestrator import SyncOrchestrator

__all__ = [
    "Delivered",
    "DeliveryEngine",
    "DeliveryOutcome",
    "NoData",
    "SyncError",
    "SyncErrorKind",
    "SyncOrchestrator",
    "SyncOutcome",
    "SyncResult",
    "SyncSuccess",
    "describe",
]

"""Sync and delivery outcomes.

Expected outcomes are plain values rather than exceptions: a sync returns
``NoData``, ``SyncSuccess`` or a ``SyncError``; a delivery returns
``Delivered`` or a ``SyncError``.  Callers branch with ``isinstance``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum

from healthhook.health.models import MetricType


class SyncErrorKind(StrEnum):
    NO_ENDPOINTS_CONFIGURED = "no_endpoints_configured"
    SOURCE_UNAVAILABLE = "source_unavailable"
    PERMISSION_MISSING = "permission_missing"
    ENDPOINT_DELIVERY_FAILED = "endpoint_delivery_failed"
    ALL_DELIVERIES_FAILED = "all_deliveries_failed"
    CONFIG_INVALID = "config_invalid"
    SYNC_IN_PROGRESS = "sync_in_progress"


@dataclass(frozen=True)
class SyncError:
    """A failed sync or delivery.  ``last_error`` holds the final transport/HTTP error, if any."""

    kind: SyncErrorKind
    message: str
    last_error: str | None = None

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class NoData:
    """Nothing new across all queried types; no endpoint was contacted."""


@dataclass(frozen=True)
class SyncSuccess:
    """At least one type delivered.  ``counts`` covers only the delivered types."""

    counts: dict[MetricType, int] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    @property
    def summary(self) -> str:
        return ", ".join(f"{count} {metric.label.lower()}" for metric, count in self.counts.items())


@dataclass(frozen=True)
class Delivered:
    """The payload was accepted by ``url``."""

    url: str


SyncResult = NoData | SyncSuccess
SyncOutcome = NoData | SyncSuccess | SyncError
DeliveryOutcome = Delivered | SyncError


def describe(outcome: SyncOutcome) -> str:
    """Human-readable one-liner for a sync outcome."""
    if isinstance(outcome, NoData):
        return "No new data to sync"
    if isinstance(outcome, SyncSuccess):
        return f"Synced {outcome.summary}" if outcome.counts else "Sync completed successfully"
    return f"Sync failed: {outcome.message}"

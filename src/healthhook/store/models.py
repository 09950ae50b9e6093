"""Persisted value types: webhook endpoints, delivery log entries, sync modes and triggers."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any

from healthhook.core.exceptions import ConfigInvalidError

MIN_INTERVAL_MINUTES = 15
DEFAULT_INTERVAL_MINUTES = 60


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Webhook endpoints ────────────────────────────────────────────────


@dataclass(frozen=True)
class WebhookEndpoint:
    """A delivery target: URL plus the custom headers sent only to it."""

    url: str
    headers: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_url(cls, url: str) -> WebhookEndpoint:
        return cls(url=url.strip())

    @property
    def header_count(self) -> int:
        return len(self.headers)

    def with_header(self, key: str, value: str) -> WebhookEndpoint:
        return replace(self, headers={**self.headers, key: value})

    def without_header(self, key: str) -> WebhookEndpoint:
        return replace(self, headers={k: v for k, v in self.headers.items() if k != key})

    def to_dict(self) -> dict[str, Any]:
        return {"url": self.url, "headers": dict(self.headers)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WebhookEndpoint:
        headers = data.get("headers") or {}
        return cls(url=str(data["url"]), headers={str(k): str(v) for k, v in headers.items()})


# ── Delivery log ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class DeliveryLogEntry:
    """Outcome of one endpoint's complete attempt sequence."""

    url: str
    success: bool
    timestamp: datetime = field(default_factory=_utcnow)
    status_code: int | None = None
    error_message: str | None = None
    data_type: str | None = None
    record_count: int | None = None
    id: str = field(default_factory=_new_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "url": self.url,
            "status_code": self.status_code,
            "success": self.success,
            "error_message": self.error_message,
            "data_type": self.data_type,
            "record_count": self.record_count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DeliveryLogEntry:
        return cls(
            id=str(data["id"]),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            url=str(data["url"]),
            status_code=data.get("status_code"),
            success=bool(data["success"]),
            error_message=data.get("error_message"),
            data_type=data.get("data_type"),
            record_count=data.get("record_count"),
        )


# ── Sync modes ───────────────────────────────────────────────────────


@dataclass(frozen=True)
class IntervalMode:
    """Sync continuously every ``period_minutes``."""

    period_minutes: int = DEFAULT_INTERVAL_MINUTES

    def __post_init__(self) -> None:
        validate_interval_minutes(self.period_minutes)


@dataclass(frozen=True)
class ScheduledMode:
    """Sync at the fixed daily times of the enabled ``ScheduledTrigger``s."""


SyncMode = IntervalMode | ScheduledMode


def validate_interval_minutes(minutes: Any) -> int:
    """Return ``minutes`` as int, or raise ConfigInvalidError if below the minimum."""
    if isinstance(minutes, bool) or not isinstance(minutes, int):
        raise ConfigInvalidError(f"Sync interval must be a whole number of minutes, got {minutes!r}")
    if minutes < MIN_INTERVAL_MINUTES:
        raise ConfigInvalidError(f"Sync interval must be at least {MIN_INTERVAL_MINUTES} minutes, got {minutes}")
    return minutes


# ── Scheduled triggers ───────────────────────────────────────────────


@dataclass(frozen=True)
class ScheduledTrigger:
    """A fixed daily sync time.  ``id`` is permanent and keys its pending fire."""

    hour: int
    minute: int
    label: str = ""
    enabled: bool = True
    id: str = field(default_factory=_new_id)

    def __post_init__(self) -> None:
        if not 0 <= self.hour <= 23:
            raise ConfigInvalidError(f"hour must be 0..23, got {self.hour}")
        if not 0 <= self.minute <= 59:
            raise ConfigInvalidError(f"minute must be 0..59, got {self.minute}")

    @classmethod
    def create(cls, hour: int, minute: int, label: str = "", enabled: bool = True) -> ScheduledTrigger:
        return cls(hour=hour, minute=minute, label=label, enabled=enabled)

    @property
    def display_time(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"

    @property
    def display_label(self) -> str:
        return self.label if self.label.strip() else self.display_time

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "hour": self.hour,
            "minute": self.minute,
            "label": self.label,
            "enabled": self.enabled,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ScheduledTrigger:
        return cls(
            id=str(data["id"]),
            hour=int(data["hour"]),
            minute=int(data["minute"]),
            label=str(data.get("label", "")),
            enabled=bool(data.get("enabled", True)),
        )

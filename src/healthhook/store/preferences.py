"""PreferenceStore — JSON-file-backed settings, checkpoints and delivery log.

Every operation touches a single key: the file is re-read under a lock,
that one key is changed, and the whole document is written back through an
atomic replace.  Writers in different call sites (orchestrator, scheduler,
host UI) therefore never clobber each other's keys, and checkpoints are
persisted one metric type at a time.

Values that fail to decode fall back to their defaults with a warning so a
single corrupt entry never blocks future syncs.
"""

from __future__ import annotations

import json
import os
import tempfile
import threading
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any

from loguru import logger

from healthhook.core.exceptions import ConfigInvalidError, StoreError
from healthhook.health.models import MetricType, sort_metric_types

from .models import (
    DEFAULT_INTERVAL_MINUTES,
    DeliveryLogEntry,
    IntervalMode,
    ScheduledMode,
    ScheduledTrigger,
    SyncMode,
    WebhookEndpoint,
    validate_interval_minutes,
)

DEFAULT_LOG_CAPACITY = 100

KEY_WEBHOOK_CONFIGS = "webhook_configs"
KEY_WEBHOOK_URLS = "webhook_urls"  # legacy comma-separated form
KEY_ENABLED_DATA_TYPES = "enabled_data_types"
KEY_SYNC_MODE = "sync_mode"
KEY_SYNC_INTERVAL_MINUTES = "sync_interval_minutes"
KEY_SCHEDULED_SYNCS = "scheduled_syncs"
KEY_LAST_SYNC_TS_PREFIX = "last_sync_ts_"
KEY_WEBHOOK_LOGS = "webhook_logs"
KEY_LAST_SYNC_TIME = "last_sync_time"
KEY_LAST_SYNC_SUMMARY = "last_sync_summary"

_MODE_INTERVAL = "interval"
_MODE_SCHEDULED = "scheduled"


class PreferenceStore:
    """Thread-safe persistent key-value store with typed accessors."""

    def __init__(self, path: str | Path, log_capacity: int = DEFAULT_LOG_CAPACITY) -> None:
        self.path = Path(path).expanduser()
        self.log_capacity = log_capacity
        self._lock = threading.RLock()

    # -- Raw document access ------------------------------------------------

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Preference file {self.path} unreadable, using defaults: {e}")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"Preference file {self.path} is not a JSON object, using defaults")
            return {}
        return data

    def _write(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, sort_keys=True)
            os.replace(tmp_name, self.path)
        except OSError as e:
            raise StoreError(f"Cannot write preferences to {self.path}: {e}") from e

    def get_raw(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._read().get(key, default)

    def set_raw(self, key: str, value: Any) -> None:
        with self._lock:
            data = self._read()
            data[key] = value
            self._write(data)

    def remove(self, key: str) -> None:
        with self._lock:
            data = self._read()
            if key in data:
                del data[key]
                self._write(data)

    def update(self, key: str, fn: Callable[[Any], Any]) -> Any:
        """Atomically replace ``key`` with ``fn(current)`` and return the new value."""
        with self._lock:
            data = self._read()
            data[key] = fn(data.get(key))
            self._write(data)
            return data[key]

    # -- Endpoints ----------------------------------------------------------

    def get_endpoints(self) -> list[WebhookEndpoint]:
        with self._lock:
            data = self._read()
            raw = data.get(KEY_WEBHOOK_CONFIGS)
            if raw is None and data.get(KEY_WEBHOOK_URLS):
                return self._migrate_legacy_urls(data)
        if not isinstance(raw, list):
            return []
        endpoints: list[WebhookEndpoint] = []
        for item in raw:
            try:
                endpoints.append(WebhookEndpoint.from_dict(item))
            except (KeyError, TypeError, AttributeError) as e:
                logger.warning(f"Skipping malformed webhook config {item!r}: {e}")
        return endpoints

    def set_endpoints(self, endpoints: list[WebhookEndpoint]) -> None:
        self.set_raw(KEY_WEBHOOK_CONFIGS, [e.to_dict() for e in endpoints])

    def _migrate_legacy_urls(self, data: dict[str, Any]) -> list[WebhookEndpoint]:
        urls = [u.strip() for u in str(data[KEY_WEBHOOK_URLS]).split(",") if u.strip()]
        endpoints = [WebhookEndpoint.from_url(u) for u in urls]
        data[KEY_WEBHOOK_CONFIGS] = [e.to_dict() for e in endpoints]
        data.pop(KEY_WEBHOOK_URLS, None)
        self._write(data)
        logger.info(f"Migrated {len(endpoints)} legacy webhook URL(s) to webhook configs")
        return endpoints

    # -- Enabled metric types -----------------------------------------------

    def get_enabled_types(self) -> list[MetricType]:
        """Enabled types in declaration order.  Unknown names are dropped."""
        raw = self.get_raw(KEY_ENABLED_DATA_TYPES, [])
        if not isinstance(raw, list):
            return []
        types = {m for m in (MetricType.from_name(str(name)) for name in raw) if m is not None}
        return sort_metric_types(types)

    def set_enabled_types(self, types: set[MetricType] | list[MetricType]) -> None:
        self.set_raw(KEY_ENABLED_DATA_TYPES, [m.name for m in sort_metric_types(types)])

    # -- Sync mode & interval -----------------------------------------------

    def get_interval_minutes(self) -> int:
        raw = self.get_raw(KEY_SYNC_INTERVAL_MINUTES, DEFAULT_INTERVAL_MINUTES)
        try:
            return validate_interval_minutes(raw)
        except ConfigInvalidError as e:
            logger.warning(f"Stored sync interval invalid ({e}); using {DEFAULT_INTERVAL_MINUTES}")
            return DEFAULT_INTERVAL_MINUTES

    def set_interval_minutes(self, minutes: int) -> None:
        self.set_raw(KEY_SYNC_INTERVAL_MINUTES, validate_interval_minutes(minutes))

    def get_sync_mode(self) -> SyncMode:
        raw = self.get_raw(KEY_SYNC_MODE, _MODE_INTERVAL)
        if raw == _MODE_SCHEDULED:
            return ScheduledMode()
        if raw != _MODE_INTERVAL:
            logger.warning(f"Unknown stored sync mode {raw!r}; using interval")
        return IntervalMode(self.get_interval_minutes())

    def set_sync_mode(self, mode: SyncMode) -> None:
        with self._lock:
            if isinstance(mode, IntervalMode):
                data = self._read()
                data[KEY_SYNC_MODE] = _MODE_INTERVAL
                data[KEY_SYNC_INTERVAL_MINUTES] = mode.period_minutes
                self._write(data)
            else:
                self.set_raw(KEY_SYNC_MODE, _MODE_SCHEDULED)

    # -- Scheduled triggers -------------------------------------------------

    def get_triggers(self) -> list[ScheduledTrigger]:
        raw = self.get_raw(KEY_SCHEDULED_SYNCS, [])
        if not isinstance(raw, list):
            return []
        triggers: list[ScheduledTrigger] = []
        for item in raw:
            try:
                triggers.append(ScheduledTrigger.from_dict(item))
            except (KeyError, TypeError, ValueError, ConfigInvalidError) as e:
                logger.warning(f"Skipping malformed scheduled sync {item!r}: {e}")
        return triggers

    def set_triggers(self, triggers: list[ScheduledTrigger]) -> None:
        self.set_raw(KEY_SCHEDULED_SYNCS, [t.to_dict() for t in triggers])

    def get_trigger(self, trigger_id: str) -> ScheduledTrigger | None:
        return next((t for t in self.get_triggers() if t.id == trigger_id), None)

    # -- Checkpoints --------------------------------------------------------

    def get_checkpoint(self, metric_type: MetricType) -> datetime | None:
        raw = self.get_raw(KEY_LAST_SYNC_TS_PREFIX + metric_type.name)
        if raw is None:
            return None
        try:
            value = datetime.fromisoformat(str(raw))
        except ValueError:
            logger.warning(f"Corrupt checkpoint for {metric_type.name} ({raw!r}); treating as never synced")
            return None
        if value.tzinfo is None:
            logger.warning(f"Naive checkpoint for {metric_type.name}; treating as never synced")
            return None
        return value

    def set_checkpoint(self, metric_type: MetricType, timestamp: datetime) -> None:
        self.set_raw(KEY_LAST_SYNC_TS_PREFIX + metric_type.name, timestamp.isoformat())

    def clear_checkpoint(self, metric_type: MetricType) -> None:
        self.remove(KEY_LAST_SYNC_TS_PREFIX + metric_type.name)

    # -- Last sync info -----------------------------------------------------

    def get_last_sync(self) -> tuple[datetime | None, str]:
        with self._lock:
            data = self._read()
        summary = str(data.get(KEY_LAST_SYNC_SUMMARY) or "")
        raw = data.get(KEY_LAST_SYNC_TIME)
        try:
            when = datetime.fromisoformat(raw) if raw else None
        except (TypeError, ValueError):
            when = None
        return when, summary

    def set_last_sync(self, when: datetime, summary: str) -> None:
        with self._lock:
            data = self._read()
            data[KEY_LAST_SYNC_TIME] = when.isoformat()
            data[KEY_LAST_SYNC_SUMMARY] = summary
            self._write(data)

    # -- Delivery log -------------------------------------------------------

    def get_logs(self) -> list[DeliveryLogEntry]:
        """Newest first."""
        raw = self.get_raw(KEY_WEBHOOK_LOGS, [])
        if not isinstance(raw, list):
            return []
        try:
            return [DeliveryLogEntry.from_dict(item) for item in raw]
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Delivery log unreadable, starting fresh: {e}")
            return []

    def add_log(self, entry: DeliveryLogEntry) -> None:
        with self._lock:
            current = [e.to_dict() for e in self.get_logs()]
            current.insert(0, entry.to_dict())
            self.set_raw(KEY_WEBHOOK_LOGS, current[: self.log_capacity])

    def clear_logs(self) -> None:
        self.remove(KEY_WEBHOOK_LOGS)

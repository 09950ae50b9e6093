"""Shared test fixtures for healthhook."""

import os
import tempfile
from datetime import datetime, timedelta, timezone

import pytest

from healthhook.core.exceptions import PermissionMissingError, SourceUnavailableError
from healthhook.health.models import HealthRecord, MetricType
from healthhook.store.models import WebhookEndpoint
from healthhook.store.preferences import PreferenceStore

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def tmp_dir():
    """Provide a temporary directory that is cleaned up after the test."""
    with tempfile.TemporaryDirectory() as d:
        yield d


@pytest.fixture
def tmp_config_file(tmp_dir):
    """Create a temporary YAML config file."""
    import yaml

    config_data = {
        "paths": {"data_dir": os.path.join(tmp_dir, "data")},
        "delivery": {"max_attempts": 2, "initial_backoff_ms": 10},
        "scheduler": {"timezone": "UTC"},
    }
    config_path = os.path.join(tmp_dir, "config.yaml")
    with open(config_path, "w") as f:
        yaml.dump(config_data, f)
    return config_path


@pytest.fixture
def store(tmp_dir):
    return PreferenceStore(os.path.join(tmp_dir, "preferences.json"))


@pytest.fixture
def configured_store(store):
    """Store with one endpoint and steps + sleep enabled."""
    store.set_endpoints([WebhookEndpoint.from_url("https://a.example/hook")])
    store.set_enabled_types({MetricType.STEPS, MetricType.SLEEP})
    return store


def make_record(metric_type: MetricType, end: datetime, value=1.0) -> HealthRecord:
    return HealthRecord(metric_type=metric_type, start_time=end - timedelta(minutes=5), end_time=end, value=value)


class FakeDataSource:
    """In-memory ``HealthDataSource`` that records every fetch."""

    name = "fake"

    def __init__(self, records=None, granted=None, available=True):
        self.records: dict[MetricType, list[HealthRecord]] = records or {}
        self.granted: set[MetricType] = set(MetricType) if granted is None else set(granted)
        self.available = available
        self.fetch_calls: list[tuple[MetricType, datetime | None]] = []
        self.revoked: set[MetricType] = set()
        self.fail_unavailable = False

    def add(self, metric_type: MetricType, *records: HealthRecord) -> None:
        self.records.setdefault(metric_type, []).extend(records)

    def is_available(self) -> bool:
        return self.available

    def list_granted_capabilities(self) -> set[MetricType]:
        return set(self.granted)

    def fetch_records(self, metric_type, since):
        self.fetch_calls.append((metric_type, since))
        if self.fail_unavailable:
            raise SourceUnavailableError("provider went away")
        if metric_type in self.revoked:
            raise PermissionMissingError(f"{metric_type} revoked")
        return [r for r in self.records.get(metric_type, []) if since is None or r.event_time > since]


@pytest.fixture
def fake_source():
    return FakeDataSource()


@pytest.fixture
def record():
    """Factory: ``record(MetricType.STEPS, end_time, value)``."""
    return make_record

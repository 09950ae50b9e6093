"""Tests for store.models — endpoints, log entries, modes and triggers."""

from datetime import datetime, timezone

import pytest

from healthhook.core.exceptions import ConfigInvalidError
from healthhook.store.models import (
    DeliveryLogEntry,
    IntervalMode,
    ScheduledTrigger,
    WebhookEndpoint,
    validate_interval_minutes,
)


@pytest.mark.smoke
class TestWebhookEndpoint:
    def test_from_url_strips(self):
        ep = WebhookEndpoint.from_url("  https://a.example/hook ")
        assert ep.url == "https://a.example/hook"
        assert ep.headers == {}

    def test_header_edits_are_copies(self):
        ep = WebhookEndpoint.from_url("https://a.example")
        with_auth = ep.with_header("Authorization", "Bearer x")
        assert ep.header_count == 0
        assert with_auth.header_count == 1
        assert with_auth.without_header("Authorization").headers == {}

    def test_dict_roundtrip(self):
        ep = WebhookEndpoint(url="https://a.example", headers={"X-Key": "1"})
        assert WebhookEndpoint.from_dict(ep.to_dict()) == ep


class TestDeliveryLogEntry:
    def test_dict_roundtrip(self):
        entry = DeliveryLogEntry(
            url="https://a.example",
            success=False,
            timestamp=datetime(2026, 1, 1, tzinfo=timezone.utc),
            status_code=500,
            error_message="HTTP 500: Internal Server Error",
            data_type="Steps",
            record_count=3,
        )
        assert DeliveryLogEntry.from_dict(entry.to_dict()) == entry

    def test_ids_unique(self):
        a = DeliveryLogEntry(url="u", success=True)
        b = DeliveryLogEntry(url="u", success=True)
        assert a.id != b.id


class TestIntervalValidation:
    def test_minimum_accepted(self):
        assert validate_interval_minutes(15) == 15

    @pytest.mark.parametrize("bad", [10, 0, -5, 14])
    def test_below_minimum_rejected(self, bad):
        with pytest.raises(ConfigInvalidError):
            validate_interval_minutes(bad)

    @pytest.mark.parametrize("bad", ["60", 30.0, True, None])
    def test_non_int_rejected(self, bad):
        with pytest.raises(ConfigInvalidError):
            validate_interval_minutes(bad)

    def test_interval_mode_validates(self):
        assert IntervalMode().period_minutes == 60
        with pytest.raises(ConfigInvalidError):
            IntervalMode(10)


class TestScheduledTrigger:
    def test_create_assigns_id(self):
        a = ScheduledTrigger.create(8, 0)
        b = ScheduledTrigger.create(8, 0)
        assert a.id and a.id != b.id
        assert a.enabled is True

    @pytest.mark.parametrize("hour,minute", [(24, 0), (-1, 0), (8, 60), (8, -1)])
    def test_out_of_range_rejected(self, hour, minute):
        with pytest.raises(ConfigInvalidError):
            ScheduledTrigger.create(hour, minute)

    def test_display(self):
        assert ScheduledTrigger.create(7, 5).display_time == "07:05"
        assert ScheduledTrigger.create(7, 5).display_label == "07:05"
        assert ScheduledTrigger.create(7, 5, label="Morning").display_label == "Morning"

    def test_dict_roundtrip(self):
        t = ScheduledTrigger.create(22, 30, label="Night", enabled=False)
        assert ScheduledTrigger.from_dict(t.to_dict()) == t

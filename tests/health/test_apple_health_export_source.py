"""Tests for AppleHealthExportSource."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from healthhook.core.exceptions import PermissionMissingError, SourceUnavailableError
from healthhook.health.models import MetricType
from healthhook.health.plugins.apple_health_export import AppleHealthExportSource

PST = timezone(timedelta(hours=-8))


def _write_export(path: Path) -> None:
    xml = """<?xml version=\"1.0\" encoding=\"UTF-8\"?>
<HealthData>
  <Record
    type=\"HKQuantityTypeIdentifierStepCount\"
    sourceName=\"iPhone\"
    unit=\"count\"
    value=\"500\"
    startDate=\"2026-01-01 18:00:00 -0800\"
    endDate=\"2026-01-01 18:05:00 -0800\"
  />
  <Record
    type=\"HKQuantityTypeIdentifierStepCount\"
    sourceName=\"iPhone\"
    unit=\"count\"
    value=\"1000\"
    startDate=\"2026-01-01 08:00:00 -0800\"
    endDate=\"2026-01-01 08:05:00 -0800\"
  />
  <Record
    type=\"HKQuantityTypeIdentifierDistanceWalkingRunning\"
    unit=\"m\"
    value=\"2400\"
    startDate=\"2026-01-01 10:00:00 -0800\"
    endDate=\"2026-01-01 10:30:00 -0800\"
  />
  <Record
    type=\"HKQuantityTypeIdentifierActiveEnergyBurned\"
    unit=\"kcal\"
    value=\"350\"
    startDate=\"2026-01-01 10:00:00 -0800\"
    endDate=\"2026-01-01 10:30:00 -0800\"
  />
  <Record
    type=\"HKQuantityTypeIdentifierBodyMass\"
    unit=\"lb\"
    value=\"160\"
    startDate=\"2026-01-01 07:05:00 -0800\"
    endDate=\"2026-01-01 07:05:00 -0800\"
  />
  <Record
    type=\"HKCategoryTypeIdentifierSleepAnalysis\"
    value=\"HKCategoryValueSleepAnalysisAsleep\"
    startDate=\"2026-01-01 00:00:00 -0800\"
    endDate=\"2026-01-01 07:00:00 -0800\"
  />
  <Record
    type=\"HKCategoryTypeIdentifierSleepAnalysis\"
    value=\"HKCategoryValueSleepAnalysisInBed\"
    startDate=\"2025-12-31 23:30:00 -0800\"
    endDate=\"2026-01-01 07:10:00 -0800\"
  />
</HealthData>
"""
    path.write_text(xml, encoding="utf-8")


@pytest.fixture
def export_path(tmp_dir) -> Path:
    path = Path(tmp_dir) / "export.xml"
    _write_export(path)
    return path


class TestAvailability:
    def test_available(self, export_path):
        assert AppleHealthExportSource(export_path=str(export_path)).is_available() is True

    def test_missing_file(self, tmp_dir):
        source = AppleHealthExportSource(export_path=str(Path(tmp_dir) / "missing.xml"))
        assert source.is_available() is False
        with pytest.raises(SourceUnavailableError):
            source.fetch_records(MetricType.STEPS, None)

    def test_unparseable_file(self, tmp_dir):
        path = Path(tmp_dir) / "export.xml"
        path.write_text("not xml at all", encoding="utf-8")
        source = AppleHealthExportSource(export_path=str(path))
        assert source.is_available() is False
        with pytest.raises(SourceUnavailableError):
            source.fetch_records(MetricType.STEPS, None)


class TestPermissions:
    def test_all_granted_by_default(self, export_path):
        source = AppleHealthExportSource(export_path=str(export_path))
        assert source.list_granted_capabilities() == set(MetricType)

    def test_granted_types_option(self, export_path):
        source = AppleHealthExportSource(export_path=str(export_path), granted_types=["steps", "bogus"])
        assert source.list_granted_capabilities() == {MetricType.STEPS}

    def test_fetch_ungranted_raises(self, export_path):
        source = AppleHealthExportSource(export_path=str(export_path), granted_types=["steps"])
        with pytest.raises(PermissionMissingError):
            source.fetch_records(MetricType.SLEEP, None)


class TestFetch:
    def test_steps_sorted_by_event_time(self, export_path):
        source = AppleHealthExportSource(export_path=str(export_path))
        records = source.fetch_records(MetricType.STEPS, None)
        assert [r.value for r in records] == [1000.0, 500.0]
        assert records[0].end_time == datetime(2026, 1, 1, 8, 5, tzinfo=PST)
        assert records[0].source == "iPhone"
        assert records[0].unit == "count"

    def test_since_is_exclusive(self, export_path):
        source = AppleHealthExportSource(export_path=str(export_path))
        checkpoint = datetime(2026, 1, 1, 8, 5, tzinfo=PST)
        records = source.fetch_records(MetricType.STEPS, checkpoint)
        assert [r.value for r in records] == [500.0]

    def test_since_after_everything(self, export_path):
        source = AppleHealthExportSource(export_path=str(export_path))
        assert source.fetch_records(MetricType.STEPS, datetime(2027, 1, 1, tzinfo=timezone.utc)) == []

    def test_unit_normalisation(self, export_path):
        source = AppleHealthExportSource(export_path=str(export_path))
        (distance,) = source.fetch_records(MetricType.DISTANCE, None)
        assert distance.value == pytest.approx(2.4)
        assert distance.unit == "km"

        (calories,) = source.fetch_records(MetricType.ACTIVE_CALORIES, None)
        assert calories.value == 350.0
        assert calories.unit == "kcal"

        (weight,) = source.fetch_records(MetricType.WEIGHT, None)
        assert weight.value == pytest.approx(72.57, abs=0.01)
        assert weight.unit == "kg"

    def test_sleep_only_asleep_sessions(self, export_path):
        source = AppleHealthExportSource(export_path=str(export_path))
        records = source.fetch_records(MetricType.SLEEP, None)
        assert len(records) == 1
        assert records[0].metadata["duration_minutes"] == 420.0

    def test_type_absent_from_export(self, export_path):
        source = AppleHealthExportSource(export_path=str(export_path))
        assert source.fetch_records(MetricType.HEART_RATE, None) == []

    def test_naive_timestamps_use_assumed_zone(self, tmp_dir):
        path = Path(tmp_dir) / "export.xml"
        path.write_text(
            '<HealthData><Record type="HKQuantityTypeIdentifierHeartRate" value="61" '
            'startDate="2026-01-02 09:00:00" endDate="2026-01-02 09:00:00"/></HealthData>',
            encoding="utf-8",
        )
        source = AppleHealthExportSource(export_path=str(path))
        (rec,) = source.fetch_records(MetricType.HEART_RATE, None)
        assert rec.start_time == datetime(2026, 1, 2, 9, 0, tzinfo=timezone.utc)

    def test_config_schema(self, export_path):
        schema = AppleHealthExportSource(export_path=str(export_path)).get_config_schema()
        assert schema["required"] == ["export_path"]

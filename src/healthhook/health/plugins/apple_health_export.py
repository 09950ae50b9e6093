"""Apple Health export data source (HealthKit-compatible import path).

Reads individual samples from an Apple Health XML export (``export.xml``)
and hands them to the sync engine as ``HealthRecord`` objects.  This is the
most portable way to get HealthKit data off the phone.
"""

from __future__ import annotations

from datetime import datetime, timezone, tzinfo
from pathlib import Path
from typing import Any
from xml.etree import ElementTree as ET

from loguru import logger

from healthhook.core.exceptions import PermissionMissingError, SourceUnavailableError
from healthhook.health.models import HealthRecord, MetricType
from healthhook.health.source import BaseDataSource

HK_TYPES: dict[str, MetricType] = {
    "HKQuantityTypeIdentifierStepCount": MetricType.STEPS,
    "HKCategoryTypeIdentifierSleepAnalysis": MetricType.SLEEP,
    "HKQuantityTypeIdentifierHeartRate": MetricType.HEART_RATE,
    "HKQuantityTypeIdentifierRestingHeartRate": MetricType.RESTING_HEART_RATE,
    "HKQuantityTypeIdentifierActiveEnergyBurned": MetricType.ACTIVE_CALORIES,
    "HKQuantityTypeIdentifierDistanceWalkingRunning": MetricType.DISTANCE,
    "HKQuantityTypeIdentifierFlightsClimbed": MetricType.FLOORS_CLIMBED,
    "HKQuantityTypeIdentifierBodyMass": MetricType.WEIGHT,
}


class AppleHealthExportSource(BaseDataSource):
    """Serve records from an Apple Health export XML file.

    Args:
        export_path: Path to ``export.xml``.
        granted_types: Metric names the user allowed (``["steps", "sleep"]``).
            ``None`` grants every type present in ``HK_TYPES``.
        assume_tz: Zone attached to timestamps that carry no offset.
    """

    name = "apple_health_export"

    def __init__(
        self,
        export_path: str,
        granted_types: list[str] | None = None,
        assume_tz: tzinfo = timezone.utc,
        **config: Any,
    ):
        super().__init__(export_path=export_path, granted_types=granted_types, **config)
        self.export_path = Path(export_path).expanduser()
        self.granted_types = granted_types
        self.assume_tz = assume_tz

    def is_available(self) -> bool:
        if not self.export_path.is_file():
            return False
        try:
            next(ET.iterparse(self.export_path, events=("start",)))
            return True
        except (ET.ParseError, StopIteration, OSError):
            return False

    def get_config_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "export_path": {
                    "type": "string",
                    "description": "Path to Apple Health export.xml file",
                },
                "granted_types": {
                    "type": "array",
                    "items": {"type": "string", "enum": [m.value for m in MetricType]},
                    "description": "Metric types the user allowed; omit to allow all",
                },
            },
            "required": ["export_path"],
        }

    def _granted_capabilities(self) -> set[MetricType]:
        if self.granted_types is None:
            return set(HK_TYPES.values())
        granted: set[MetricType] = set()
        for name in self.granted_types:
            metric = MetricType.from_name(name)
            if metric is None:
                logger.warning(f"{self.name}: ignoring unknown granted type '{name}'")
                continue
            granted.add(metric)
        return granted

    def _fetch(self, metric_type: MetricType, since: datetime | None) -> list[HealthRecord]:
        if metric_type not in self._granted_capabilities():
            raise PermissionMissingError(f"Read access to {metric_type.label} has not been granted")
        if not self.export_path.is_file():
            raise SourceUnavailableError(f"Apple Health export not found: {self.export_path}")

        identifiers = {hk for hk, metric in HK_TYPES.items() if metric is metric_type}
        records: list[HealthRecord] = []
        try:
            for _event, elem in ET.iterparse(self.export_path, events=("end",)):
                if elem.tag != "Record":
                    continue
                if elem.attrib.get("type", "") in identifiers:
                    record = self._to_record(metric_type, elem.attrib)
                    if record is not None and (since is None or record.event_time > since):
                        records.append(record)
                elem.clear()
        except ET.ParseError as e:
            raise SourceUnavailableError(f"Invalid Apple Health export {self.export_path}: {e}") from e

        records.sort(key=lambda r: r.event_time)
        return records

    def _to_record(self, metric_type: MetricType, attrs: dict[str, str]) -> HealthRecord | None:
        start = self._parse_health_datetime(attrs.get("startDate", ""))
        if start is None:
            return None
        end = self._parse_health_datetime(attrs.get("endDate", ""))
        value_raw = attrs.get("value", "")
        unit = (attrs.get("unit", "") or "").strip()
        metadata: dict[str, Any] = {}

        value: float | str | None
        if metric_type is MetricType.SLEEP:
            if not self._is_sleep_asleep(value_raw):
                return None
            value = value_raw
            if end is not None and end > start:
                metadata["duration_minutes"] = round((end - start).total_seconds() / 60.0, 1)
        elif metric_type is MetricType.DISTANCE:
            value, unit = self._to_km(self._to_float(value_raw), unit), "km"
        elif metric_type is MetricType.ACTIVE_CALORIES:
            value, unit = self._to_kcal(self._to_float(value_raw), unit), "kcal"
        elif metric_type is MetricType.WEIGHT:
            value, unit = round(self._to_kg(self._to_float(value_raw), unit), 2), "kg"
        else:
            value = self._to_float(value_raw)

        return HealthRecord(
            metric_type=metric_type,
            start_time=start,
            end_time=end,
            value=value,
            unit=unit or None,
            source=attrs.get("sourceName") or None,
            metadata=metadata,
        )

    def _parse_health_datetime(self, value: str) -> datetime | None:
        if not value:
            return None
        formats = [
            "%Y-%m-%d %H:%M:%S %z",
            "%Y-%m-%d %H:%M:%S",
            "%Y-%m-%dT%H:%M:%S%z",
            "%Y-%m-%dT%H:%M:%S",
        ]
        for fmt in formats:
            try:
                parsed = datetime.strptime(value, fmt)
            except ValueError:
                continue
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=self.assume_tz)
            return parsed
        return None

    @staticmethod
    def _to_float(value: str) -> float | None:
        try:
            return float(value)
        except (TypeError, ValueError):
            return None

    @staticmethod
    def _to_km(value: float | None, unit: str) -> float:
        if value is None:
            return 0.0
        u = unit.lower()
        if u in {"m", "meter", "meters"}:
            return value / 1000.0
        if u in {"mi", "mile", "miles"}:
            return value * 1.60934
        return value

    @staticmethod
    def _to_kcal(value: float | None, unit: str) -> float:
        if value is None:
            return 0.0
        if unit.lower() in {"cal", "smallcalorie"}:
            return value / 1000.0
        return value

    @staticmethod
    def _to_kg(value: float | None, unit: str) -> float:
        if value is None:
            return 0.0
        u = unit.lower()
        if u in {"lb", "lbs", "pound", "pounds"}:
            return value * 0.45359237
        if u == "g":
            return value / 1000.0
        return value

    @staticmethod
    def _is_sleep_asleep(value: str) -> bool:
        v = value.lower()
        return "asleep" in v and "awake" not in v

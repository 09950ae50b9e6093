"""
Health data models.

``MetricType`` enumerates every kind of record the engine can sync; each
member carries the capability identifier a data source grants for it and a
human-readable label.  ``HealthRecord`` is the single record shape data
sources hand to the sync engine.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any

# ── Metric types ─────────────────────────────────────────────────────


class MetricType(StrEnum):
    """Syncable metric kinds.  Declaration order is the sync order."""

    STEPS = "steps"
    SLEEP = "sleep"
    HEART_RATE = "heart_rate"
    RESTING_HEART_RATE = "resting_heart_rate"
    ACTIVE_CALORIES = "active_calories"
    DISTANCE = "distance"
    FLOORS_CLIMBED = "floors_climbed"
    WEIGHT = "weight"

    @property
    def capability(self) -> str:
        """Stable permission identifier, e.g. ``health.read.steps``."""
        return f"health.read.{self.value}"

    @property
    def label(self) -> str:
        return _LABELS[self]

    @classmethod
    def from_name(cls, name: str) -> MetricType | None:
        """Look up by member name (``"STEPS"``) or value (``"steps"``); None if unknown."""
        try:
            return cls[name]
        except KeyError:
            pass
        try:
            return cls(name)
        except ValueError:
            return None

    @classmethod
    def from_capability(cls, capability: str) -> MetricType | None:
        for member in cls:
            if member.capability == capability:
                return member
        return None


_LABELS: dict[MetricType, str] = {
    MetricType.STEPS: "Steps",
    MetricType.SLEEP: "Sleep",
    MetricType.HEART_RATE: "Heart Rate",
    MetricType.RESTING_HEART_RATE: "Resting Heart Rate",
    MetricType.ACTIVE_CALORIES: "Active Calories",
    MetricType.DISTANCE: "Distance",
    MetricType.FLOORS_CLIMBED: "Floors Climbed",
    MetricType.WEIGHT: "Weight",
}


def sort_metric_types(types: set[MetricType] | list[MetricType]) -> list[MetricType]:
    """Return ``types`` in declaration order, deduplicated."""
    wanted = set(types)
    return [member for member in MetricType if member in wanted]


# ── Records ──────────────────────────────────────────────────────────


@dataclass
class HealthRecord:
    """One sample or session read from a data source.

    ``start_time``/``end_time`` are timezone-aware.  Point samples
    (weight, resting heart rate) may leave ``end_time`` unset.
    """

    metric_type: MetricType
    start_time: datetime
    end_time: datetime | None = None
    value: float | str | None = None
    unit: str | None = None
    source: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def event_time(self) -> datetime:
        """The instant compared against a sync checkpoint."""
        return self.end_time or self.start_time

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.metric_type.value,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "value": self.value,
            "unit": self.unit,
            "source": self.source,
            "metadata": dict(self.metadata),
        }

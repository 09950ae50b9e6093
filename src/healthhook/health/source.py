"""
HealthDataSource protocol and base class.

Any local health-data provider (an Apple Health export, a device bridge,
a test double, …) implements this interface so the sync engine can treat
them uniformly.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from loguru import logger

from .models import HealthRecord, MetricType


@runtime_checkable
class HealthDataSource(Protocol):
    """Protocol that every health data source must satisfy."""

    name: str

    def is_available(self) -> bool:
        """Whether the provider is installed and reachable at all."""
        ...

    def list_granted_capabilities(self) -> set[MetricType]:
        """Metric types the user has granted read access to.

        Must fail closed: return an empty set rather than raise.
        """
        ...

    def fetch_records(self, metric_type: MetricType, since: datetime | None) -> list[HealthRecord]:
        """Records of ``metric_type`` whose event time is strictly after ``since``.

        ``since=None`` means "from the beginning".  May raise
        ``PermissionMissingError`` or ``SourceUnavailableError``.
        """
        ...


class BaseDataSource(ABC):
    """Optional ABC providing shared plumbing for data sources.

    Subclass this for stats tracking and the fail-closed capability
    wrapper, or just implement the ``HealthDataSource`` protocol directly.
    """

    name: str = "base"

    def __init__(self, **config: Any):
        self.config = config
        self.stats: dict[str, int] = {"fetches": 0, "records": 0, "errors": 0}

    def is_available(self) -> bool:
        return True

    def list_granted_capabilities(self) -> set[MetricType]:
        try:
            return set(self._granted_capabilities())
        except Exception as e:
            self.stats["errors"] += 1
            logger.warning(f"{self.name}: could not read granted capabilities: {e}")
            return set()

    def fetch_records(self, metric_type: MetricType, since: datetime | None) -> list[HealthRecord]:
        self.stats["fetches"] += 1
        try:
            records = self._fetch(metric_type, since)
        except Exception:
            self.stats["errors"] += 1
            raise
        if since is not None:
            records = [r for r in records if r.event_time > since]
        self.stats["records"] += len(records)
        return records

    @abstractmethod
    def _granted_capabilities(self) -> set[MetricType]:
        """Source-specific capability lookup; may raise."""

    @abstractmethod
    def _fetch(self, metric_type: MetricType, since: datetime | None) -> list[HealthRecord]:
        """Source-specific record read.  Filtering by ``since`` is re-applied by the caller."""

    def get_config_schema(self) -> dict[str, Any]:
        """Override to advertise required config keys."""
        return {}

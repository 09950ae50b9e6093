"""
Health data models and the data-source abstraction.

Sources are plain synchronous classes; the sync engine runs their fetches
in a worker thread.  Additional sources are discovered through the
``healthhook.data_sources`` entry-point group.
"""

from .models import HealthRecord, MetricType, sort_metric_types
from .permissions import PermissionRequestSlot
from .registry import DataSourceRegistry
from .source import BaseDataSource, HealthDataSource

__all__ = [
    "BaseDataSource",
    "DataSourceRegistry",
    "HealthDataSource",
    "HealthRecord",
    "MetricType",
    "PermissionRequestSlot",
    "sort_metric_types",
]

"""healthhook — incremental health-data sync and webhook delivery engine."""

__version__ = "0.1.0"

from .core.config import Config, get_config
from .health.models import HealthRecord, MetricType
from .service import SyncService
from .store.models import ScheduledTrigger, WebhookEndpoint
from .sync.models import NoData, SyncError, SyncErrorKind, SyncSuccess

__all__ = [
    "Config",
    "HealthRecord",
    "MetricType",
    "NoData",
    "ScheduledTrigger",
    "SyncError",
    "SyncErrorKind",
    "SyncService",
    "SyncSuccess",
    "WebhookEndpoint",
    "__version__",
    "get_config",
]

"""SyncService — wires store, data source, delivery and scheduling together.

This is the surface a host application talks to::

    service = SyncService.from_config(Config("healthhook.yaml"))
    service.start()                       # inside a running event loop
    outcome = await service.sync_now()
    print(service.describe(outcome))

All components remain reachable as attributes for hosts that need finer
control (e.g. ``service.store.set_endpoints(...)``).
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime
from typing import Any

import httpx
from loguru import logger

from healthhook.core.config import Config, get_config
from healthhook.core.exceptions import ConfigurationError
from healthhook.core.utils.async_helpers import run_async_safely
from healthhook.core.utils.logging import setup_logging
from healthhook.health.models import MetricType
from healthhook.health.permissions import PermissionRequestSlot
from healthhook.health.plugins.apple_health_export import AppleHealthExportSource
from healthhook.health.registry import DataSourceRegistry
from healthhook.health.source import HealthDataSource
from healthhook.scheduling.backends import TriggerBackend, create_backend
from healthhook.scheduling.trigger_scheduler import TriggerScheduler
from healthhook.store.models import DeliveryLogEntry, ScheduledTrigger, validate_interval_minutes
from healthhook.store.preferences import PreferenceStore
from healthhook.sync.delivery import DeliveryEngine
from healthhook.sync.models import SyncError, SyncErrorKind, SyncOutcome, describe
from healthhook.sync.orchestrator import SyncOrchestrator

ResultCallback = Callable[[SyncOutcome], None]


class SyncService:
    """Facade over the sync engine.

    Args:
        store: Persistent preferences.
        source: Health data provider.
        delivery: Webhook delivery engine.
        backend: Trigger backend the scheduler registers jobs with.
    """

    def __init__(
        self,
        store: PreferenceStore,
        source: HealthDataSource,
        delivery: DeliveryEngine,
        backend: TriggerBackend,
    ):
        self.store = store
        self.source = source
        self.delivery = delivery
        self.backend = backend
        self.orchestrator = SyncOrchestrator(store, source, delivery)
        self.scheduler = TriggerScheduler(store, self.orchestrator.perform_sync, backend)
        self.permissions = PermissionRequestSlot()
        self._retry_task: asyncio.Task | None = None

    @classmethod
    def from_config(
        cls,
        config: Config | None = None,
        *,
        configure_logging: bool = True,
        source: HealthDataSource | None = None,
        backend: TriggerBackend | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> SyncService:
        """Build a service from configuration.  Explicit components override config."""
        config = config or get_config()
        settings = config.validated()
        if configure_logging:
            setup_logging(
                level=settings.logging.level,
                log_file=settings.logging.file or None,
                scheduler_level=settings.logging.scheduler_level,
            )
        config.ensure_directories()

        store = PreferenceStore(settings.paths.store_file, log_capacity=settings.delivery.log_capacity)
        if source is None:
            registry = DataSourceRegistry()
            registry.register(AppleHealthExportSource.name, AppleHealthExportSource)
            registry.discover()
            try:
                source = registry.create(settings.source.name, **settings.source.options)
            except (KeyError, TypeError) as e:
                raise ConfigurationError(f"Cannot create data source {settings.source.name!r}: {e}") from e
        delivery = DeliveryEngine(
            store.add_log,
            client=client,
            timeout_seconds=settings.delivery.timeout_seconds,
            max_attempts=settings.delivery.max_attempts,
            initial_backoff_ms=settings.delivery.initial_backoff_ms,
        )
        if backend is None:
            backend = create_backend(
                settings.scheduler.alarm_policy,
                settings.scheduler.timezone,
                misfire_grace_seconds=settings.scheduler.misfire_grace_seconds,
                interval_jitter_seconds=settings.scheduler.interval_jitter_seconds,
            )
        logger.debug(f"SyncService built: source={source.name}, store={store.path}")
        return cls(store, source, delivery, backend)

    # ── Lifecycle ──────────────────────────────────────────────────

    def start(self) -> None:
        """Start firing triggers and restore them once per process.

        Must be called from a running asyncio event loop.
        """
        self.scheduler.reconcile_on_startup()
        self.backend.start()

    async def shutdown(self) -> None:
        self.backend.shutdown()
        if self._retry_task is not None and not self._retry_task.done():
            await self._retry_task
        await self.delivery.aclose()
        logger.info("SyncService shut down")

    # ── Syncing ────────────────────────────────────────────────────

    async def sync_now(self, *, wait: bool = True) -> SyncOutcome:
        return await self.orchestrator.perform_sync(wait=wait)

    def sync_now_blocking(self) -> SyncOutcome:
        """Run a sync from synchronous code."""
        return run_async_safely(self.sync_now())

    @staticmethod
    def describe(outcome: SyncOutcome) -> str:
        return describe(outcome)

    def last_sync(self) -> tuple[datetime | None, str]:
        return self.store.get_last_sync()

    def delivery_logs(self) -> list[DeliveryLogEntry]:
        return self.store.get_logs()

    # ── Modes & triggers ───────────────────────────────────────────

    def use_interval_mode(self, minutes: int) -> None:
        """Switch to interval mode.  Raises ConfigInvalidError before anything changes."""
        validate_interval_minutes(minutes)
        self.scheduler.activate_interval_mode(minutes)

    def use_scheduled_mode(self) -> None:
        self.scheduler.activate_scheduled_mode()

    def add_trigger(self, hour: int, minute: int, label: str = "", enabled: bool = True) -> ScheduledTrigger:
        return self.scheduler.add_trigger(hour, minute, label=label, enabled=enabled)

    def update_trigger(self, trigger: ScheduledTrigger) -> bool:
        return self.scheduler.update_trigger(trigger)

    def set_trigger_enabled(self, trigger_id: str, enabled: bool) -> bool:
        return self.scheduler.set_trigger_enabled(trigger_id, enabled)

    def remove_trigger(self, trigger_id: str) -> bool:
        return self.scheduler.remove_trigger(trigger_id)

    def pending_jobs(self) -> dict[str, datetime | None]:
        return self.scheduler.pending_jobs()

    # ── Permission retry ───────────────────────────────────────────

    def retry_after_permission(self, on_result: ResultCallback) -> None:
        """Sync again once the host reports the user's permission answer.

        Only one retry is pending at a time; a newer request replaces it.
        """

        def _on_granted(granted: set[MetricType]) -> None:
            self._retry_task = asyncio.get_running_loop().create_task(self._retry(granted, on_result))

        self.permissions.register(_on_granted)

    async def permissions_resolved(self, granted: set[MetricType]) -> bool:
        """Report the permission answer; runs the pending retry to completion.

        Returns False if no retry was pending.
        """
        if not self.permissions.resolve(granted):
            return False
        if self._retry_task is not None:
            await self._retry_task
        return True

    async def _retry(self, granted: set[MetricType], on_result: ResultCallback) -> None:
        if granted:
            outcome: SyncOutcome = await self.sync_now()
        else:
            outcome = SyncError(SyncErrorKind.PERMISSION_MISSING, "Health data permissions were not granted")
        try:
            on_result(outcome)
        except Exception as e:
            logger.error(f"Permission retry callback failed: {e}")

    def status(self) -> dict[str, Any]:
        when, summary = self.store.get_last_sync()
        return {
            "source": self.source.name,
            "mode": type(self.store.get_sync_mode()).__name__,
            "pending_jobs": sorted(self.backend.pending_ids()),
            "last_sync_time": when.isoformat() if when else None,
            "last_sync_summary": summary,
            "sync_in_progress": self.orchestrator.in_progress,
        }

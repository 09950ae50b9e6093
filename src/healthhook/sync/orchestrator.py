"""SyncOrchestrator — one incremental sync pass across all enabled metric types.

For each enabled, granted type the orchestrator reads its checkpoint,
fetches the records that arrived after it, and delivers them as a
per-type webhook payload.  A type's checkpoint advances only after its own
delivery succeeded, so failed types are retried on the next trigger.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime, timezone

from loguru import logger

from healthhook.core.exceptions import PermissionMissingError, SourceUnavailableError
from healthhook.health.models import HealthRecord, MetricType
from healthhook.health.source import HealthDataSource
from healthhook.store.preferences import PreferenceStore

from .delivery import DeliveryEngine
from .models import NoData, SyncError, SyncErrorKind, SyncOutcome, SyncSuccess
from .payload import build_payload, encode_payload

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SyncOrchestrator:
    """Run sync passes; at most one pass is in flight at a time.

    Args:
        store: Settings, checkpoints and last-sync info.
        source: Health data provider.
        delivery: Webhook delivery engine.
        clock: Returns the current timezone-aware time (for testing).
    """

    def __init__(
        self,
        store: PreferenceStore,
        source: HealthDataSource,
        delivery: DeliveryEngine,
        clock: Clock = _utcnow,
    ) -> None:
        self.store = store
        self.source = source
        self.delivery = delivery
        self._clock = clock
        self._lock = asyncio.Lock()

    @property
    def in_progress(self) -> bool:
        return self._lock.locked()

    async def perform_sync(self, *, wait: bool = True) -> SyncOutcome:
        """Run one sync pass.

        A call that arrives while another pass is running waits for it to
        finish (``wait=True``) or is rejected with ``SYNC_IN_PROGRESS``.
        """
        if not wait and self._lock.locked():
            logger.info("Sync already in progress; request rejected")
            return SyncError(SyncErrorKind.SYNC_IN_PROGRESS, "A sync is already running")
        async with self._lock:
            outcome = await self._sync_once()
        if isinstance(outcome, SyncSuccess):
            logger.info(f"Sync complete: {outcome.summary}")
        elif isinstance(outcome, NoData):
            logger.info("Sync complete: no new data")
        else:
            logger.warning(f"Sync failed ({outcome.kind.value}): {outcome.message}")
        return outcome

    async def _sync_once(self) -> SyncOutcome:
        enabled = self.store.get_enabled_types()
        endpoints = self.store.get_endpoints()
        if not endpoints:
            return SyncError(SyncErrorKind.NO_ENDPOINTS_CONFIGURED, "No webhook URLs configured")
        if not enabled:
            logger.debug("No metric types enabled")
            return NoData()

        if not await asyncio.to_thread(self.source.is_available):
            return SyncError(SyncErrorKind.SOURCE_UNAVAILABLE, "Health data source is not available")
        granted = await asyncio.to_thread(self.source.list_granted_capabilities)
        queried = [m for m in enabled if m in granted]
        if not queried:
            return SyncError(SyncErrorKind.PERMISSION_MISSING, "Health data permissions have not been granted")
        skipped = [m.name for m in enabled if m not in granted]
        if skipped:
            logger.info(f"Skipping types without permission: {', '.join(skipped)}")

        fetched: list[tuple[MetricType, list[HealthRecord], datetime, datetime | None]] = []
        for metric in queried:
            checkpoint = self.store.get_checkpoint(metric)
            fetched_at = self._clock()
            try:
                records = await asyncio.to_thread(self.source.fetch_records, metric, checkpoint)
            except PermissionMissingError as e:
                logger.warning(f"Permission revoked for {metric.name}, skipping: {e}")
                continue
            except SourceUnavailableError as e:
                return SyncError(SyncErrorKind.SOURCE_UNAVAILABLE, str(e) or "Health data source is not available")
            logger.debug(f"Fetched {len(records)} {metric.name} record(s) since {checkpoint}")
            fetched.append((metric, records, fetched_at, checkpoint))

        if not any(records for _, records, _, _ in fetched):
            return NoData()

        counts: dict[MetricType, int] = {}
        last_failure: SyncError | None = None
        for metric, records, fetched_at, checkpoint in fetched:
            if not records:
                continue
            body = encode_payload(build_payload(metric, records, fetched_at))
            outcome = await self.delivery.deliver(
                endpoints, body, data_type=metric.label, record_count=len(records)
            )
            if isinstance(outcome, SyncError):
                logger.warning(f"Delivery of {len(records)} {metric.name} record(s) failed: {outcome.message}")
                last_failure = outcome
                continue
            advanced = fetched_at if checkpoint is None else max(checkpoint, fetched_at)
            self.store.set_checkpoint(metric, advanced)
            counts[metric] = len(records)

        if not counts and last_failure is not None:
            return SyncError(
                SyncErrorKind.ALL_DELIVERIES_FAILED,
                last_failure.message,
                last_error=last_failure.last_error,
            )

        success = SyncSuccess(counts=counts)
        self.store.set_last_sync(self._clock(), success.summary)
        return success

"""TriggerScheduler — keeps the backend's pending jobs in line with the sync mode.

Two disjoint job sets exist:

- Interval mode: one recurring job, ``interval-sync``.
- Scheduled mode: one single-shot job per enabled trigger, keyed
  ``scheduled-sync:<trigger id>``.  Each fire runs a sync to completion
  and then arms the next daily occurrence, so the chain never overlaps.

The preference store is the source of truth; the scheduler holds no state
of its own and every operation first persists, then adjusts the backend.
"""

from __future__ import annotations

import threading
from collections.abc import Awaitable, Callable
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any

from loguru import logger

from healthhook.store.models import IntervalMode, ScheduledMode, ScheduledTrigger, validate_interval_minutes
from healthhook.store.preferences import KEY_SCHEDULED_SYNCS, PreferenceStore

from .backends import TriggerBackend

INTERVAL_JOB_ID = "interval-sync"
SCHEDULED_JOB_PREFIX = "scheduled-sync:"

SyncFn = Callable[[], Awaitable[Any]]
Clock = Callable[[], datetime]

_startup_lock = threading.Lock()
_startup_reconciled = False


def reset_startup_state() -> None:
    """Forget that startup reconciliation ran (for testing)."""
    global _startup_reconciled
    with _startup_lock:
        _startup_reconciled = False


def _as_list(raw: Any) -> list:
    return list(raw) if isinstance(raw, list) else []


def scheduled_job_id(trigger_id: str) -> str:
    return f"{SCHEDULED_JOB_PREFIX}{trigger_id}"


def next_fire_time(hour: int, minute: int, now: datetime) -> datetime:
    """Today at ``hour:minute:00`` if strictly after ``now``, else the same time tomorrow.

    Arithmetic is on wall-clock time in ``now``'s zone, so a 08:00 trigger
    stays at 08:00 across DST changes.
    """
    candidate = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


class TriggerScheduler:
    """Mode state machine over a :class:`TriggerBackend`.

    Args:
        store: Persists mode, interval and triggers.
        sync_fn: Awaitable that runs one sync pass (e.g. ``orchestrator.perform_sync``).
        backend: Where jobs are registered.
        clock: Returns the current aware time (defaults to now in the backend's zone).
    """

    def __init__(
        self,
        store: PreferenceStore,
        sync_fn: SyncFn,
        backend: TriggerBackend,
        clock: Clock | None = None,
    ):
        self.store = store
        self.backend = backend
        self._sync_fn = sync_fn
        self._clock = clock or (lambda: datetime.now(backend.timezone))
        # Backends that skip late fires report them so the daily chain can be re-armed.
        if getattr(backend, "on_missed", False) is None:
            backend.on_missed = self.handle_missed

    # ── Modes ──────────────────────────────────────────────────────

    def activate_interval_mode(self, minutes: int) -> None:
        """Persist interval mode and replace all scheduled jobs with the interval job."""
        minutes = validate_interval_minutes(minutes)
        self.store.set_sync_mode(IntervalMode(minutes))
        self._cancel_scheduled_jobs()
        self._register_interval(minutes)
        logger.info(f"Interval sync mode active: every {minutes} min")

    def activate_scheduled_mode(self) -> None:
        """Persist scheduled mode, drop the interval job and arm every enabled trigger."""
        self.store.set_sync_mode(ScheduledMode())
        self.backend.cancel(INTERVAL_JOB_ID)
        triggers = [t for t in self.store.get_triggers() if t.enabled]
        for trigger in triggers:
            self._register_trigger(trigger)
        logger.info(f"Scheduled sync mode active with {len(triggers)} trigger(s)")

    def set_interval_minutes(self, minutes: int) -> None:
        minutes = validate_interval_minutes(minutes)
        self.store.set_interval_minutes(minutes)
        if isinstance(self.store.get_sync_mode(), IntervalMode):
            self._register_interval(minutes)

    # ── Trigger CRUD ───────────────────────────────────────────────

    def add_trigger(self, hour: int, minute: int, label: str = "", enabled: bool = True) -> ScheduledTrigger:
        trigger = ScheduledTrigger.create(hour, minute, label=label, enabled=enabled)
        self.store.update(KEY_SCHEDULED_SYNCS, lambda raw: [*_as_list(raw), trigger.to_dict()])
        logger.info(f"Added scheduled sync {trigger.display_label} ({trigger.id})")
        self._apply(trigger)
        return trigger

    def update_trigger(self, trigger: ScheduledTrigger) -> bool:
        """Replace the stored trigger with the same id.  Returns False if unknown."""
        found = False

        def _replace(raw: Any) -> list:
            nonlocal found
            items = []
            for item in _as_list(raw):
                if isinstance(item, dict) and item.get("id") == trigger.id:
                    found = True
                    items.append(trigger.to_dict())
                else:
                    items.append(item)
            return items

        self.store.update(KEY_SCHEDULED_SYNCS, _replace)
        if not found:
            logger.warning(f"Scheduled sync {trigger.id} not found; nothing updated")
            return False
        self._apply(trigger)
        return True

    def set_trigger_enabled(self, trigger_id: str, enabled: bool) -> bool:
        trigger = self.store.get_trigger(trigger_id)
        if trigger is None:
            return False
        return self.update_trigger(replace(trigger, enabled=enabled))

    def remove_trigger(self, trigger_id: str) -> bool:
        removed = False

        def _drop(raw: Any) -> list:
            nonlocal removed
            items = _as_list(raw)
            kept = [item for item in items if not (isinstance(item, dict) and item.get("id") == trigger_id)]
            removed = len(kept) != len(items)
            return kept

        self.store.update(KEY_SCHEDULED_SYNCS, _drop)
        self.backend.cancel(scheduled_job_id(trigger_id))
        if removed:
            logger.info(f"Removed scheduled sync {trigger_id}")
        return removed

    # ── Reconciliation ─────────────────────────────────────────────

    def desired_job_ids(self) -> set[str]:
        mode = self.store.get_sync_mode()
        if isinstance(mode, IntervalMode):
            return {INTERVAL_JOB_ID}
        return {scheduled_job_id(t.id) for t in self.store.get_triggers() if t.enabled}

    def reconcile(self) -> None:
        """Make pending jobs match exactly what the persisted mode asks for."""
        mode = self.store.get_sync_mode()
        desired = self.desired_job_ids()
        orphans = self.backend.pending_ids() - desired
        for job_id in orphans:
            self.backend.cancel(job_id)
        if isinstance(mode, IntervalMode):
            self._register_interval(mode.period_minutes)
        else:
            for trigger in self.store.get_triggers():
                if trigger.enabled:
                    self._register_trigger(trigger)
        logger.info(f"Reconciled triggers: {len(desired)} pending, {len(orphans)} orphan(s) cancelled")

    def reconcile_on_startup(self) -> bool:
        """Run :meth:`reconcile` once per process.  Later calls return False."""
        global _startup_reconciled
        with _startup_lock:
            if _startup_reconciled:
                logger.debug("Startup reconciliation already done")
                return False
            _startup_reconciled = True
        self.reconcile()
        return True

    def pending_jobs(self) -> dict[str, datetime | None]:
        """Pending job ids mapped to their next fire time."""
        return {job_id: self.backend.next_run_time(job_id) for job_id in sorted(self.backend.pending_ids())}

    # ── Firing ─────────────────────────────────────────────────────

    async def _fire_interval(self) -> None:
        logger.debug("Interval sync fired")
        await self._run_sync(INTERVAL_JOB_ID)

    async def _fire_scheduled(self, trigger_id: str) -> None:
        logger.debug(f"Scheduled sync fired: {trigger_id}")
        await self._run_sync(scheduled_job_id(trigger_id))
        self._rearm(trigger_id)

    async def _run_sync(self, job_id: str) -> None:
        try:
            await self._sync_fn()
        except Exception as e:
            logger.error(f"Sync triggered by {job_id} raised: {e}")

    def handle_missed(self, job_id: str) -> None:
        """Re-arm a daily trigger whose fire was skipped by the backend."""
        if job_id.startswith(SCHEDULED_JOB_PREFIX):
            self._rearm(job_id[len(SCHEDULED_JOB_PREFIX) :])

    def _rearm(self, trigger_id: str) -> None:
        if not isinstance(self.store.get_sync_mode(), ScheduledMode):
            return
        trigger = self.store.get_trigger(trigger_id)
        if trigger is None or not trigger.enabled:
            logger.debug(f"Scheduled sync {trigger_id} gone or disabled; not re-arming")
            return
        self._register_trigger(trigger)

    # ── Registration helpers ───────────────────────────────────────

    def _apply(self, trigger: ScheduledTrigger) -> None:
        if trigger.enabled and isinstance(self.store.get_sync_mode(), ScheduledMode):
            self._register_trigger(trigger)
        else:
            self.backend.cancel(scheduled_job_id(trigger.id))

    def _register_interval(self, minutes: int) -> None:
        self.backend.schedule_interval(INTERVAL_JOB_ID, minutes, self._fire_interval)

    def _register_trigger(self, trigger: ScheduledTrigger) -> None:
        run_at = next_fire_time(trigger.hour, trigger.minute, self._clock())
        self.backend.schedule_once(scheduled_job_id(trigger.id), run_at, self._fire_scheduled, args=(trigger.id,))
        logger.debug(f"Armed scheduled sync {trigger.display_label} for {run_at.isoformat()}")

    def _cancel_scheduled_jobs(self) -> None:
        for job_id in self.backend.pending_ids():
            if job_id.startswith(SCHEDULED_JOB_PREFIX):
                self.backend.cancel(job_id)

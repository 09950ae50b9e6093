"""Trigger backends — where the scheduler's jobs actually live.

The ``TriggerScheduler`` decides *which* jobs should exist; a backend owns
*how* they fire.  Two firing policies are provided on top of APScheduler's
``AsyncIOScheduler``:

- ``PreciseTriggerBackend``: one-shot jobs have no misfire limit, so a fire
  that is late (process suspended, loop blocked) still runs as soon as
  possible.  Intervals are exact.
- ``BestEffortTriggerBackend``: one-shots older than the grace window are
  skipped and reported through ``on_missed`` so the caller can re-arm the
  next occurrence; intervals get jitter to spread load.

APScheduler is imported lazily (in :meth:`APSchedulerBackend._ensure`) so
the module can be imported without pulling the scheduler in.  Jobs may be
added before :meth:`start`; APScheduler keeps them pending until then.
"""

from __future__ import annotations

import zoneinfo
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from datetime import datetime, tzinfo
from typing import Any

from loguru import logger

from healthhook.core.exceptions import ConfigurationError

JobFn = Callable[..., Awaitable[None]]
MissedFn = Callable[[str], None]

POLICY_PRECISE = "precise"
POLICY_BEST_EFFORT = "best_effort"


def resolve_timezone(name: str | None) -> tzinfo:
    """``zoneinfo`` zone for ``name``; the host's local zone when empty."""
    if not name:
        from tzlocal import get_localzone

        return get_localzone()
    try:
        return zoneinfo.ZoneInfo(name)
    except (zoneinfo.ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigurationError(f"Unknown timezone {name!r}") from e


class TriggerBackend(ABC):
    """Registry of pending jobs keyed by id.  Re-using an id replaces the job."""

    timezone: tzinfo

    @abstractmethod
    def start(self, paused: bool = False) -> None: ...

    @abstractmethod
    def shutdown(self) -> None: ...

    @abstractmethod
    def schedule_interval(self, job_id: str, minutes: int, func: JobFn, args: tuple = ()) -> None:
        """Run ``func(*args)`` every ``minutes``, first fire one period from now."""

    @abstractmethod
    def schedule_once(self, job_id: str, run_at: datetime, func: JobFn, args: tuple = ()) -> None:
        """Run ``func(*args)`` once at ``run_at``."""

    @abstractmethod
    def cancel(self, job_id: str) -> bool:
        """Remove a pending job.  Returns False if there was none."""

    @abstractmethod
    def pending_ids(self) -> set[str]: ...

    @abstractmethod
    def next_run_time(self, job_id: str) -> datetime | None: ...


class APSchedulerBackend(TriggerBackend):
    """Shared ``AsyncIOScheduler`` plumbing.  Subclasses choose trigger options.

    Args:
        timezone: Zone used for trigger arithmetic.
        scheduler: Pre-built APScheduler instance (for testing).
    """

    policy = ""

    def __init__(self, timezone: tzinfo, scheduler: Any = None):
        self.timezone = timezone
        self._scheduler: Any = scheduler  # AsyncIOScheduler, lazily created

    def _ensure(self) -> Any:
        if self._scheduler is None:
            from apscheduler.schedulers.asyncio import AsyncIOScheduler

            self._scheduler = AsyncIOScheduler(timezone=self.timezone)
            self._configure(self._scheduler)
        return self._scheduler

    def _configure(self, scheduler: Any) -> None:
        """Hook for subclasses to attach listeners to a freshly created scheduler."""

    @property
    def apscheduler(self) -> Any:
        """The raw APScheduler instance (created on first use)."""
        return self._ensure()

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    # ── Lifecycle ──────────────────────────────────────────────────

    def start(self, paused: bool = False) -> None:
        """Start firing.  Must be called from a running asyncio event loop."""
        scheduler = self._ensure()
        if scheduler.running:
            return
        scheduler.start(paused=paused)
        logger.info(f"{type(self).__name__} started with {len(scheduler.get_jobs())} job(s), tz={self.timezone}")

    def shutdown(self) -> None:
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info(f"{type(self).__name__} shut down")

    # ── Jobs ───────────────────────────────────────────────────────

    @abstractmethod
    def _interval_trigger(self, minutes: int) -> Any: ...

    @abstractmethod
    def _once_options(self) -> dict[str, Any]: ...

    def _add_job(self, job_id: str, func: JobFn, trigger: Any, args: tuple, **options: Any) -> None:
        scheduler = self._ensure()
        if not scheduler.running:
            # Before start APScheduler queues duplicates instead of replacing.
            self.cancel(job_id)
        scheduler.add_job(func, trigger=trigger, id=job_id, args=list(args), replace_existing=True, **options)

    def schedule_interval(self, job_id: str, minutes: int, func: JobFn, args: tuple = ()) -> None:
        self._add_job(job_id, func, self._interval_trigger(minutes), args, coalesce=True, max_instances=1)
        logger.debug(f"Registered interval job {job_id}: every {minutes} min")

    def schedule_once(self, job_id: str, run_at: datetime, func: JobFn, args: tuple = ()) -> None:
        from apscheduler.triggers.date import DateTrigger

        self._add_job(job_id, func, DateTrigger(run_date=run_at, timezone=self.timezone), args, **self._once_options())
        logger.debug(f"Registered one-shot job {job_id} at {run_at.isoformat()}")

    def cancel(self, job_id: str) -> bool:
        from apscheduler.jobstores.base import JobLookupError

        try:
            self._ensure().remove_job(job_id)
        except JobLookupError:
            return False
        logger.debug(f"Cancelled job {job_id}")
        return True

    def pending_ids(self) -> set[str]:
        return {job.id for job in self._ensure().get_jobs()}

    def next_run_time(self, job_id: str) -> datetime | None:
        job = self._ensure().get_job(job_id)
        if job is None:
            return None
        # Jobs added before start() have no next_run_time yet.
        when = getattr(job, "next_run_time", None)
        if when is None and job.pending:
            when = job.trigger.get_next_fire_time(None, datetime.now(self.timezone))
        return when


class PreciseTriggerBackend(APSchedulerBackend):
    """Late one-shots always run; intervals are exact."""

    policy = POLICY_PRECISE

    def _interval_trigger(self, minutes: int) -> Any:
        from apscheduler.triggers.interval import IntervalTrigger

        return IntervalTrigger(minutes=minutes, timezone=self.timezone)

    def _once_options(self) -> dict[str, Any]:
        return {"misfire_grace_time": None, "coalesce": True}


class BestEffortTriggerBackend(APSchedulerBackend):
    """Late one-shots beyond the grace window are skipped and reported.

    Args:
        timezone: Zone used for trigger arithmetic.
        misfire_grace_seconds: How late a one-shot may still run.
        interval_jitter_seconds: Random spread added to each interval fire.
        on_missed: Called with the job id of every skipped fire.
        scheduler: Pre-built APScheduler instance (for testing).
    """

    policy = POLICY_BEST_EFFORT

    def __init__(
        self,
        timezone: tzinfo,
        misfire_grace_seconds: int = 900,
        interval_jitter_seconds: int = 60,
        on_missed: MissedFn | None = None,
        scheduler: Any = None,
    ):
        self.misfire_grace_seconds = misfire_grace_seconds
        self.interval_jitter_seconds = interval_jitter_seconds
        self.on_missed = on_missed
        super().__init__(timezone, scheduler)
        if scheduler is not None:
            self._configure(scheduler)

    def _configure(self, scheduler: Any) -> None:
        from apscheduler.events import EVENT_JOB_MISSED

        scheduler.add_listener(self._job_missed, EVENT_JOB_MISSED)

    def _job_missed(self, event: Any) -> None:
        logger.warning(f"Job {event.job_id} missed its run time {event.scheduled_run_time}")
        if self.on_missed is None:
            return
        try:
            self.on_missed(event.job_id)
        except Exception as e:
            logger.error(f"on_missed handler failed for {event.job_id}: {e}")

    def _interval_trigger(self, minutes: int) -> Any:
        from apscheduler.triggers.interval import IntervalTrigger

        return IntervalTrigger(
            minutes=minutes,
            timezone=self.timezone,
            jitter=self.interval_jitter_seconds or None,
        )

    def _once_options(self) -> dict[str, Any]:
        return {"misfire_grace_time": self.misfire_grace_seconds, "coalesce": True}


def create_backend(
    policy: str = POLICY_PRECISE,
    timezone: tzinfo | str | None = None,
    *,
    misfire_grace_seconds: int = 900,
    interval_jitter_seconds: int = 60,
    on_missed: MissedFn | None = None,
) -> APSchedulerBackend:
    """Build the backend for ``policy`` (``"precise"`` or ``"best_effort"``)."""
    tz = timezone if isinstance(timezone, tzinfo) else resolve_timezone(timezone)
    if policy == POLICY_PRECISE:
        return PreciseTriggerBackend(tz)
    if policy == POLICY_BEST_EFFORT:
        return BestEffortTriggerBackend(
            tz,
            misfire_grace_seconds=misfire_grace_seconds,
            interval_jitter_seconds=interval_jitter_seconds,
            on_missed=on_missed,
        )
    raise ConfigurationError(f"Unknown alarm policy {policy!r}; expected 'precise' or 'best_effort'")

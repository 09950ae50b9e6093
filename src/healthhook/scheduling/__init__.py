"""When syncs run: mode state machine plus APScheduler-backed trigger backends."""

from .backends import (
    APSchedulerBackend,
    BestEffortTriggerBackend,
    PreciseTriggerBackend,
    TriggerBackend,
    create_backend,
    resolve_timezone,
)
from .trigger_scheduler import (
    INTERVAL_JOB_ID,
    SCHEDULED_JOB_PREFIX,
    TriggerScheduler,
    next_fire_time,
    reset_startup_state,
    scheduled_job_id,
)

__all__ = [
    "INTERVAL_JOB_ID",
    "SCHEDULED_JOB_PREFIX",
    "APSchedulerBackend",
    "BestEffortTriggerBackend",
    "PreciseTriggerBackend",
    "TriggerBackend",
    "TriggerScheduler",
    "create_backend",
    "next_fire_time",
    "reset_startup_state",
    "resolve_timezone",
    "scheduled_job_id",
]

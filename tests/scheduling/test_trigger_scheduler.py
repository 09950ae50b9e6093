"""Tests for scheduling.trigger_scheduler — mode state machine and daily chains."""

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from healthhook.core.exceptions import ConfigInvalidError
from healthhook.scheduling.backends import BestEffortTriggerBackend, TriggerBackend
from healthhook.scheduling.trigger_scheduler import (
    INTERVAL_JOB_ID,
    TriggerScheduler,
    next_fire_time,
    reset_startup_state,
    scheduled_job_id,
)
from healthhook.store.models import IntervalMode, ScheduledMode

UTC = timezone.utc


@pytest.fixture(autouse=True)
def _reset_startup():
    reset_startup_state()
    yield
    reset_startup_state()


class FakeBackend(TriggerBackend):
    """Records registrations; tests fire jobs by hand."""

    def __init__(self, tz=UTC):
        self.timezone = tz
        self.jobs: dict[str, dict] = {}
        self.started = False

    def start(self, paused=False):
        self.started = True

    def shutdown(self):
        self.started = False

    def schedule_interval(self, job_id, minutes, func, args=()):
        self.jobs[job_id] = {"kind": "interval", "minutes": minutes, "func": func, "args": args}

    def schedule_once(self, job_id, run_at, func, args=()):
        self.jobs[job_id] = {"kind": "once", "run_at": run_at, "func": func, "args": args}

    def cancel(self, job_id):
        return self.jobs.pop(job_id, None) is not None

    def pending_ids(self):
        return set(self.jobs)

    def next_run_time(self, job_id):
        job = self.jobs.get(job_id)
        return job.get("run_at") if job else None

    async def fire(self, job_id):
        job = self.jobs[job_id]
        if job["kind"] == "once":
            del self.jobs[job_id]
        await job["func"](*job["args"])


class Clock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return Clock(datetime(2026, 3, 2, 10, 0, tzinfo=UTC))


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def syncs():
    return []


@pytest.fixture
def scheduler(store, backend, clock, syncs):
    async def sync_fn():
        syncs.append(clock())

    return TriggerScheduler(store, sync_fn, backend, clock=clock)


@pytest.mark.smoke
class TestNextFireTime:
    def test_past_time_rolls_to_tomorrow(self):
        now = datetime(2026, 3, 2, 10, 0, tzinfo=UTC)
        assert next_fire_time(8, 0, now) == datetime(2026, 3, 3, 8, 0, tzinfo=UTC)

    def test_future_time_is_today(self):
        now = datetime(2026, 3, 2, 6, 0, tzinfo=UTC)
        assert next_fire_time(7, 0, now) == datetime(2026, 3, 2, 7, 0, tzinfo=UTC)

    def test_exactly_now_rolls_forward(self):
        now = datetime(2026, 3, 2, 8, 0, tzinfo=UTC)
        assert next_fire_time(8, 0, now) == datetime(2026, 3, 3, 8, 0, tzinfo=UTC)

    def test_seconds_are_zeroed(self):
        now = datetime(2026, 3, 2, 7, 59, 59, 500000, tzinfo=UTC)
        assert next_fire_time(8, 0, now) == datetime(2026, 3, 2, 8, 0, tzinfo=UTC)

    def test_wall_clock_kept_across_dst(self):
        tz = ZoneInfo("America/New_York")
        now = datetime(2026, 3, 7, 9, 0, tzinfo=tz)
        fire = next_fire_time(8, 0, now)
        assert (fire.day, fire.hour, fire.minute) == (8, 8, 0)
        assert fire.utcoffset() == timedelta(hours=-4)


class TestModes:
    def test_interval_mode(self, scheduler, store, backend):
        scheduler.activate_interval_mode(30)

        assert backend.pending_ids() == {INTERVAL_JOB_ID}
        assert backend.jobs[INTERVAL_JOB_ID]["minutes"] == 30
        assert store.get_sync_mode() == IntervalMode(30)

    def test_interval_below_minimum_rejected(self, scheduler, store, backend):
        with pytest.raises(ConfigInvalidError):
            scheduler.activate_interval_mode(10)
        assert backend.pending_ids() == set()
        assert store.get_raw("sync_mode") is None

    def test_interval_reregistration_replaces(self, scheduler, store, backend):
        scheduler.activate_interval_mode(30)
        scheduler.set_interval_minutes(45)
        assert backend.pending_ids() == {INTERVAL_JOB_ID}
        assert backend.jobs[INTERVAL_JOB_ID]["minutes"] == 45
        assert store.get_interval_minutes() == 45

    def test_scheduled_mode_cancels_interval(self, scheduler, store, backend):
        scheduler.activate_interval_mode(30)
        morning = scheduler.add_trigger(8, 0)
        scheduler.add_trigger(20, 0, enabled=False)

        scheduler.activate_scheduled_mode()

        assert backend.pending_ids() == {scheduled_job_id(morning.id)}
        assert store.get_sync_mode() == ScheduledMode()

    def test_interval_mode_cancels_scheduled(self, scheduler, backend):
        scheduler.activate_scheduled_mode()
        scheduler.add_trigger(8, 0)
        scheduler.add_trigger(9, 0)

        scheduler.activate_interval_mode(60)

        assert backend.pending_ids() == {INTERVAL_JOB_ID}

    def test_interval_change_in_scheduled_mode_not_armed(self, scheduler, store, backend):
        scheduler.activate_scheduled_mode()
        scheduler.set_interval_minutes(30)
        assert INTERVAL_JOB_ID not in backend.pending_ids()
        assert store.get_interval_minutes() == 30


class TestTriggers:
    def test_add_arms_next_occurrence(self, scheduler, backend):
        scheduler.activate_scheduled_mode()
        trigger = scheduler.add_trigger(8, 0, label="Morning")

        assert backend.next_run_time(scheduled_job_id(trigger.id)) == datetime(2026, 3, 3, 8, 0, tzinfo=UTC)

    def test_add_in_interval_mode_only_persists(self, scheduler, store, backend):
        scheduler.activate_interval_mode(60)
        trigger = scheduler.add_trigger(8, 0)

        assert store.get_trigger(trigger.id) == trigger
        assert backend.pending_ids() == {INTERVAL_JOB_ID}

    def test_disable_cancels_only_its_job(self, scheduler, backend):
        scheduler.activate_scheduled_mode()
        a = scheduler.add_trigger(8, 0)
        b = scheduler.add_trigger(9, 0)

        assert scheduler.set_trigger_enabled(a.id, False) is True
        assert backend.pending_ids() == {scheduled_job_id(b.id)}

        scheduler.set_trigger_enabled(a.id, True)
        assert backend.pending_ids() == {scheduled_job_id(a.id), scheduled_job_id(b.id)}

    def test_remove_cancels_only_its_job(self, scheduler, store, backend):
        scheduler.activate_scheduled_mode()
        a = scheduler.add_trigger(8, 0)
        b = scheduler.add_trigger(9, 0)

        assert scheduler.remove_trigger(a.id) is True
        assert backend.pending_ids() == {scheduled_job_id(b.id)}
        assert [t.id for t in store.get_triggers()] == [b.id]

    def test_remove_unknown(self, scheduler):
        assert scheduler.remove_trigger("missing") is False
        assert scheduler.set_trigger_enabled("missing", True) is False

    def test_update_reschedules(self, scheduler, backend):
        from dataclasses import replace

        scheduler.activate_scheduled_mode()
        trigger = scheduler.add_trigger(8, 0)

        assert scheduler.update_trigger(replace(trigger, hour=11, minute=30)) is True
        assert backend.next_run_time(scheduled_job_id(trigger.id)) == datetime(2026, 3, 2, 11, 30, tzinfo=UTC)

    def test_update_unknown(self, scheduler):
        from healthhook.store.models import ScheduledTrigger

        assert scheduler.update_trigger(ScheduledTrigger.create(8, 0)) is False

    def test_pending_jobs(self, scheduler):
        scheduler.activate_scheduled_mode()
        trigger = scheduler.add_trigger(7, 15)
        assert scheduler.pending_jobs() == {
            scheduled_job_id(trigger.id): datetime(2026, 3, 3, 7, 15, tzinfo=UTC),
        }


class TestFiring:
    async def test_fire_syncs_then_rearms_for_tomorrow(self, scheduler, backend, clock, syncs):
        scheduler.activate_scheduled_mode()
        trigger = scheduler.add_trigger(8, 0)
        job_id = scheduled_job_id(trigger.id)

        clock.now = datetime(2026, 3, 3, 8, 0, 1, tzinfo=UTC)
        await backend.fire(job_id)

        assert len(syncs) == 1
        assert backend.next_run_time(job_id) == datetime(2026, 3, 4, 8, 0, tzinfo=UTC)

    async def test_rearm_waits_for_sync(self, store, backend, clock):
        seen_during_sync = []

        async def sync_fn():
            seen_during_sync.append(set(backend.pending_ids()))

        scheduler = TriggerScheduler(store, sync_fn, backend, clock=clock)
        scheduler.activate_scheduled_mode()
        trigger = scheduler.add_trigger(8, 0)

        await backend.fire(scheduled_job_id(trigger.id))

        assert seen_during_sync == [set()]
        assert backend.pending_ids() == {scheduled_job_id(trigger.id)}

    async def test_sync_error_still_rearms(self, store, backend, clock):
        async def failing_sync():
            raise RuntimeError("boom")

        scheduler = TriggerScheduler(store, failing_sync, backend, clock=clock)
        scheduler.activate_scheduled_mode()
        trigger = scheduler.add_trigger(8, 0)

        await backend.fire(scheduled_job_id(trigger.id))

        assert scheduled_job_id(trigger.id) in backend.pending_ids()

    async def test_no_rearm_after_disable(self, store, backend, clock):
        scheduler_ref = {}

        async def sync_fn():
            scheduler_ref["s"].set_trigger_enabled(scheduler_ref["id"], False)

        scheduler = TriggerScheduler(store, sync_fn, backend, clock=clock)
        scheduler.activate_scheduled_mode()
        trigger = scheduler.add_trigger(8, 0)
        scheduler_ref.update(s=scheduler, id=trigger.id)

        await backend.fire(scheduled_job_id(trigger.id))

        assert backend.pending_ids() == set()

    async def test_no_rearm_after_mode_switch(self, store, backend, clock):
        holder = {}

        async def sync_fn():
            holder["s"].activate_interval_mode(60)

        scheduler = TriggerScheduler(store, sync_fn, backend, clock=clock)
        holder["s"] = scheduler
        scheduler.activate_scheduled_mode()
        trigger = scheduler.add_trigger(8, 0)

        await backend.fire(scheduled_job_id(trigger.id))

        assert backend.pending_ids() == {INTERVAL_JOB_ID}

    async def test_interval_fire_syncs(self, scheduler, backend, syncs):
        scheduler.activate_interval_mode(15)
        await backend.fire(INTERVAL_JOB_ID)
        await backend.fire(INTERVAL_JOB_ID)
        assert len(syncs) == 2
        assert backend.pending_ids() == {INTERVAL_JOB_ID}

    def test_missed_fire_rearms(self, scheduler, backend):
        scheduler.activate_scheduled_mode()
        trigger = scheduler.add_trigger(8, 0)
        job_id = scheduled_job_id(trigger.id)
        backend.cancel(job_id)

        scheduler.handle_missed(job_id)

        assert job_id in backend.pending_ids()

    def test_missed_interval_ignored(self, scheduler, backend):
        scheduler.handle_missed(INTERVAL_JOB_ID)
        assert backend.pending_ids() == set()

    def test_best_effort_backend_reports_misses(self, store):
        async def sync_fn():
            return None

        backend = BestEffortTriggerBackend(UTC)
        scheduler = TriggerScheduler(store, sync_fn, backend)
        assert backend.on_missed == scheduler.handle_missed


class TestReconcile:
    def test_cancels_orphans_and_registers_desired(self, scheduler, store, backend):
        trigger = scheduler.add_trigger(8, 0)
        store.set_sync_mode(ScheduledMode())
        backend.schedule_once(scheduled_job_id("ghost"), datetime(2026, 3, 3, tzinfo=UTC), None)
        backend.schedule_interval(INTERVAL_JOB_ID, 60, None)

        scheduler.reconcile()

        assert backend.pending_ids() == {scheduled_job_id(trigger.id)}

    def test_interval_mode_from_store(self, scheduler, store, backend):
        store.set_sync_mode(IntervalMode(20))
        scheduler.reconcile()
        assert backend.pending_ids() == {INTERVAL_JOB_ID}
        assert backend.jobs[INTERVAL_JOB_ID]["minutes"] == 20

    def test_desired_matches_pending(self, scheduler, store, backend):
        scheduler.add_trigger(8, 0)
        scheduler.add_trigger(9, 0, enabled=False)
        store.set_sync_mode(ScheduledMode())

        scheduler.reconcile()

        assert backend.pending_ids() == scheduler.desired_job_ids()
        assert len(backend.pending_ids()) == 1

    def test_startup_runs_once(self, scheduler, store, backend):
        store.set_sync_mode(IntervalMode(60))

        assert scheduler.reconcile_on_startup() is True
        backend.cancel(INTERVAL_JOB_ID)
        assert scheduler.reconcile_on_startup() is False
        assert backend.pending_ids() == set()

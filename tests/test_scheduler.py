"""
Tests for the job scheduler and cadence parsing: cron and interval triggers,
independent cadences, run_on_start, graceful stop.
"""

from __future__ import annotations

import threading
import time
from datetime import datetime, timedelta

import pytest
import pytz
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from relay_indexer.indexers import RunResult, RunStatus, ScheduledJob
from relay_indexer.scheduler import Scheduler, build_trigger


class CountingJob(ScheduledJob):
    def __init__(self, name: str, *, fail: bool = False, work_sec: float = 0.0) -> None:
        super().__init__(name)
        self.count = 0
        self.fail = fail
        self.work_sec = work_sec
        self.finished = threading.Event()
        self.ran = threading.Event()

    def _execute(self) -> RunResult:
        self.count += 1
        self.ran.set()
        if self.work_sec:
            time.sleep(self.work_sec)
        self.finished.set()
        if self.fail:
            raise RuntimeError("boom")
        return RunResult(job=self.name, status=RunStatus.COMPLETED)


def _wait_for(predicate, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


def test_run_on_start_runs_immediately():
    scheduler = Scheduler()
    job = CountingJob("a")
    scheduler.add(job, 60, run_on_start=True)
    scheduler.start()
    try:
        assert job.ran.wait(timeout=5)
    finally:
        scheduler.stop()
    assert job.count == 1


def test_waits_one_interval_without_run_on_start():
    scheduler = Scheduler()
    job = CountingJob("a")
    scheduler.add(job, 60)
    scheduler.start()
    time.sleep(0.1)
    scheduler.stop()
    assert job.count == 0


def test_jobs_run_on_independent_cadences():
    scheduler = Scheduler()
    fast = CountingJob("fast")
    slow = CountingJob("slow")
    scheduler.add(fast, 0.02, run_on_start=True)
    scheduler.add(slow, 60, run_on_start=True)
    scheduler.start()
    try:
        assert _wait_for(lambda: fast.count >= 3)
    finally:
        scheduler.stop()
    assert slow.count == 1
    assert scheduler.entries["fast"].runs >= 3
    assert scheduler.entries["fast"].last_result.status is RunStatus.COMPLETED


def test_failing_job_keeps_schedule():
    scheduler = Scheduler()
    job = CountingJob("flaky", fail=True)
    scheduler.add(job, 0.02, run_on_start=True)
    scheduler.start()
    try:
        assert _wait_for(lambda: job.count >= 2)
    finally:
        scheduler.stop()
    assert scheduler.entries["flaky"].last_result.status is RunStatus.FAILED


def test_stop_waits_for_in_flight_run():
    """stop() returns only after the current run has finished its work."""
    scheduler = Scheduler()
    job = CountingJob("slow", work_sec=0.3)
    scheduler.add(job, 60, run_on_start=True)
    scheduler.start()
    assert job.ran.wait(timeout=5)
    scheduler.stop(wait=True)
    assert job.finished.is_set()
    assert not scheduler.is_running
    assert job.count == 1


def test_add_validation():
    scheduler = Scheduler()
    scheduler.add(CountingJob("a"), 1)
    with pytest.raises(ValueError):
        scheduler.add(CountingJob("a"), 1)
    with pytest.raises(ValueError):
        scheduler.add(CountingJob("b"), 0)
    scheduler.start()
    try:
        assert scheduler.is_running
        with pytest.raises(RuntimeError):
            scheduler.add(CountingJob("c"), 1)
        with pytest.raises(RuntimeError):
            scheduler.start()
    finally:
        scheduler.stop()


def test_shared_stop_event():
    stop = threading.Event()
    scheduler = Scheduler(stop_event=stop)
    job = CountingJob("a")
    scheduler.add(job, 0.02, run_on_start=True)
    scheduler.start()
    assert job.ran.wait(timeout=5)
    stop.set()
    scheduler.stop()
    assert scheduler.stop_event is stop


def test_daily_cron_fires_at_one_am():
    trigger = build_trigger("0 1 * * *")
    assert isinstance(trigger, CronTrigger)
    now = pytz.utc.localize(datetime(2026, 1, 1, 12, 0))
    assert trigger.get_next_fire_time(None, now) == pytz.utc.localize(datetime(2026, 1, 2, 1, 0))


def test_six_field_cron_has_leading_seconds():
    trigger = build_trigger("*/30 * * * * *")
    now = pytz.utc.localize(datetime(2026, 1, 1, 12, 0, 5))
    assert trigger.get_next_fire_time(None, now) == pytz.utc.localize(datetime(2026, 1, 1, 12, 0, 30))


def test_cron_respects_timezone():
    berlin = pytz.timezone("Europe/Berlin")
    trigger = build_trigger("0 1 * * *", timezone=berlin)
    now = pytz.utc.localize(datetime(2026, 1, 1, 12, 0))
    fire = trigger.get_next_fire_time(None, now)
    assert fire.astimezone(pytz.utc) == pytz.utc.localize(datetime(2026, 1, 2, 0, 0))


def test_plain_seconds_become_interval():
    trigger = build_trigger("30")
    assert isinstance(trigger, IntervalTrigger)
    assert trigger.interval == timedelta(seconds=30)
    assert build_trigger(0.5).interval == timedelta(seconds=0.5)


@pytest.mark.parametrize("cadence", ["* * * *", "every minute", "61 * * * *", "-5", True, None])
def test_invalid_cadence_rejected(cadence):
    with pytest.raises(ValueError):
        build_trigger(cadence)


def test_cron_job_next_run_time():
    scheduler = Scheduler()
    scheduler.add(CountingJob("nightly"), "0 1 * * *")
    scheduler.start()
    try:
        next_run = scheduler.next_run_time("nightly")
        assert (next_run.hour, next_run.minute, next_run.second) == (1, 0, 0)
        assert next_run > datetime.now(pytz.utc)
    finally:
        scheduler.stop()
    assert scheduler.entries["nightly"].runs == 0

"""
Job scheduler: every registered job fires on its own cron (or interval) trigger.

Backed by an APScheduler BackgroundScheduler. Each job is added with
max_instances=1 and coalesce=True, so a slow escrow scan never overlaps
itself and missed fires collapse into one run; other jobs keep their own
cadence. stop() sets the shared stop event (no new runs) and shuts the
scheduler down with wait=True so in-flight runs finish. A failing run is
logged and the job keeps its schedule.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, tzinfo

import pytz
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.base import BaseTrigger

from relay_indexer.indexers.base import RunResult, ScheduledJob
from relay_indexer.logging import get_logger
from relay_indexer.scheduler.triggers import Cadence, build_trigger

logger = get_logger(__name__)

JOB_DEFAULTS = {
    "max_instances": 1,
    "coalesce": True,
    "misfire_grace_time": None,
}


@dataclass
class ScheduleEntry:
    """A job, its cadence and run bookkeeping."""

    job: ScheduledJob
    cadence: Cadence
    trigger: BaseTrigger
    run_on_start: bool = False
    runs: int = 0
    last_result: RunResult | None = None


class Scheduler:
    """Runs ScheduledJobs on independent triggers until stopped."""

    def __init__(
        self,
        *,
        stop_event: threading.Event | None = None,
        timezone: tzinfo | None = None,
    ) -> None:
        self._stop_event = stop_event or threading.Event()
        self._timezone = timezone or pytz.utc
        self._scheduler = BackgroundScheduler(timezone=self._timezone, job_defaults=dict(JOB_DEFAULTS))
        self._entries: dict[str, ScheduleEntry] = {}
        self._started = False

    @property
    def stop_event(self) -> threading.Event:
        return self._stop_event

    @property
    def entries(self) -> dict[str, ScheduleEntry]:
        return dict(self._entries)

    @property
    def is_running(self) -> bool:
        return self._started and self._scheduler.running and not self._stop_event.is_set()

    def add(self, job: ScheduledJob, cadence: Cadence, *, run_on_start: bool = False) -> ScheduleEntry:
        """Register a job; names must be unique. Must be called before start()."""
        if self._started:
            raise RuntimeError("Cannot add jobs after the scheduler has started")
        if job.name in self._entries:
            raise ValueError(f"Job already scheduled: {job.name}")
        trigger = build_trigger(cadence, timezone=self._timezone)
        entry = ScheduleEntry(job=job, cadence=cadence, trigger=trigger, run_on_start=run_on_start)
        self._entries[job.name] = entry
        return entry

    def next_run_time(self, name: str) -> datetime | None:
        scheduled = self._scheduler.get_job(name)
        return scheduled.next_run_time if scheduled else None

    def start(self) -> None:
        if self._started:
            raise RuntimeError("Scheduler already started")
        self._started = True
        for name, entry in self._entries.items():
            options = {}
            if entry.run_on_start:
                options["next_run_time"] = datetime.now(self._timezone)
            self._scheduler.add_job(
                self._run_entry,
                trigger=entry.trigger,
                args=(entry,),
                id=name,
                name=name,
                **options,
            )
        self._scheduler.start()
        for name, entry in self._entries.items():
            logger.info(
                "job_scheduled",
                job=name,
                cadence=str(entry.cadence),
                run_on_start=entry.run_on_start,
                next_run_time=str(self.next_run_time(name)),
            )

    def stop(self, *, wait: bool = True) -> None:
        """Stop scheduling new runs; with wait=True block until in-flight runs finish."""
        self._stop_event.set()
        if self._started and self._scheduler.running:
            self._scheduler.shutdown(wait=wait)
        logger.info("scheduler_stopped", jobs=len(self._entries), waited=wait)

    def _run_entry(self, entry: ScheduleEntry) -> None:
        if self._stop_event.is_set():
            return
        try:
            entry.last_result = entry.job.run()
            entry.runs += 1
        except Exception as e:
            # run() already isolates job errors; this guards the executor thread
            logger.exception("job_tick_failed", job=entry.job.name, error=str(e))

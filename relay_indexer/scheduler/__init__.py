# Job scheduling: APScheduler triggers per job, independent cadences, cooperative stop.

from relay_indexer.scheduler.engine import (
    ScheduleEntry,
    Scheduler,
)
from relay_indexer.scheduler.triggers import (
    Cadence,
    build_trigger,
)

__all__ = [
    "Cadence",
    "ScheduleEntry",
    "Scheduler",
    "build_trigger",
]

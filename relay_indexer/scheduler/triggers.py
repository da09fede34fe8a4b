"""
Cadence expressions to APScheduler triggers.

Accepted forms:
- 5-field crontab: "*/2 * * * *" (minute hour day month day_of_week)
- 6-field crontab with a leading seconds field: "*/30 * * * * *"
- plain seconds: 30, 0.5 or "30" (fixed interval, mostly for tests and backfills)
"""

from __future__ import annotations

from datetime import tzinfo
from typing import Union

import pytz
from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

Cadence = Union[str, int, float, BaseTrigger]

MIN_INTERVAL_SEC = 0.01


def build_trigger(cadence: Cadence, *, timezone: tzinfo | None = None) -> BaseTrigger:
    """Return a trigger for cadence; raises ValueError if it cannot be parsed."""
    tz = timezone or pytz.utc
    if isinstance(cadence, BaseTrigger):
        return cadence
    if isinstance(cadence, (int, float)) and not isinstance(cadence, bool):
        return _interval(float(cadence), tz)
    if not isinstance(cadence, str):
        raise ValueError(f"Unsupported cadence: {cadence!r}")
    expr = cadence.strip()
    try:
        seconds = float(expr)
    except ValueError:
        seconds = None
    if seconds is not None:
        return _interval(seconds, tz)
    fields = expr.split()
    if len(fields) == 5:
        return CronTrigger.from_crontab(expr, timezone=tz)
    if len(fields) == 6:
        second, minute, hour, day, month, day_of_week = fields
        return CronTrigger(
            second=second,
            minute=minute,
            hour=hour,
            day=day,
            month=month,
            day_of_week=day_of_week,
            timezone=tz,
        )
    raise ValueError(f"Cron expression must have 5 or 6 fields, got {len(fields)}: {cadence!r}")


def _interval(seconds: float, tz: tzinfo) -> IntervalTrigger:
    if seconds < MIN_INTERVAL_SEC:
        raise ValueError(f"interval must be >= {MIN_INTERVAL_SEC}s, got {seconds}")
    return IntervalTrigger(seconds=seconds, timezone=tz)

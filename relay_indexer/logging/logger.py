"""
Structured logging for indexer jobs and the reputation engine.

Every record carries an ISO timestamp, level, logger name and a snake_case
event_type, plus keyword context such as indexer=, from_block=, to_block=
or subject_id=. LOG_LEVEL and LOG_FORMAT (json | console) are read from the
environment at import; configure_logging() re-applies them, for loggers
created afterwards.

Only stdlib logging and structlog are imported here, so any relay_indexer
module can import this one first.
"""

from __future__ import annotations

import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, TextIO

import structlog

DEFAULT_LEVEL = "INFO"
DEFAULT_FORMAT = "json"
LOG_FORMATS = ("json", "console")

# Block window keys rendered together as "from-to" for grepping
_WINDOW_KEYS = ("from_block", "to_block")


def _resolve_level(level: str | None) -> int:
    name = (level or os.getenv("LOG_LEVEL") or DEFAULT_LEVEL).strip().upper()
    return getattr(logging, name, logging.INFO)


def _resolve_format(fmt: str | None) -> str:
    value = (fmt or os.getenv("LOG_FORMAT") or DEFAULT_FORMAT).strip().lower()
    return value if value in LOG_FORMATS else DEFAULT_FORMAT


def _add_timestamp(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    event_dict.setdefault("timestamp", datetime.now(timezone.utc).isoformat())
    return event_dict


def _normalize_event(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """structlog's positional 'event' becomes event_type."""
    if "event" in event_dict and "event_type" not in event_dict:
        event_dict["event_type"] = event_dict.pop("event")
    return event_dict


def _add_block_window(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    start, end = (event_dict.get(k) for k in _WINDOW_KEYS)
    if start is not None and end is not None and "window" not in event_dict:
        event_dict["window"] = f"{start}-{end}"
    return event_dict


def configure_logging(
    level: str | None = None,
    fmt: str | None = None,
    *,
    stream: TextIO | None = None,
) -> None:
    """(Re)configure structlog. Arguments fall back to LOG_LEVEL / LOG_FORMAT."""
    renderer: Any
    if _resolve_format(fmt) == "json":
        renderer = structlog.processors.JSONRenderer(default=str)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            _add_timestamp,
            _normalize_event,
            _add_block_window,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(_resolve_level(level)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream or sys.stdout),
        cache_logger_on_first_use=True,
    )


if not structlog.is_configured():
    configure_logging()


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Return a structured logger for the given module name.

        logger = get_logger(__name__)
        logger.info("indexer_run_completed", indexer="escrow_session_events", to_block=1200)

    Do not pass event= or event_type= as keyword context; the first
    positional argument is the event_type.
    """
    return structlog.get_logger(name).bind(logger=name)


def bind_indexer(name: str) -> structlog.BoundLogger:
    """Logger with indexer=name bound, used by every scheduled job."""
    return get_logger("relay_indexer.indexers").bind(indexer=name)

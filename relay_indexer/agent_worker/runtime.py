"""
Long-running indexer process.

Loads settings, builds the indexer suite and keeps every job on its cadence
until SIGINT/SIGTERM. On a signal the scheduler stops starting new runs and
waits for in-flight runs to finish, so no cursor is left half-written.

Usage:
    python -m relay_indexer.agent_worker.runtime run
    python -m relay_indexer.agent_worker.runtime once escrow
    python -m relay_indexer.agent_worker.runtime once all
"""

from __future__ import annotations

import argparse
import json
import signal
import sys
import threading
from typing import Any

from relay_indexer.agent_worker.suite import IndexerSuite
from relay_indexer.config import Settings, get_settings
from relay_indexer.core.exceptions import ConfigurationError, UnknownIndexerError
from relay_indexer.logging import get_logger

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2


def _install_signal_handlers(stop_event: threading.Event) -> None:
    def request_shutdown(signum: int, frame: Any) -> None:
        logger.info("runtime_shutdown_signal", signal=signum)
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            signal.signal(sig, request_shutdown)
        except (AttributeError, ValueError):
            # Windows or not in the main thread
            pass


def run_forever(
    settings: Settings,
    *,
    stop_event: threading.Event | None = None,
    run_on_start: bool = False,
) -> None:
    """Schedule every enabled job and block until stop_event is set."""
    stop_event = stop_event or threading.Event()
    suite = IndexerSuite.from_settings(settings)
    suite.start(run_on_start=run_on_start)
    logger.info("runtime_worker_started", jobs=suite.job_names, network=settings.network)
    try:
        while not stop_event.wait(timeout=1.0):
            pass
    finally:
        suite.stop(wait=True)
        logger.info("runtime_worker_stopped")


def run_once(settings: Settings, name: str) -> bool:
    """Run one job (or 'all') synchronously; True when no run failed."""
    suite = IndexerSuite.from_settings(settings)
    try:
        if name.strip().lower() == "all":
            results = suite.run_all_once()
        else:
            result = suite.run_indexer(name)
            results = {result.job: result}
    finally:
        suite.stop(wait=False)
    print(json.dumps({k: r.to_dict() for k, r in results.items()}, indent=2))
    return all(r.ok for r in results.values())


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="relay-indexer",
        description="Index escrow, USDC and registry events and maintain reputation scores.",
    )
    sub = parser.add_subparsers(dest="command")
    run_p = sub.add_parser("run", help="Run every enabled job on its schedule until stopped")
    run_p.add_argument(
        "--run-on-start",
        action="store_true",
        help="Run each job immediately instead of waiting one interval",
    )
    once_p = sub.add_parser("once", help="Run one indexer (or 'all') once and exit")
    once_p.add_argument("name", help="escrow | usdc | payment | agent | feedback | reputation | all")
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint. Returns 2 on configuration errors, 1 on failed runs."""
    args = _build_parser().parse_args(argv)
    command = args.command or "run"
    try:
        settings = get_settings()
        if command == "once":
            return EXIT_OK if run_once(settings, args.name) else EXIT_FAILED
        stop_event = threading.Event()
        _install_signal_handlers(stop_event)
        run_forever(
            settings,
            stop_event=stop_event,
            run_on_start=getattr(args, "run_on_start", False),
        )
        return EXIT_OK
    except ConfigurationError as e:
        logger.error("runtime_config_error", error=str(e))
        return EXIT_CONFIG
    except UnknownIndexerError as e:
        logger.error("runtime_unknown_indexer", error=str(e))
        return EXIT_CONFIG
    except KeyboardInterrupt:
        logger.info("runtime_shutdown_signal")
        return EXIT_OK
    except Exception as e:
        logger.exception("runtime_fatal", error=str(e))
        return EXIT_FAILED


if __name__ == "__main__":
    sys.exit(main())

"""
Scheduled job state machine and the block-range indexer template.

ScheduledJob.run() never overlaps itself: the lock is acquired non-blocking,
so a run requested while one is in flight returns a SKIPPED result. Errors
are logged, the job goes back to IDLE and the next tick retries.

BlockRangeIndexer.run(): read cursor → plan window → scan → decode → apply →
advance cursor. The cursor is written only after every apply succeeded, so
a failure anywhere leaves it where it was and the same window is re-scanned;
ledger writes are idempotent, which makes that replay harmless.
"""

from __future__ import annotations

import enum
import threading
import time
from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass, field
from typing import Any

from relay_indexer.chain.models import RawLog
from relay_indexer.chain.scanner import LogScanner, TopicFilter
from relay_indexer.core.exceptions import DecodeError
from relay_indexer.database import Database
from relay_indexer.decoders.abi import ChainEvent
from relay_indexer.logging import bind_indexer


class JobState(str, enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    FAILED = "failed"


class RunStatus(str, enum.Enum):
    COMPLETED = "completed"
    SKIPPED = "skipped"
    """A run of the same job was already in flight."""
    NOOP = "noop"
    """Chain has not advanced past the cursor."""
    FAILED = "failed"


@dataclass
class RunResult:
    """Outcome of one job run; returned by run() and kept as job.last_result."""

    job: str
    status: RunStatus
    from_block: int | None = None
    to_block: int | None = None
    processed: int = 0
    """Logs decoded and applied."""
    inserted: int = 0
    """Applied events that created a new row (0 on a replayed window)."""
    decode_errors: int = 0
    events: dict[str, int] = field(default_factory=dict)
    duration_ms: float = 0.0
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status is not RunStatus.FAILED

    def to_dict(self) -> dict[str, Any]:
        return {
            "job": self.job,
            "status": self.status.value,
            "from_block": self.from_block,
            "to_block": self.to_block,
            "processed": self.processed,
            "inserted": self.inserted,
            "decode_errors": self.decode_errors,
            "events": dict(self.events),
            "duration_ms": round(self.duration_ms, 1),
            "error": self.error,
        }


class ScheduledJob(ABC):
    """A named unit of work run on a cadence; never overlaps itself."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._lock = threading.Lock()
        self._state = JobState.IDLE
        self.last_result: RunResult | None = None
        self.last_error: str | None = None
        self.logger = bind_indexer(name)

    @property
    def state(self) -> JobState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is JobState.RUNNING

    def run(self) -> RunResult:
        """Run once; returns SKIPPED immediately if a run is already in flight."""
        if not self._lock.acquire(blocking=False):
            self.logger.debug("indexer_run_skipped_overlap")
            return RunResult(job=self.name, status=RunStatus.SKIPPED)
        started = time.monotonic()
        self._state = JobState.RUNNING
        try:
            result = self._execute()
            self.last_error = None
        except Exception as e:
            self._state = JobState.FAILED
            self.last_error = str(e)
            self.logger.exception("indexer_run_failed", error=str(e), error_type=type(e).__name__)
            result = RunResult(job=self.name, status=RunStatus.FAILED, error=str(e))
        finally:
            self._state = JobState.IDLE
            self._lock.release()
        result.duration_ms = (time.monotonic() - started) * 1000
        self.last_result = result
        return result

    @abstractmethod
    def _execute(self) -> RunResult:
        """One unit of work; exceptions are caught by run()."""
        ...


class BlockRangeIndexer(ScheduledJob):
    """
    Template for contract log indexers.

    Subclasses supply topic filters, a decoder and an apply step that writes
    one decoded event and returns True when it created a new row.
    """

    def __init__(
        self,
        name: str,
        *,
        db: Database,
        scanner: LogScanner,
        contract_address: str,
        start_block: int = 0,
        lookback_blocks: int = 10_000,
    ) -> None:
        super().__init__(name)
        self.db = db
        self.scanner = scanner
        self.contract_address = contract_address.lower()
        self.start_block = start_block
        self.lookback_blocks = lookback_blocks

    @abstractmethod
    def topic_filters(self) -> list[TopicFilter]:
        ...

    @abstractmethod
    def decode(self, log: RawLog, timestamp: int) -> ChainEvent:
        """Decode one log; raise DecodeError to have it skipped."""
        ...

    @abstractmethod
    def apply(self, event: ChainEvent) -> bool:
        ...

    def _execute(self) -> RunResult:
        cursor = self.db.get_cursor(self.name)
        window = self.scanner.next_window(
            cursor.last_block if cursor else None,
            start_block=self.start_block,
            lookback_blocks=self.lookback_blocks,
        )
        if window is None:
            self.logger.debug("indexer_no_new_blocks", last_block=cursor.last_block if cursor else None)
            return RunResult(job=self.name, status=RunStatus.NOOP)

        self.logger.info("indexer_run_started", from_block=window.from_block, to_block=window.to_block)
        logs = self.scanner.scan(self.contract_address, self.topic_filters(), window.from_block, window.to_block)
        timestamps = self.scanner.block_timestamps(logs)

        result = RunResult(
            job=self.name,
            status=RunStatus.COMPLETED,
            from_block=window.from_block,
            to_block=window.to_block,
        )
        events: Counter[str] = Counter()
        for log in logs:
            try:
                event = self.decode(log, timestamps[log.block_number])
            except DecodeError as e:
                result.decode_errors += 1
                self.logger.warning(
                    "indexer_decode_skipped",
                    tx_hash=log.tx_hash,
                    log_index=log.log_index,
                    block_number=log.block_number,
                    error=str(e),
                )
                continue
            if self.apply(event):
                result.inserted += 1
            result.processed += 1
            events[type(event).__name__] += 1
        result.events = dict(events)

        self.db.set_cursor(self.name, window.to_block)
        self.logger.info(
            "indexer_run_completed",
            from_block=window.from_block,
            to_block=window.to_block,
            blocks=window.size,
            logs=len(logs),
            processed=result.processed,
            inserted=result.inserted,
            decode_errors=result.decode_errors,
            events=result.events,
        )
        return result

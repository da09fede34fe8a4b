"""
Tests for the ScheduledJob state machine: overlap guard, failure isolation,
state transitions and run results.
"""

from __future__ import annotations

import threading

from relay_indexer.indexers import JobState, RunResult, RunStatus, ScheduledJob


class BlockingJob(ScheduledJob):
    """Blocks inside _execute until released; records how many runs started."""

    def __init__(self) -> None:
        super().__init__("blocking")
        self.entered = threading.Event()
        self.release = threading.Event()
        self.started = 0

    def _execute(self) -> RunResult:
        self.started += 1
        self.entered.set()
        self.release.wait(timeout=5)
        return RunResult(job=self.name, status=RunStatus.COMPLETED, processed=1)


class FailingJob(ScheduledJob):
    def __init__(self) -> None:
        super().__init__("failing")
        self.calls = 0

    def _execute(self) -> RunResult:
        self.calls += 1
        if self.calls == 1:
            raise RuntimeError("rpc down")
        return RunResult(job=self.name, status=RunStatus.COMPLETED)


def test_overlapping_run_is_skipped():
    """A second run while one is in flight returns SKIPPED without executing."""
    job = BlockingJob()
    results: list[RunResult] = []
    worker = threading.Thread(target=lambda: results.append(job.run()))
    worker.start()
    assert job.entered.wait(timeout=5)
    assert job.state is JobState.RUNNING
    assert job.is_running

    skipped = job.run()
    assert skipped.status is RunStatus.SKIPPED
    assert skipped.ok

    job.release.set()
    worker.join(timeout=5)
    assert job.started == 1
    assert results[0].status is RunStatus.COMPLETED
    assert job.state is JobState.IDLE


def test_failure_returns_to_idle_and_retries():
    job = FailingJob()
    first = job.run()
    assert first.status is RunStatus.FAILED
    assert first.ok is False
    assert first.error == "rpc down"
    assert job.state is JobState.IDLE
    assert job.last_error == "rpc down"

    second = job.run()
    assert second.status is RunStatus.COMPLETED
    assert job.last_error is None
    assert job.last_result is second


def test_run_result_to_dict():
    result = RunResult(
        job="escrow_session_events",
        status=RunStatus.COMPLETED,
        from_block=1,
        to_block=10,
        processed=3,
        inserted=2,
        events={"FundsDeposited": 2},
        duration_ms=12.345,
    )
    data = result.to_dict()
    assert data["status"] == "completed"
    assert data["events"] == {"FundsDeposited": 2}
    assert data["duration_ms"] == 12.3
    assert data["error"] is None


def test_duration_recorded():
    job = FailingJob()
    job.run()
    assert job.last_result.duration_ms >= 0

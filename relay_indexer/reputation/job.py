"""
Scheduled reputation recompute, run alongside the chain indexers.
"""

from __future__ import annotations

from relay_indexer.indexers.base import RunResult, RunStatus, ScheduledJob
from relay_indexer.reputation.engine import ReputationEngine

JOB_NAME = "reputation_calculator"


class ReputationJob(ScheduledJob):
    def __init__(self, engine: ReputationEngine) -> None:
        super().__init__(JOB_NAME)
        self.engine = engine

    def _execute(self) -> RunResult:
        summary = self.engine.recompute_all()
        return RunResult(
            job=self.name,
            status=RunStatus.COMPLETED,
            processed=summary.calculated + summary.defaulted,
            inserted=summary.calculated,
            events={
                "calculated": summary.calculated,
                "defaulted": summary.defaulted,
                "failed": summary.failed,
                "ranked": summary.ranked,
            },
        )

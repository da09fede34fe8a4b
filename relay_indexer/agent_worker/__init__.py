"""
Agent worker package: process-level orchestration of the indexer jobs.

Builds the indexer suite from settings, runs every job on its cadence and
coordinates shutdown. Also exposes a manual trigger for one-off runs.
"""

from relay_indexer.agent_worker.runtime import main, run_forever, run_once
from relay_indexer.agent_worker.suite import INDEXER_ALIASES, IndexerSuite, SuiteJob

__all__ = [
    "INDEXER_ALIASES",
    "IndexerSuite",
    "SuiteJob",
    "main",
    "run_forever",
    "run_once",
]

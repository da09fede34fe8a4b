"""
Reputation engine: payment-outcome metrics, time-decayed composite score, TTL cache.
"""

from relay_indexer.reputation.cache import TTLCache, cache_key
from relay_indexer.reputation.engine import RecomputeSummary, ReputationEngine
from relay_indexer.reputation.job import ReputationJob
from relay_indexer.reputation.scoring import (
    compute_metrics,
    decay_factor,
    default_score,
    feedback_score,
    score_from_metrics,
)

__all__ = [
    "RecomputeSummary",
    "ReputationEngine",
    "ReputationJob",
    "TTLCache",
    "cache_key",
    "compute_metrics",
    "decay_factor",
    "default_score",
    "feedback_score",
    "score_from_metrics",
]

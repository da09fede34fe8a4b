"""
Reputation engine: cached per-subject scoring and batch recompute.

calculate_score() reads payment outcomes, computes the composite score,
persists a versioned snapshot (bounded retry) and caches the result.
recompute_all() walks every active service, bypassing the cache, isolates
per-subject failures, then rebuilds the service ranking table.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable

from relay_indexer.core.exceptions import SnapshotWriteError
from relay_indexer.database import Database, ReputationMetrics, ReputationScore
from relay_indexer.logging import get_logger
from relay_indexer.reputation.cache import DEFAULT_TTL_SEC, TTLCache, cache_key
from relay_indexer.reputation.scoring import (
    DAYS_FOR_FULL_DECAY,
    TIME_DECAY_FACTOR,
    compute_metrics,
    default_score,
    feedback_score,
    score_from_metrics,
)

logger = get_logger(__name__)


@dataclass
class RecomputeSummary:
    """Outcome of one recompute_all() pass."""

    total: int = 0
    calculated: int = 0
    defaulted: int = 0
    """Subjects with no payments (default score, nothing persisted)."""
    failed: int = 0
    ranked: int = 0


class ReputationEngine:
    """
    Computes and persists reputation for services.

    The database and cache are injected; now_fn/sleep_fn exist for tests.
    """

    def __init__(
        self,
        db: Database,
        *,
        cache: TTLCache | None = None,
        cache_ttl_sec: float = DEFAULT_TTL_SEC,
        persist_retries: int = 3,
        retry_delay_sec: float = 1.0,
        time_decay_factor: float = TIME_DECAY_FACTOR,
        days_for_full_decay: int = DAYS_FOR_FULL_DECAY,
        now_fn: Callable[[], float] = time.time,
        sleep_fn: Callable[[float], None] = time.sleep,
    ) -> None:
        self._db = db
        self._cache = cache if cache is not None else TTLCache(cache_ttl_sec)
        self._persist_retries = max(1, persist_retries)
        self._retry_delay = retry_delay_sec
        self._decay_factor = time_decay_factor
        self._days_for_full_decay = days_for_full_decay
        self._now = now_fn
        self._sleep = sleep_fn

    @property
    def cache(self) -> TTLCache:
        return self._cache

    def calculate_score(self, subject_id: str, *, use_cache: bool = True) -> ReputationScore:
        """
        Return the reputation for a subject, from cache when fresh.

        Raises SnapshotWriteError if the snapshot cannot be persisted; the
        score is then not cached either.
        """
        key = cache_key(subject_id)
        if use_cache:
            cached = self._cache.get(key)
            if cached is not None:
                return cached

        score, _ = self._compute(subject_id)
        return score

    def _compute(self, subject_id: str) -> tuple[ReputationScore, ReputationMetrics | None]:
        """Compute, persist and cache one subject. Metrics are None for the default score."""
        key = cache_key(subject_id)
        now_ts = int(self._now())
        payments = self._db.get_payments(subject_id)
        metrics = compute_metrics(payments)
        if metrics is None:
            logger.debug("reputation_no_payments", subject_id=subject_id)
            return default_score(subject_id, now_ts), None

        score = score_from_metrics(
            subject_id,
            metrics,
            now_ts=now_ts,
            feedback_score=self._feedback_score(subject_id, now_ts),
        )
        self._persist(score, metrics)
        self._cache.set(key, score)
        logger.info(
            "reputation_calculated",
            subject_id=subject_id,
            reputation_score=score.reputation_score,
            total_payments=metrics.total_payments,
            recency_weight=round(score.recency_weight, 4),
        )
        return score, metrics

    def invalidate(self, subject_id: str) -> None:
        """Drop the cached score; the next calculate_score() recomputes."""
        self._cache.delete(cache_key(subject_id))

    def recompute_all(self) -> RecomputeSummary:
        """Recompute every active service; one subject failing never aborts the batch."""
        subject_ids = self._db.get_active_service_ids()
        summary = RecomputeSummary(total=len(subject_ids))
        logger.info("reputation_batch_started", count=summary.total)
        for subject_id in subject_ids:
            try:
                _, metrics = self._compute(subject_id)
            except Exception as e:
                summary.failed += 1
                logger.warning(
                    "reputation_subject_failed",
                    subject_id=subject_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                continue
            if metrics is not None:
                summary.calculated += 1
            else:
                summary.defaulted += 1
        summary.ranked = self._db.refresh_service_rankings()
        logger.info(
            "reputation_batch_completed",
            total=summary.total,
            calculated=summary.calculated,
            defaulted=summary.defaulted,
            failed=summary.failed,
            ranked=summary.ranked,
        )
        return summary

    def _feedback_score(self, subject_id: str, now_ts: int) -> float | None:
        service = self._db.get_service(subject_id)
        if service is None or not service.agent_address:
            return None
        records = self._db.get_feedback_for_subject(service.agent_address)
        return feedback_score(
            records,
            now_ts,
            factor=self._decay_factor,
            days_for_full_decay=self._days_for_full_decay,
        )

    def _persist(self, score: ReputationScore, metrics: ReputationMetrics) -> None:
        last_error: Exception | None = None
        for attempt in range(self._persist_retries):
            try:
                self._db.upsert_reputation_score(score, metrics)
                return
            except Exception as e:
                last_error = e
                logger.warning(
                    "reputation_persist_retry",
                    subject_id=score.subject_id,
                    attempt=attempt + 1,
                    max_retries=self._persist_retries,
                    error=str(e),
                )
                if attempt + 1 < self._persist_retries:
                    self._sleep(self._retry_delay)
        raise SnapshotWriteError(
            f"Failed to persist reputation for {score.subject_id} after "
            f"{self._persist_retries} attempts: {last_error}"
        ) from last_error

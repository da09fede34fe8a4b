"""
Reputation score computation: metrics aggregation and component scores.

Pure functions, no I/O. The composite is explainable: a weighted sum of
reliability, speed, volume and repeat-customer rate, scaled by recency.
All component scores are on a 0–100 scale; success_rate is a fraction.
"""

from __future__ import annotations

import math
from decimal import Decimal
from typing import Iterable, Sequence

from relay_indexer.database.models import (
    FeedbackRecord,
    PaymentRecord,
    PaymentStatus,
    ReputationMetrics,
    ReputationScore,
)

CALCULATION_VERSION = 1
SECONDS_PER_DAY = 86_400

# Composite weights
WEIGHT_RELIABILITY = 0.40
WEIGHT_SPEED = 0.25
WEIGHT_VOLUME = 0.20
WEIGHT_REPEAT = 0.15

# Reliability penalty multipliers on the failure / timeout ratios
FAILURE_PENALTY = 2.0
TIMEOUT_PENALTY = 1.5

# Latency thresholds (ms)
EXCELLENT_LATENCY_MS = 1000
GOOD_LATENCY_MS = 3000
ACCEPTABLE_LATENCY_MS = 5000
LATENCY_DECAY_MS = 5000

# Volume scale (payment counts)
MIN_PAYMENTS = 10
MAX_PAYMENTS = 10_000

RECENCY_DECAY_DAYS = 30.0
MIN_RECENCY_WEIGHT = 0.5
MAX_RECENCY_WEIGHT = 1.0

# Feedback time decay
TIME_DECAY_FACTOR = 0.95
DAYS_FOR_FULL_DECAY = 90
FULL_DECAY_WEIGHT = 0.1


def _clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def _percentile_index(n: int, fraction: float) -> int:
    return min(n - 1, int(math.floor(n * fraction)))


def compute_metrics(payments: Sequence[PaymentRecord]) -> ReputationMetrics | None:
    """
    Aggregate payment rows (ordered by block_timestamp) into metrics.

    Latency stats use successful payments with a recorded latency only;
    median is the upper middle element, p95 the element at floor(n * 0.95).
    Returns None for an empty sequence.
    """
    if not payments:
        return None
    successful = [p for p in payments if p.status == PaymentStatus.SUCCESS.value]
    failed = sum(1 for p in payments if p.status == PaymentStatus.FAILED.value)
    timeout = sum(1 for p in payments if p.status == PaymentStatus.TIMEOUT.value)
    latencies = sorted(p.latency_ms for p in successful if p.latency_ms is not None)

    payer_counts: dict[str, int] = {}
    for p in payments:
        payer_counts[p.payer_address] = payer_counts.get(p.payer_address, 0) + 1

    n = len(latencies)
    return ReputationMetrics(
        total_payments=len(payments),
        successful_payments=len(successful),
        failed_payments=failed,
        timeout_payments=timeout,
        avg_latency_ms=(sum(latencies) / n) if n else 0.0,
        median_latency_ms=float(latencies[n // 2]) if n else 0.0,
        p95_latency_ms=float(latencies[_percentile_index(n, 0.95)]) if n else 0.0,
        unique_payers=len(payer_counts),
        repeat_customers=sum(1 for c in payer_counts.values() if c > 1),
        total_volume=sum((Decimal(p.amount) for p in payments), Decimal(0)),
        first_payment_at=payments[0].block_timestamp,
        last_payment_at=payments[-1].block_timestamp,
    )


def success_rate(metrics: ReputationMetrics) -> float:
    if metrics.total_payments <= 0:
        return 0.0
    return metrics.successful_payments / metrics.total_payments


def reliability_score(metrics: ReputationMetrics) -> float:
    """Success rate minus weighted failure/timeout ratios, on 0–100, floored at 0."""
    if metrics.total_payments <= 0:
        return 0.0
    failure_ratio = metrics.failed_payments / metrics.total_payments
    timeout_ratio = metrics.timeout_payments / metrics.total_payments
    penalty = FAILURE_PENALTY * failure_ratio + TIMEOUT_PENALTY * timeout_ratio
    return max(0.0, (success_rate(metrics) - penalty) * 100)


def speed_score(avg_latency_ms: float) -> float:
    """Piecewise on average latency; exponential decay past the acceptable threshold."""
    if avg_latency_ms <= EXCELLENT_LATENCY_MS:
        return 100.0
    if avg_latency_ms <= GOOD_LATENCY_MS:
        return 80.0
    if avg_latency_ms <= ACCEPTABLE_LATENCY_MS:
        return 60.0
    return max(0.0, 60.0 * math.exp(-(avg_latency_ms - ACCEPTABLE_LATENCY_MS) / LATENCY_DECAY_MS))


def volume_score(total_payments: int) -> float:
    """Linear 0→50 below MIN_PAYMENTS, then log10 interpolation 50→100 up to MAX_PAYMENTS."""
    if total_payments < MIN_PAYMENTS:
        return max(0.0, total_payments / MIN_PAYMENTS * 50)
    log_min = math.log10(MIN_PAYMENTS)
    log_max = math.log10(MAX_PAYMENTS)
    return min(100.0, 50 + (math.log10(total_payments) - log_min) / (log_max - log_min) * 50)


def recency_weight(last_payment_at: int, now_ts: int) -> float:
    """e^(-days/30) clamped to [0.5, 1.0]; a future timestamp counts as today."""
    days = max(0.0, (now_ts - last_payment_at) / SECONDS_PER_DAY)
    return _clamp(math.exp(-days / RECENCY_DECAY_DAYS), MIN_RECENCY_WEIGHT, MAX_RECENCY_WEIGHT)


def repeat_customer_rate(metrics: ReputationMetrics) -> float:
    if metrics.unique_payers <= 0:
        return 0.0
    return metrics.repeat_customers / metrics.unique_payers


def composite_score(
    reliability: float,
    speed: float,
    volume: float,
    repeat_rate: float,
    recency: float,
) -> float:
    raw = (
        WEIGHT_RELIABILITY * reliability
        + WEIGHT_SPEED * speed
        + WEIGHT_VOLUME * volume
        + WEIGHT_REPEAT * repeat_rate * 100
    ) * recency
    return _clamp(raw, 0.0, 100.0)


def score_from_metrics(
    subject_id: str,
    metrics: ReputationMetrics,
    *,
    now_ts: int,
    feedback_score: float | None = None,
) -> ReputationScore:
    """
    Build the full ReputationScore for a subject from its metrics.

    Component scores are kept unrounded; the composite is rounded to 2 decimals.
    """
    reliability = reliability_score(metrics)
    speed = speed_score(metrics.avg_latency_ms)
    volume = volume_score(metrics.total_payments)
    recency = recency_weight(metrics.last_payment_at, now_ts)
    score = composite_score(reliability, speed, volume, repeat_customer_rate(metrics), recency)
    return ReputationScore(
        subject_id=subject_id,
        reputation_score=round(score, 2),
        success_rate=success_rate(metrics),
        reliability_score=reliability,
        speed_score=speed,
        volume_score=volume,
        recency_weight=recency,
        calculated_at=now_ts,
        calculation_version=CALCULATION_VERSION,
        feedback_score=feedback_score,
    )


def default_score(subject_id: str, now_ts: int) -> ReputationScore:
    """Score for a subject with no payment history."""
    return ReputationScore(
        subject_id=subject_id,
        reputation_score=0.0,
        success_rate=0.0,
        reliability_score=0.0,
        speed_score=0.0,
        volume_score=0.0,
        recency_weight=1.0,
        calculated_at=now_ts,
        calculation_version=CALCULATION_VERSION,
    )


def decay_factor(
    days_since_event: float,
    *,
    factor: float = TIME_DECAY_FACTOR,
    days_for_full_decay: int = DAYS_FOR_FULL_DECAY,
) -> float:
    """factor^(days/7); 1.0 for events today or in the future, 0.1 once fully decayed."""
    if days_since_event <= 0:
        return 1.0
    if days_since_event >= days_for_full_decay:
        return FULL_DECAY_WEIGHT
    return factor ** (days_since_event / 7)


def feedback_score(
    feedback: Iterable[FeedbackRecord],
    now_ts: int,
    *,
    factor: float = TIME_DECAY_FACTOR,
    days_for_full_decay: int = DAYS_FOR_FULL_DECAY,
) -> float | None:
    """Decay-weighted mean of feedback scores (0–100); None without any feedback."""
    weighted = 0.0
    total_weight = 0.0
    for item in feedback:
        days = (now_ts - item.timestamp) / SECONDS_PER_DAY
        w = decay_factor(days, factor=factor, days_for_full_decay=days_for_full_decay)
        weighted += item.score * w
        total_weight += w
    if total_weight <= 0:
        return None
    return round(weighted / total_weight, 2)

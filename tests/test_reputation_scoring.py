"""
Tests for reputation scoring: metrics aggregation, component scores,
composite bounds and feedback time decay. Pure functions, no DB.
"""

from __future__ import annotations

import math
from decimal import Decimal

import pytest

from relay_indexer.database import FeedbackRecord, PaymentRecord, ReputationMetrics
from relay_indexer.reputation.scoring import (
    SECONDS_PER_DAY,
    WEIGHT_RELIABILITY,
    compute_metrics,
    decay_factor,
    default_score,
    feedback_score,
    recency_weight,
    reliability_score,
    score_from_metrics,
    speed_score,
    success_rate,
    volume_score,
)

NOW = 1_750_000_000


def _metrics(**overrides) -> ReputationMetrics:
    values = dict(
        total_payments=100,
        successful_payments=95,
        failed_payments=3,
        timeout_payments=2,
        avg_latency_ms=800.0,
        median_latency_ms=700.0,
        p95_latency_ms=1500.0,
        unique_payers=40,
        repeat_customers=10,
        total_volume=Decimal("125.5"),
        first_payment_at=NOW - 30 * SECONDS_PER_DAY,
        last_payment_at=NOW,
    )
    values.update(overrides)
    return ReputationMetrics(**values)


def _payment(status: str, ts: int, *, latency: int | None = None, payer: str = "0xa", amount: str = "1") -> PaymentRecord:
    return PaymentRecord(
        service_id="svc",
        payer_address=payer,
        amount=Decimal(amount),
        status=status,
        block_timestamp=ts,
        latency_ms=latency,
    )


# --- Composite ---


def test_reference_scenario():
    """95/3/2 outcomes, 800 ms, 40 payers with 10 repeat, paid today."""
    metrics = _metrics()
    score = score_from_metrics("svc", metrics, now_ts=NOW)
    assert score.reliability_score == pytest.approx(86.0)
    assert score.speed_score == 100.0
    assert score.recency_weight == 1.0
    assert score.success_rate == pytest.approx(0.95)
    assert score.volume_score == pytest.approx(50 + 50 / 3)
    reliability_contribution = WEIGHT_RELIABILITY * score.reliability_score
    assert reliability_contribution < score.reputation_score < 100
    assert score.reputation_score == pytest.approx(76.48, abs=0.01)
    assert score.calculation_version == 1


def test_score_rounded_to_two_decimals():
    score = score_from_metrics("svc", _metrics(total_payments=37, successful_payments=33), now_ts=NOW)
    assert score.reputation_score == round(score.reputation_score, 2)


def test_score_bounds():
    perfect = _metrics(
        total_payments=10_000,
        successful_payments=10_000,
        failed_payments=0,
        timeout_payments=0,
        avg_latency_ms=10.0,
        unique_payers=10,
        repeat_customers=10,
    )
    assert score_from_metrics("svc", perfect, now_ts=NOW).reputation_score == 100.0
    awful = _metrics(
        total_payments=10,
        successful_payments=0,
        failed_payments=10,
        timeout_payments=0,
        avg_latency_ms=0.0,
        unique_payers=1,
        repeat_customers=0,
    )
    low = score_from_metrics("svc", awful, now_ts=NOW).reputation_score
    assert 0.0 <= low <= 100.0


def test_old_activity_is_discounted():
    recent = score_from_metrics("svc", _metrics(), now_ts=NOW)
    stale = score_from_metrics("svc", _metrics(last_payment_at=NOW - 365 * SECONDS_PER_DAY), now_ts=NOW)
    assert stale.recency_weight == 0.5
    assert stale.reputation_score == pytest.approx(recent.reputation_score * 0.5, abs=0.01)


def test_default_score():
    score = default_score("new-service", NOW)
    assert score.reputation_score == 0.0
    assert score.success_rate == 0.0
    assert score.recency_weight == 1.0
    assert score.calculated_at == NOW


# --- Components ---


def test_reliability_floor_at_zero():
    metrics = _metrics(total_payments=10, successful_payments=5, failed_payments=5, timeout_payments=0)
    assert reliability_score(metrics) == 0.0
    assert success_rate(metrics) == 0.5


def test_reliability_zero_payments():
    assert reliability_score(_metrics(total_payments=0, successful_payments=0)) == 0.0


@pytest.mark.parametrize(
    "latency,expected",
    [(0, 100.0), (1000, 100.0), (1001, 80.0), (3000, 80.0), (4500, 60.0), (5000, 60.0)],
)
def test_speed_thresholds(latency, expected):
    assert speed_score(latency) == expected


def test_speed_decays_past_acceptable():
    assert speed_score(10_000) == pytest.approx(60 * math.exp(-1))
    assert 0 < speed_score(60_000) < speed_score(10_000)


def test_volume_scale():
    assert volume_score(0) == 0.0
    assert volume_score(5) == 25.0
    assert volume_score(10) == 50.0
    assert volume_score(100) == pytest.approx(66.6667, abs=1e-3)
    assert volume_score(1000) == pytest.approx(83.3333, abs=1e-3)
    assert volume_score(10_000) == pytest.approx(100.0)
    assert volume_score(1_000_000) == 100.0


def test_recency_weight():
    assert recency_weight(NOW, NOW) == 1.0
    assert recency_weight(NOW + 3600, NOW) == 1.0
    assert recency_weight(NOW - 10 * SECONDS_PER_DAY, NOW) == pytest.approx(math.exp(-1 / 3))
    assert recency_weight(NOW - 30 * SECONDS_PER_DAY, NOW) == 0.5


# --- Metrics aggregation ---


def test_compute_metrics():
    payments = [
        _payment("success", 100, latency=400, payer="0xa", amount="1.10"),
        _payment("success", 200, latency=100, payer="0xb", amount="2.20"),
        _payment("failed", 300, payer="0xa", amount="0.5"),
        _payment("success", 400, latency=300, payer="0xc"),
        _payment("timeout", 500, payer="0xa"),
        _payment("success", 600, latency=200, payer="0xb"),
        _payment("success", 700, latency=None, payer="0xd"),
    ]
    m = compute_metrics(payments)
    assert m.total_payments == 7
    assert m.successful_payments == 5
    assert m.failed_payments == 1
    assert m.timeout_payments == 1
    assert m.avg_latency_ms == 250.0
    assert m.median_latency_ms == 300.0
    assert m.p95_latency_ms == 400.0
    assert m.unique_payers == 4
    assert m.repeat_customers == 2
    assert m.total_volume == Decimal("7.80")
    assert (m.first_payment_at, m.last_payment_at) == (100, 700)


def test_compute_metrics_empty():
    assert compute_metrics([]) is None


def test_compute_metrics_without_latency():
    m = compute_metrics([_payment("failed", 1), _payment("timeout", 2)])
    assert m.avg_latency_ms == 0.0
    assert m.median_latency_ms == 0.0
    assert m.successful_payments == 0


# --- Feedback decay ---


def test_decay_factor():
    assert decay_factor(0) == 1.0
    assert decay_factor(-3) == 1.0
    assert decay_factor(7) == pytest.approx(0.95)
    assert decay_factor(14) == pytest.approx(0.95**2)
    assert decay_factor(90) == 0.1
    assert decay_factor(400) == 0.1
    assert decay_factor(7, factor=0.5, days_for_full_decay=30) == pytest.approx(0.5)


def _feedback(score: int, days_ago: float) -> FeedbackRecord:
    return FeedbackRecord(
        subject_address="0xagent",
        submitter_address="0xclient",
        tag="quality",
        score=score,
        comment="",
        timestamp=int(NOW - days_ago * SECONDS_PER_DAY),
        tx_hash="0x01",
        block_number=1,
        log_index=0,
    )


def test_feedback_score_weights_recent_higher():
    assert feedback_score([_feedback(100, 0), _feedback(0, 120)], NOW) == pytest.approx(90.91, abs=0.01)
    assert feedback_score([_feedback(60, 3)], NOW) == 60.0


def test_feedback_score_none_without_feedback():
    assert feedback_score([], NOW) is None

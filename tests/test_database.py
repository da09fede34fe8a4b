"""
Tests for the SQLite database layer: cursors, escrow ledger and aggregates,
transfers, agent registry, feedback and reputation snapshots.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from relay_indexer.database import (
    AgentRecord,
    EscrowSession,
    FeedbackRecord,
    OnChainTransaction,
    PaymentRecord,
    ReputationMetrics,
    ReputationScore,
    ServiceRecord,
    SessionEvent,
    SessionEventType,
    decimal_to_units,
    units_to_decimal,
)

OWNER = "0x" + "1a" * 20
AGENT = "0x" + "2b" * 20
OTHER = "0x" + "3c" * 20


def _tx(n: int) -> str:
    return "0x" + f"{n:064x}"


def _session(session_id: str = "1") -> EscrowSession:
    return EscrowSession(
        session_id=session_id,
        owner=OWNER.upper().replace("0X", "0x"),
        escrow_agent=AGENT,
        max_spend_units=50_000_000,
        expiry=1_800_000_000,
        created_at=1_700_000_000,
        created_tx_hash=_tx(1),
        created_block=10,
    )


def _event(event_type: SessionEventType, n: int, *, amount: int | None = None, actor: str | None = None,
           session_id: str = "1", block: int = 10) -> SessionEvent:
    return SessionEvent(
        session_id=session_id,
        event_type=event_type,
        timestamp=1_700_000_000 + n,
        tx_hash=_tx(n),
        block_number=block,
        log_index=0,
        actor=actor,
        amount_units=amount,
    )


def _create(db, session_id: str = "1") -> None:
    assert db.record_session_event(_event(SessionEventType.CREATE, 1, actor=OWNER, session_id=session_id), _session(session_id))


# --- Amount conversion ---


def test_units_conversion():
    assert units_to_decimal(1_500_000) == Decimal("1.5")
    assert units_to_decimal(1, 6) == Decimal("0.000001")
    assert decimal_to_units(Decimal("2.25")) == 2_250_000
    assert decimal_to_units("0.1", 18) == 10**17


# --- Cursors ---


def test_cursor_missing_then_set(db):
    assert db.get_cursor("escrow_session_events") is None
    db.set_cursor("escrow_session_events", 120)
    cursor = db.get_cursor("escrow_session_events")
    assert cursor.last_block == 120
    assert cursor.updated_at is not None


def test_cursor_never_decreases(db):
    """A lower block than the stored one is ignored."""
    db.set_cursor("job", 500)
    db.set_cursor("job", 300)
    assert db.get_cursor("job").last_block == 500
    db.set_cursor("job", 501)
    assert db.get_cursor("job").last_block == 501


def test_cursor_rejects_negative(db):
    with pytest.raises(ValueError):
        db.set_cursor("job", -1)


def test_cursors_are_per_name(db):
    db.set_cursor("a", 10)
    db.set_cursor("b", 20)
    assert db.get_cursor("a").last_block == 10
    assert db.get_cursor("b").last_block == 20


# --- Escrow ledger ---


def test_create_session_lowercases_and_inserts(db):
    _create(db)
    session = db.get_escrow_session("1")
    assert session.owner == OWNER
    assert session.max_spend == Decimal("50")
    assert session.deposited_units == 0
    assert session.is_active is True
    assert [e.event_type for e in db.get_session_events("1")] == [SessionEventType.CREATE]


def test_create_requires_session(db):
    with pytest.raises(ValueError):
        db.record_session_event(_event(SessionEventType.CREATE, 1))


def test_deposits_sum_exactly(db):
    _create(db)
    assert db.record_session_event(_event(SessionEventType.DEPOSIT, 2, amount=1_000_001, actor=OWNER))
    assert db.record_session_event(_event(SessionEventType.DEPOSIT, 3, amount=2_999_999, actor=OWNER))
    session = db.get_escrow_session("1")
    assert session.deposited_units == 4_000_000
    assert session.deposited == Decimal("4")
    assert len(db.get_session_events("1")) == 3


def test_duplicate_event_is_noop(db):
    """Same (tx_hash, log_index) twice: no second row, aggregate unchanged."""
    _create(db)
    deposit = _event(SessionEventType.DEPOSIT, 2, amount=5_000_000, actor=OWNER)
    assert db.record_session_event(deposit) is True
    assert db.record_session_event(deposit) is False
    assert db.get_escrow_session("1").deposited_units == 5_000_000
    assert len(db.get_session_events("1")) == 2


def test_release_credits_agent_earnings(db):
    _create(db)
    db.record_session_event(_event(SessionEventType.DEPOSIT, 2, amount=10_000_000, actor=OWNER))
    db.record_session_event(_event(SessionEventType.RELEASE, 3, amount=1_250_000, actor=AGENT))
    db.record_session_event(_event(SessionEventType.RELEASE, 4, amount=750_000, actor=AGENT))
    session = db.get_escrow_session("1")
    assert session.released_units == 2_000_000
    assert session.remaining == Decimal("8")
    earnings = db.get_agent_earnings(AGENT.upper().replace("0X", "0x"))
    assert earnings.total_earned == Decimal("2")
    assert earnings.payment_count == 2
    assert earnings.last_payment_at == 1_700_000_004


def test_refund_is_ledger_only(db):
    _create(db)
    db.record_session_event(_event(SessionEventType.DEPOSIT, 2, amount=3_000_000, actor=OWNER))
    assert db.record_session_event(_event(SessionEventType.REFUND, 3, amount=3_000_000, actor=OWNER))
    session = db.get_escrow_session("1")
    assert session.deposited_units == 3_000_000
    assert session.released_units == 0
    events = db.get_session_events("1")
    assert events[-1].event_type is SessionEventType.REFUND
    assert events[-1].amount == Decimal("3")


def test_close_marks_inactive(db):
    _create(db)
    db.record_session_event(_event(SessionEventType.CLOSE, 5, block=20))
    session = db.get_escrow_session("1")
    assert session.is_active is False
    assert session.closed_tx_hash == _tx(5)
    assert session.closed_block == 20


def test_authorize_then_revoke_agent(db):
    _create(db)
    db.record_session_event(_event(SessionEventType.AUTHORIZE, 2, actor=AGENT))
    agents = db.get_session_agents("1")
    assert len(agents) == 1 and agents[0].is_authorized
    db.record_session_event(_event(SessionEventType.REVOKE, 3, actor=AGENT))
    agents = db.get_session_agents("1")
    assert len(agents) == 1
    assert agents[0].is_authorized is False
    assert agents[0].authorized_at == 1_700_000_002
    assert agents[0].revoked_at == 1_700_000_003


def test_deposit_for_unknown_session_keeps_ledger_row(db):
    assert db.record_session_event(_event(SessionEventType.DEPOSIT, 9, amount=1, session_id="404"))
    assert db.get_escrow_session("404") is None
    assert len(db.get_session_events("404")) == 1


def test_large_max_spend_round_trips(db):
    """max_spend is uint256; stored as text so it never overflows SQLite integers."""
    session = _session("7")
    session.max_spend_units = 2**255
    db.record_session_event(_event(SessionEventType.CREATE, 1, actor=OWNER, session_id="7"), session)
    assert db.get_escrow_session("7").max_spend_units == 2**255


# --- Token transfers ---


def test_onchain_transaction_insert_once(db):
    tx = OnChainTransaction(
        tx_hash=_tx(1),
        log_index=3,
        from_address=OWNER,
        to_address=AGENT.upper().replace("0X", "0x"),
        value=Decimal("1.5"),
        type="relay_incoming",
        timestamp=1_700_000_000,
        block_number=42,
        metadata={"v": 1, "is_x402": False},
    )
    assert db.insert_onchain_transaction(tx) is True
    assert db.insert_onchain_transaction(tx) is False
    rows = db.get_onchain_transactions(address=AGENT)
    assert len(rows) == 1
    assert rows[0].value == Decimal("1.5")
    assert rows[0].to_address == AGENT
    assert rows[0].metadata == {"v": 1, "is_x402": False}
    assert db.get_onchain_transactions(address=OTHER) == []


def test_onchain_transactions_newest_first(db):
    for block in (5, 9, 7):
        db.insert_onchain_transaction(
            OnChainTransaction(
                tx_hash=_tx(block),
                log_index=0,
                from_address=OWNER,
                to_address=AGENT,
                value=Decimal("1"),
                type="usdc_transfer",
                timestamp=block,
                block_number=block,
            )
        )
    assert [t.block_number for t in db.get_onchain_transactions()] == [9, 7, 5]
    assert len(db.get_onchain_transactions(limit=2)) == 2


# --- Agents and feedback ---


def test_agent_lifecycle(db):
    agent = AgentRecord(
        agent_id=7,
        owner_address=OWNER,
        agent_uri="ipfs://agent-7",
        is_active=True,
        registered_at=100,
        registration_tx_hash=_tx(1),
        registration_block=10,
    )
    assert db.insert_agent(agent) is True
    assert db.insert_agent(agent) is False
    assert db.set_agent_active(7, False, 200) is True
    assert db.update_agent_uri(7, "ipfs://agent-7-v2", 300) is True
    stored = db.get_agent(7)
    assert stored.is_active is False
    assert stored.agent_uri == "ipfs://agent-7-v2"
    assert stored.updated_at == 300
    assert db.set_agent_active(8, True, 200) is False


def _feedback(n: int, *, tag: str = "quality", score: int = 80, block: int = 10, log_index: int = 0) -> FeedbackRecord:
    return FeedbackRecord(
        subject_address=AGENT,
        submitter_address=OWNER,
        tag=tag,
        score=score,
        comment="",
        timestamp=1_700_000_000 + n,
        tx_hash=_tx(n),
        block_number=block,
        log_index=log_index,
    )


def test_feedback_revoke_is_idempotent(db):
    assert db.insert_feedback(_feedback(1))
    assert db.insert_feedback(_feedback(2, tag="speed"))
    assert db.revoke_feedback(AGENT, OWNER, "quality", 1_700_000_100, 20, 0) == 1
    assert db.revoke_feedback(AGENT, OWNER, "quality", 1_700_000_200, 20, 0) == 0
    live = db.get_feedback_for_subject(AGENT)
    assert [f.tag for f in live] == ["speed"]
    everything = db.get_feedback_for_subject(AGENT, include_revoked=True)
    assert len(everything) == 2
    revoked = next(f for f in everything if f.tag == "quality")
    assert revoked.revoked_at == 1_700_000_100


def test_feedback_revoke_ignores_later_submissions(db):
    """A revocation only applies to feedback logged before it."""
    db.insert_feedback(_feedback(1, block=50))
    assert db.revoke_feedback(AGENT, OWNER, "quality", 1_700_000_100, 40, 0) == 0
    assert len(db.get_feedback_for_subject(AGENT)) == 1


def test_feedback_revoke_compares_log_position_within_block(db):
    db.insert_feedback(_feedback(1, block=30, log_index=1))
    db.insert_feedback(_feedback(2, block=30, log_index=5))
    # revocation logged at index 3 of the same block
    assert db.revoke_feedback(AGENT, OWNER, "quality", 1_700_000_100, 30, 3) == 1
    live = db.get_feedback_for_subject(AGENT)
    assert [f.log_index for f in live] == [5]


# --- Services, payments and reputation ---


def _metrics() -> ReputationMetrics:
    return ReputationMetrics(
        total_payments=2,
        successful_payments=2,
        failed_payments=0,
        timeout_payments=0,
        avg_latency_ms=500.0,
        median_latency_ms=500.0,
        p95_latency_ms=600.0,
        unique_payers=1,
        repeat_customers=1,
        total_volume=Decimal("3.5"),
        first_payment_at=1,
        last_payment_at=2,
    )


def _score(subject_id: str, value: float) -> ReputationScore:
    return ReputationScore(
        subject_id=subject_id,
        reputation_score=value,
        success_rate=1.0,
        reliability_score=100.0,
        speed_score=100.0,
        volume_score=10.0,
        recency_weight=1.0,
        calculated_at=1_700_000_000,
    )


def test_payments_ordered_by_block_timestamp(db):
    db.upsert_service(ServiceRecord(service_id="svc-1", agent_address=AGENT))
    for ts in (30, 10, 20):
        db.insert_payment(
            PaymentRecord(service_id="svc-1", payer_address=OWNER, amount=Decimal("0.1"), status="success",
                          block_timestamp=ts, latency_ms=100)
        )
    payments = db.get_payments("svc-1")
    assert [p.block_timestamp for p in payments] == [10, 20, 30]
    assert payments[0].amount == Decimal("0.1")
    assert db.get_service("svc-1").agent_address == AGENT


def test_payment_block_number_set_once(db):
    payment_id = db.insert_payment(
        PaymentRecord(service_id="svc-1", payer_address=OWNER, amount=Decimal("0.1"), status="success",
                      block_timestamp=10, tx_hash="0x" + "ab" * 32)
    )
    assert [p.id for p in db.get_unconfirmed_payments(10)] == [payment_id]
    assert db.set_payment_block_number(payment_id, 77) is True
    assert db.set_payment_block_number(payment_id, 78) is False
    assert db.get_payments("svc-1")[0].block_number == 77
    assert db.get_unconfirmed_payments(10) == []


def test_active_service_ids(db):
    db.upsert_service(ServiceRecord(service_id="b"))
    db.upsert_service(ServiceRecord(service_id="a"))
    db.upsert_service(ServiceRecord(service_id="c", is_active=False))
    assert db.get_active_service_ids() == ["a", "b"]


def test_reputation_score_upsert_replaces(db):
    db.upsert_reputation_score(_score("svc-1", 40.0), _metrics())
    db.upsert_reputation_score(_score("svc-1", 55.5), _metrics())
    stored = db.get_reputation_score("svc-1")
    assert stored.reputation_score == 55.5
    assert stored.calculation_version == 1
    assert db.get_reputation_score("svc-2") is None


def test_service_rankings(db):
    """Rankings order by score desc, tie-break by id, and exclude inactive services."""
    db.upsert_service(ServiceRecord(service_id="a", category="data"))
    db.upsert_service(ServiceRecord(service_id="b"))
    db.upsert_service(ServiceRecord(service_id="c"))
    db.upsert_service(ServiceRecord(service_id="d", is_active=False))
    for subject, value in (("a", 70.0), ("b", 90.0), ("c", 70.0), ("d", 99.0)):
        db.upsert_reputation_score(_score(subject, value), _metrics())
    assert db.refresh_service_rankings() == 3
    top = db.get_top_services(limit=10)
    assert [(r.subject_id, r.rank) for r in top] == [("b", 1), ("a", 2), ("c", 3)]
    assert top[1].category == "data"
    assert len(db.get_top_services(limit=1)) == 1

"""
Database abstraction layer for indexer cursors, escrow ledger, transfers,
agent registry state, feedback and reputation snapshots.

MVP uses SQLite; designed so the backend can be swapped to PostgreSQL via a
different Backend implementation. All access goes through the abstract interface;
SQL and placeholders are backend-specific (? for SQLite, %s for PostgreSQL).

Ledger writes are idempotent on their natural key (tx_hash, log_index). Any
aggregate they feed is incremented in the same transaction, and only when the
ledger row was actually inserted, so replaying a block window is a no-op.
"""

from __future__ import annotations

import json
import sqlite3
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from decimal import Decimal
from pathlib import Path
from typing import Any, Iterator

from relay_indexer.database.models import (
    AgentEarnings,
    AgentRecord,
    EscrowSession,
    FeedbackRecord,
    IndexerCursor,
    OnChainTransaction,
    PaymentRecord,
    PaymentStatus,
    ReputationMetrics,
    ReputationScore,
    ServiceRanking,
    ServiceRecord,
    SessionAgent,
    SessionEvent,
    SessionEventType,
)
from relay_indexer.database.schema import ALL_SCHEMAS
from relay_indexer.logging import get_logger

logger = get_logger(__name__)


def _units_text(units: int | None) -> str | None:
    return None if units is None else str(units)


def _units_int(value: Any) -> int | None:
    return None if value is None else int(value)


# -----------------------------------------------------------------------------
# Abstract backend: swap implementation for PostgreSQL later.
# -----------------------------------------------------------------------------


class DatabaseBackend(ABC):
    """Abstract interface for persistence; implement for SQLite or PostgreSQL."""

    @abstractmethod
    def ensure_schema(self) -> None:
        """Create tables and indexes if they do not exist."""
        ...

    # --- Cursors ---

    @abstractmethod
    def get_cursor(self, name: str) -> IndexerCursor | None:
        """Return the cursor for an indexer, or None if it never completed a run."""
        ...

    @abstractmethod
    def set_cursor(self, name: str, last_block: int) -> None:
        """Upsert the cursor; never moves it backwards."""
        ...

    # --- Escrow ---

    @abstractmethod
    def record_session_event(
        self, event: SessionEvent, session: EscrowSession | None = None
    ) -> bool:
        """
        Insert a ledger row and apply its aggregate effect atomically.

        CREATE also inserts ``session``. Returns False (and changes nothing)
        when the (tx_hash, log_index) row already exists.
        """
        ...

    @abstractmethod
    def get_escrow_session(self, session_id: str) -> EscrowSession | None:
        ...

    @abstractmethod
    def get_session_events(self, session_id: str) -> list[SessionEvent]:
        """Return ledger rows for a session in chain order."""
        ...

    @abstractmethod
    def get_session_agents(self, session_id: str) -> list[SessionAgent]:
        ...

    @abstractmethod
    def get_agent_earnings(self, agent_address: str) -> AgentEarnings | None:
        ...

    # --- Token transfers ---

    @abstractmethod
    def insert_onchain_transaction(self, tx: OnChainTransaction) -> bool:
        """Insert a transfer row; False if (tx_hash, log_index) already exists."""
        ...

    @abstractmethod
    def get_onchain_transactions(
        self, *, address: str | None = None, limit: int = 500
    ) -> list[OnChainTransaction]:
        """Return transfers (optionally touching ``address``), newest first."""
        ...

    # --- Agent registry ---

    @abstractmethod
    def insert_agent(self, agent: AgentRecord) -> bool:
        ...

    @abstractmethod
    def set_agent_active(self, agent_id: int, is_active: bool, updated_at: int) -> bool:
        ...

    @abstractmethod
    def update_agent_uri(self, agent_id: int, agent_uri: str, updated_at: int) -> bool:
        ...

    @abstractmethod
    def get_agent(self, agent_id: int) -> AgentRecord | None:
        ...

    # --- Feedback ---

    @abstractmethod
    def insert_feedback(self, feedback: FeedbackRecord) -> bool:
        ...

    @abstractmethod
    def revoke_feedback(
        self, subject: str, submitter: str, tag: str, revoked_at: int, block_number: int, log_index: int
    ) -> int:
        """Mark matching, not yet revoked feedback logged before (block_number, log_index). Returns rows changed."""
        ...

    @abstractmethod
    def get_feedback_for_subject(
        self, subject: str, *, include_revoked: bool = False
    ) -> list[FeedbackRecord]:
        ...

    # --- Services and payments (written by collaborators) ---

    @abstractmethod
    def upsert_service(self, service: ServiceRecord) -> None:
        ...

    @abstractmethod
    def get_service(self, service_id: str) -> ServiceRecord | None:
        ...

    @abstractmethod
    def get_active_service_ids(self) -> list[str]:
        ...

    @abstractmethod
    def insert_payment(self, payment: PaymentRecord) -> int:
        """Insert a payment outcome row. Returns row id."""
        ...

    @abstractmethod
    def get_payments(self, service_id: str) -> list[PaymentRecord]:
        """Return payments for a service, oldest block_timestamp first."""
        ...

    @abstractmethod
    def get_unconfirmed_payments(self, limit: int) -> list[PaymentRecord]:
        """Successful payments with a tx_hash whose block_number is still 0, oldest id first."""
        ...

    @abstractmethod
    def set_payment_block_number(self, payment_id: int, block_number: int) -> bool:
        """Record the mining block of a payment. Returns False if the row is gone or already set."""
        ...

    # --- Reputation ---

    @abstractmethod
    def upsert_reputation_score(self, score: ReputationScore, metrics: ReputationMetrics) -> None:
        ...

    @abstractmethod
    def get_reputation_score(self, subject_id: str) -> ReputationScore | None:
        ...

    @abstractmethod
    def refresh_service_rankings(self) -> int:
        """Rebuild service_rankings from reputation_scores. Returns ranked rows."""
        ...

    @abstractmethod
    def get_top_services(self, *, limit: int = 10) -> list[ServiceRanking]:
        ...


# -----------------------------------------------------------------------------
# SQLite backend
# -----------------------------------------------------------------------------


class SQLiteBackend(DatabaseBackend):
    """SQLite implementation; single file, one connection per operation."""

    def __init__(self, path: str | Path, *, timeout_sec: float = 5.0, decimals: int = 6) -> None:
        self._path = Path(path)
        self._timeout_sec = timeout_sec
        self._decimals = decimals

    def _connect(self) -> sqlite3.Connection:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self._path), timeout=self._timeout_sec)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode = WAL")
        conn.execute(f"PRAGMA busy_timeout = {int(self._timeout_sec * 1000)}")
        return conn

    @contextmanager
    def _cursor(self) -> Iterator[sqlite3.Cursor]:
        conn = self._connect()
        try:
            cur = conn.cursor()
            yield cur
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def ensure_schema(self) -> None:
        with self._cursor() as cur:
            for stmt in ALL_SCHEMAS:
                cur.executescript(stmt)

    # --- Cursors ---

    def get_cursor(self, name: str) -> IndexerCursor | None:
        with self._cursor() as cur:
            cur.execute(
                "SELECT indexer_name, last_block, updated_at FROM indexer_state WHERE indexer_name = ?",
                (name,),
            )
            row = cur.fetchone()
        if row is None:
            return None
        return IndexerCursor(name=row["indexer_name"], last_block=row["last_block"], updated_at=row["updated_at"])

    def set_cursor(self, name: str, last_block: int) -> None:
        now = int(time.time())
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO indexer_state (indexer_name, last_block, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(indexer_name) DO UPDATE SET
                    last_block = MAX(indexer_state.last_block, excluded.last_block),
                    updated_at = excluded.updated_at
                """,
                (name, last_block, now),
            )

    # --- Escrow ---

    def record_session_event(
        self, event: SessionEvent, session: EscrowSession | None = None
    ) -> bool:
        now = int(time.time())
        event_type = SessionEventType(event.event_type)
        with self._cursor() as cur:
            if event_type is SessionEventType.CREATE and session is not None:
                cur.execute(
                    """
                    INSERT INTO escrow_sessions (
                        session_id, owner, escrow_agent, max_spend_units, expiry,
                        deposited_units, released_units, is_active,
                        created_at, created_tx_hash, created_block
                    )
                    VALUES (?, ?, ?, ?, ?, '0', '0', 1, ?, ?, ?)
                    ON CONFLICT(session_id) DO NOTHING
                    """,
                    (
                        session.session_id,
                        session.owner,
                        session.escrow_agent,
                        str(session.max_spend_units),
                        str(session.expiry),
                        session.created_at,
                        session.created_tx_hash,
                        session.created_block,
                    ),
                )
            cur.execute(
                """
                INSERT INTO session_events (
                    session_id, event_type, actor, amount_units, execution_id,
                    timestamp, tx_hash, block_number, log_index, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(tx_hash, log_index) DO NOTHING
                """,
                (
                    event.session_id,
                    event_type.value,
                    event.actor,
                    _units_text(event.amount_units),
                    event.execution_id,
                    event.timestamp,
                    event.tx_hash,
                    event.block_number,
                    event.log_index,
                    now,
                ),
            )
            if cur.rowcount != 1:
                return False
            self._apply_session_effect(cur, event_type, event)
        return True

    def _apply_session_effect(
        self, cur: sqlite3.Cursor, event_type: SessionEventType, event: SessionEvent
    ) -> None:
        """Aggregate side effects of a freshly inserted ledger row (same transaction)."""
        if event_type in (SessionEventType.DEPOSIT, SessionEventType.RELEASE):
            column = "deposited_units" if event_type is SessionEventType.DEPOSIT else "released_units"
            # TEXT column: add in Python; the ledger INSERT already holds the write lock
            cur.execute(f"SELECT {column} FROM escrow_sessions WHERE session_id = ?", (event.session_id,))
            row = cur.fetchone()
            if row is None:
                logger.warning("escrow_session_missing", session_id=event.session_id, session_event=event_type.value)
            else:
                cur.execute(
                    f"UPDATE escrow_sessions SET {column} = ? WHERE session_id = ?",
                    (str(int(row[column]) + (event.amount_units or 0)), event.session_id),
                )
        if event_type is SessionEventType.RELEASE and event.actor:
            cur.execute(
                "SELECT total_earned_units, payment_count, last_payment_at FROM agent_earnings WHERE agent_address = ?",
                (event.actor,),
            )
            row = cur.fetchone()
            if row is None:
                cur.execute(
                    """
                    INSERT INTO agent_earnings (agent_address, total_earned_units, payment_count, last_payment_at)
                    VALUES (?, ?, 1, ?)
                    """,
                    (event.actor, str(event.amount_units or 0), event.timestamp),
                )
            else:
                cur.execute(
                    """
                    UPDATE agent_earnings
                    SET total_earned_units = ?, payment_count = ?, last_payment_at = ?
                    WHERE agent_address = ?
                    """,
                    (
                        str(int(row["total_earned_units"]) + (event.amount_units or 0)),
                        row["payment_count"] + 1,
                        max(row["last_payment_at"] or 0, event.timestamp),
                        event.actor,
                    ),
                )
        if event_type is SessionEventType.CLOSE:
            cur.execute(
                """
                UPDATE escrow_sessions
                SET is_active = 0, closed_at = ?, closed_tx_hash = ?, closed_block = ?
                WHERE session_id = ?
                """,
                (event.timestamp, event.tx_hash, event.block_number, event.session_id),
            )
        elif event_type in (SessionEventType.AUTHORIZE, SessionEventType.REVOKE):
            authorized = event_type is SessionEventType.AUTHORIZE
            cur.execute(
                """
                INSERT INTO session_agents (
                    session_id, agent_address, is_authorized, authorized_at, revoked_at, tx_hash, block_number
                )
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(session_id, agent_address) DO UPDATE SET
                    is_authorized = excluded.is_authorized,
                    authorized_at = COALESCE(excluded.authorized_at, session_agents.authorized_at),
                    revoked_at = excluded.revoked_at,
                    tx_hash = excluded.tx_hash,
                    block_number = excluded.block_number
                """,
                (
                    event.session_id,
                    event.actor,
                    1 if authorized else 0,
                    event.timestamp if authorized else None,
                    None if authorized else event.timestamp,
                    event.tx_hash,
                    event.block_number,
                ),
            )

    def get_escrow_session(self, session_id: str) -> EscrowSession | None:
        with self._cursor() as cur:
            cur.execute("SELECT * FROM escrow_sessions WHERE session_id = ?", (session_id,))
            row = cur.fetchone()
        if row is None:
            return None
        return EscrowSession(
            session_id=row["session_id"],
            owner=row["owner"],
            escrow_agent=row["escrow_agent"],
            max_spend_units=int(row["max_spend_units"]),
            expiry=int(row["expiry"]),
            created_at=row["created_at"],
            created_tx_hash=row["created_tx_hash"],
            created_block=row["created_block"],
            deposited_units=int(row["deposited_units"]),
            released_units=int(row["released_units"]),
            is_active=bool(row["is_active"]),
            closed_at=row["closed_at"],
            closed_tx_hash=row["closed_tx_hash"],
            closed_block=row["closed_block"],
            decimals=self._decimals,
        )

    def get_session_events(self, session_id: str) -> list[SessionEvent]:
        with self._cursor() as cur:
            cur.execute(
                """
                SELECT id, session_id, event_type, actor, amount_units, execution_id,
                       timestamp, tx_hash, block_number, log_index
                FROM session_events WHERE session_id = ?
                ORDER BY block_number, log_index
                """,
                (session_id,),
            )
            rows = cur.fetchall()
        return [
            SessionEvent(
                id=row["id"],
                session_id=row["session_id"],
                event_type=SessionEventType(row["event_type"]),
                actor=row["actor"],
                amount_units=_units_int(row["amount_units"]),
                execution_id=row["execution_id"],
                timestamp=row["timestamp"],
                tx_hash=row["tx_hash"],
                block_number=row["block_number"],
                log_index=row["log_index"],
                decimals=self._decimals,
            )
            for row in rows
        ]

    def get_session_agents(self, session_id: str) -> list[SessionAgent]:
        with self._cursor() as cur:
            cur.execute(
                "SELECT * FROM session_agents WHERE session_id = ? ORDER BY agent_address",
                (session_id,),
            )
            rows = cur.fetchall()
        return [
            SessionAgent(
                session_id=row["session_id"],
                agent_address=row["agent_address"],
                is_authorized=bool(row["is_authorized"]),
                authorized_at=row["authorized_at"],
                revoked_at=row["revoked_at"],
                tx_hash=row["tx_hash"],
                block_number=row["block_number"],
            )
            for row in rows
        ]

    def get_agent_earnings(self, agent_address: str) -> AgentEarnings | None:
        with self._cursor() as cur:
            cur.execute("SELECT * FROM agent_earnings WHERE agent_address = ?", (agent_address,))
            row = cur.fetchone()
        if row is None:
            return None
        return AgentEarnings(
            agent_address=row["agent_address"],
            total_earned_units=int(row["total_earned_units"]),
            payment_count=row["payment_count"],
            last_payment_at=row["last_payment_at"],
            decimals=self._decimals,
        )

    # --- Token transfers ---

    def insert_onchain_transaction(self, tx: OnChainTransaction) -> bool:
        now = int(time.time())
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO on_chain_transactions (
                    tx_hash, log_index, from_address, to_address, value, type, status,
                    timestamp, block_number, block_hash, metadata_json, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(tx_hash, log_index) DO NOTHING
                """,
                (
                    tx.tx_hash,
                    tx.log_index,
                    tx.from_address,
                    tx.to_address,
                    str(tx.value),
                    tx.type,
                    tx.status,
                    tx.timestamp,
                    tx.block_number,
                    tx.block_hash,
                    json.dumps(tx.metadata, sort_keys=True) if tx.metadata else None,
                    now,
                ),
            )
            return cur.rowcount == 1

    def get_onchain_transactions(
        self, *, address: str | None = None, limit: int = 500
    ) -> list[OnChainTransaction]:
        sql = "SELECT * FROM on_chain_transactions"
        params: list[Any] = []
        if address is not None:
            sql += " WHERE from_address = ? OR to_address = ?"
            params.extend([address, address])
        sql += " ORDER BY block_number DESC, log_index DESC LIMIT ?"
        params.append(limit)
        with self._cursor() as cur:
            cur.execute(sql, params)
            rows = cur.fetchall()
        return [
            OnChainTransaction(
                tx_hash=row["tx_hash"],
                log_index=row["log_index"],
                from_address=row["from_address"],
                to_address=row["to_address"],
                value=Decimal(row["value"]),
                type=row["type"],
                status=row["status"],
                timestamp=row["timestamp"],
                block_number=row["block_number"],
                block_hash=row["block_hash"],
                metadata=json.loads(row["metadata_json"]) if row["metadata_json"] else {},
            )
            for row in rows
        ]

    # --- Agent registry ---

    def insert_agent(self, agent: AgentRecord) -> bool:
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO agents (
                    agent_id, owner_address, agent_uri, is_active, registered_at,
                    registration_tx_hash, registration_block, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(agent_id) DO NOTHING
                """,
                (
                    agent.agent_id,
                    agent.owner_address,
                    agent.agent_uri,
                    1 if agent.is_active else 0,
                    agent.registered_at,
                    agent.registration_tx_hash,
                    agent.registration_block,
                    agent.updated_at or agent.registered_at,
                ),
            )
            return cur.rowcount == 1

    def set_agent_active(self, agent_id: int, is_active: bool, updated_at: int) -> bool:
        with self._cursor() as cur:
            cur.execute(
                "UPDATE agents SET is_active = ?, updated_at = ? WHERE agent_id = ?",
                (1 if is_active else 0, updated_at, agent_id),
            )
            return cur.rowcount == 1

    def update_agent_uri(self, agent_id: int, agent_uri: str, updated_at: int) -> bool:
        with self._cursor() as cur:
            cur.execute(
                "UPDATE agents SET agent_uri = ?, updated_at = ? WHERE agent_id = ?",
                (agent_uri, updated_at, agent_id),
            )
            return cur.rowcount == 1

    def get_agent(self, agent_id: int) -> AgentRecord | None:
        with self._cursor() as cur:
            cur.execute("SELECT * FROM agents WHERE agent_id = ?", (agent_id,))
            row = cur.fetchone()
        if row is None:
            return None
        return AgentRecord(
            agent_id=row["agent_id"],
            owner_address=row["owner_address"],
            agent_uri=row["agent_uri"],
            is_active=bool(row["is_active"]),
            registered_at=row["registered_at"],
            registration_tx_hash=row["registration_tx_hash"],
            registration_block=row["registration_block"],
            updated_at=row["updated_at"],
        )

    # --- Feedback ---

    def insert_feedback(self, feedback: FeedbackRecord) -> bool:
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO feedback_events (
                    subject_address, submitter_address, tag, score, comment,
                    timestamp, tx_hash, block_number, log_index
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(tx_hash, log_index) DO NOTHING
                """,
                (
                    feedback.subject_address,
                    feedback.submitter_address,
                    feedback.tag,
                    feedback.score,
                    feedback.comment,
                    feedback.timestamp,
                    feedback.tx_hash,
                    feedback.block_number,
                    feedback.log_index,
                ),
            )
            return cur.rowcount == 1

    def revoke_feedback(
        self, subject: str, submitter: str, tag: str, revoked_at: int, block_number: int, log_index: int
    ) -> int:
        with self._cursor() as cur:
            cur.execute(
                """
                UPDATE feedback_events SET revoked_at = ?
                WHERE subject_address = ? AND submitter_address = ? AND tag = ?
                  AND revoked_at IS NULL
                  AND (block_number < ? OR (block_number = ? AND log_index < ?))
                """,
                (revoked_at, subject, submitter, tag, block_number, block_number, log_index),
            )
            return cur.rowcount

    def get_feedback_for_subject(
        self, subject: str, *, include_revoked: bool = False
    ) -> list[FeedbackRecord]:
        sql = "SELECT * FROM feedback_events WHERE subject_address = ?"
        if not include_revoked:
            sql += " AND revoked_at IS NULL"
        sql += " ORDER BY block_number, log_index"
        with self._cursor() as cur:
            cur.execute(sql, (subject,))
            rows = cur.fetchall()
        return [
            FeedbackRecord(
                id=row["id"],
                subject_address=row["subject_address"],
                submitter_address=row["submitter_address"],
                tag=row["tag"],
                score=row["score"],
                comment=row["comment"] or "",
                timestamp=row["timestamp"],
                tx_hash=row["tx_hash"],
                block_number=row["block_number"],
                log_index=row["log_index"],
                revoked_at=row["revoked_at"],
            )
            for row in rows
        ]

    # --- Services and payments ---

    def upsert_service(self, service: ServiceRecord) -> None:
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO services (service_id, is_active, agent_address, category)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(service_id) DO UPDATE SET
                    is_active = excluded.is_active,
                    agent_address = excluded.agent_address,
                    category = excluded.category
                """,
                (
                    service.service_id,
                    1 if service.is_active else 0,
                    service.agent_address,
                    service.category,
                ),
            )

    def get_service(self, service_id: str) -> ServiceRecord | None:
        with self._cursor() as cur:
            cur.execute("SELECT * FROM services WHERE service_id = ?", (service_id,))
            row = cur.fetchone()
        if row is None:
            return None
        return ServiceRecord(
            service_id=row["service_id"],
            is_active=bool(row["is_active"]),
            agent_address=row["agent_address"],
            category=row["category"],
        )

    def get_active_service_ids(self) -> list[str]:
        with self._cursor() as cur:
            cur.execute("SELECT service_id FROM services WHERE is_active = 1 ORDER BY service_id")
            return [row["service_id"] for row in cur.fetchall()]

    def insert_payment(self, payment: PaymentRecord) -> int:
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO payments (
                    service_id, payer_address, amount, status, latency_ms, block_timestamp, tx_hash, block_number
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    payment.service_id,
                    payment.payer_address,
                    str(payment.amount),
                    payment.status,
                    payment.latency_ms,
                    payment.block_timestamp,
                    payment.tx_hash,
                    payment.block_number,
                ),
            )
            return cur.lastrowid or 0

    def get_payments(self, service_id: str) -> list[PaymentRecord]:
        with self._cursor() as cur:
            cur.execute(
                "SELECT * FROM payments WHERE service_id = ? ORDER BY block_timestamp ASC, id ASC",
                (service_id,),
            )
            rows = cur.fetchall()
        return [self._payment_from_row(row) for row in rows]

    def get_unconfirmed_payments(self, limit: int) -> list[PaymentRecord]:
        with self._cursor() as cur:
            cur.execute(
                """
                SELECT * FROM payments
                WHERE block_number = 0 AND status = ? AND tx_hash IS NOT NULL
                ORDER BY id ASC
                LIMIT ?
                """,
                (PaymentStatus.SUCCESS.value, limit),
            )
            rows = cur.fetchall()
        return [self._payment_from_row(row) for row in rows]

    def set_payment_block_number(self, payment_id: int, block_number: int) -> bool:
        with self._cursor() as cur:
            cur.execute(
                "UPDATE payments SET block_number = ? WHERE id = ? AND block_number = 0",
                (block_number, payment_id),
            )
            return cur.rowcount == 1

    @staticmethod
    def _payment_from_row(row: sqlite3.Row) -> PaymentRecord:
        return PaymentRecord(
            id=row["id"],
            service_id=row["service_id"],
            payer_address=row["payer_address"],
            amount=Decimal(row["amount"]),
            status=row["status"],
            latency_ms=row["latency_ms"],
            block_timestamp=row["block_timestamp"],
            tx_hash=row["tx_hash"],
            block_number=row["block_number"],
        )

    # --- Reputation ---

    def upsert_reputation_score(self, score: ReputationScore, metrics: ReputationMetrics) -> None:
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO reputation_scores (
                    subject_id, total_payments, successful_payments, failed_payments, timeout_payments,
                    avg_latency_ms, median_latency_ms, p95_latency_ms, unique_payers, repeat_customers,
                    total_volume, first_payment_at, last_payment_at,
                    reputation_score, success_rate, reliability_score, speed_score, volume_score,
                    recency_weight, feedback_score, calculated_at, calculation_version
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(subject_id) DO UPDATE SET
                    total_payments = excluded.total_payments,
                    successful_payments = excluded.successful_payments,
                    failed_payments = excluded.failed_payments,
                    timeout_payments = excluded.timeout_payments,
                    avg_latency_ms = excluded.avg_latency_ms,
                    median_latency_ms = excluded.median_latency_ms,
                    p95_latency_ms = excluded.p95_latency_ms,
                    unique_payers = excluded.unique_payers,
                    repeat_customers = excluded.repeat_customers,
                    total_volume = excluded.total_volume,
                    first_payment_at = excluded.first_payment_at,
                    last_payment_at = excluded.last_payment_at,
                    reputation_score = excluded.reputation_score,
                    success_rate = excluded.success_rate,
                    reliability_score = excluded.reliability_score,
                    speed_score = excluded.speed_score,
                    volume_score = excluded.volume_score,
                    recency_weight = excluded.recency_weight,
                    feedback_score = excluded.feedback_score,
                    calculated_at = excluded.calculated_at,
                    calculation_version = excluded.calculation_version
                """,
                (
                    score.subject_id,
                    metrics.total_payments,
                    metrics.successful_payments,
                    metrics.failed_payments,
                    metrics.timeout_payments,
                    metrics.avg_latency_ms,
                    metrics.median_latency_ms,
                    metrics.p95_latency_ms,
                    metrics.unique_payers,
                    metrics.repeat_customers,
                    str(metrics.total_volume),
                    metrics.first_payment_at,
                    metrics.last_payment_at,
                    score.reputation_score,
                    score.success_rate,
                    score.reliability_score,
                    score.speed_score,
                    score.volume_score,
                    score.recency_weight,
                    score.feedback_score,
                    score.calculated_at,
                    score.calculation_version,
                ),
            )

    def get_reputation_score(self, subject_id: str) -> ReputationScore | None:
        with self._cursor() as cur:
            cur.execute("SELECT * FROM reputation_scores WHERE subject_id = ?", (subject_id,))
            row = cur.fetchone()
        if row is None:
            return None
        return ReputationScore(
            subject_id=row["subject_id"],
            reputation_score=row["reputation_score"],
            success_rate=row["success_rate"],
            reliability_score=row["reliability_score"],
            speed_score=row["speed_score"],
            volume_score=row["volume_score"],
            recency_weight=row["recency_weight"],
            calculated_at=row["calculated_at"],
            calculation_version=row["calculation_version"],
            feedback_score=row["feedback_score"],
        )

    def refresh_service_rankings(self) -> int:
        now = int(time.time())
        with self._cursor() as cur:
            cur.execute("DELETE FROM service_rankings")
            cur.execute(
                """
                INSERT INTO service_rankings (subject_id, reputation_score, rank, category, refreshed_at)
                SELECT r.subject_id,
                       r.reputation_score,
                       ROW_NUMBER() OVER (ORDER BY r.reputation_score DESC, r.subject_id ASC),
                       s.category,
                       ?
                FROM reputation_scores r
                LEFT JOIN services s ON s.service_id = r.subject_id
                WHERE COALESCE(s.is_active, 1) = 1
                """,
                (now,),
            )
            return cur.rowcount

    def get_top_services(self, *, limit: int = 10) -> list[ServiceRanking]:
        with self._cursor() as cur:
            cur.execute(
                """
                SELECT subject_id, reputation_score, rank, category, refreshed_at
                FROM service_rankings ORDER BY rank ASC LIMIT ?
                """,
                (limit,),
            )
            rows = cur.fetchall()
        return [
            ServiceRanking(
                subject_id=row["subject_id"],
                reputation_score=row["reputation_score"],
                rank=row["rank"],
                category=row["category"],
                refreshed_at=row["refreshed_at"],
            )
            for row in rows
        ]


# -----------------------------------------------------------------------------
# Database facade: single entrypoint; backend is swappable.
# -----------------------------------------------------------------------------


class Database:
    """
    Database abstraction: cursors, escrow ledger, transfers, registry, reputation.

    Uses a Backend (SQLite for MVP); replace with PostgreSQLBackend when upgrading.
    Addresses are normalized to lowercase on the way in.
    """

    def __init__(self, backend: DatabaseBackend) -> None:
        self._backend = backend

    def ensure_schema(self) -> None:
        """Create tables and indexes if they do not exist."""
        self._backend.ensure_schema()

    # --- Cursors ---

    def get_cursor(self, name: str) -> IndexerCursor | None:
        return self._backend.get_cursor(name)

    def set_cursor(self, name: str, last_block: int) -> None:
        """Persist the last fully processed block; a lower value than stored is ignored."""
        if last_block < 0:
            raise ValueError(f"last_block must be >= 0, got {last_block}")
        self._backend.set_cursor(name, last_block)

    # --- Escrow ---

    def record_session_event(
        self, event: SessionEvent, session: EscrowSession | None = None
    ) -> bool:
        """Append an escrow ledger row and apply its aggregates. False if already indexed."""
        if event.event_type == SessionEventType.CREATE and session is None:
            raise ValueError("CREATE events require the session row")
        if event.actor:
            event.actor = event.actor.lower()
        if session is not None:
            session.owner = session.owner.lower()
            session.escrow_agent = session.escrow_agent.lower()
        return self._backend.record_session_event(event, session)

    def get_escrow_session(self, session_id: str) -> EscrowSession | None:
        return self._backend.get_escrow_session(session_id)

    def get_session_events(self, session_id: str) -> list[SessionEvent]:
        return self._backend.get_session_events(session_id)

    def get_session_agents(self, session_id: str) -> list[SessionAgent]:
        return self._backend.get_session_agents(session_id)

    def get_agent_earnings(self, agent_address: str) -> AgentEarnings | None:
        return self._backend.get_agent_earnings(agent_address.lower())

    # --- Token transfers ---

    def insert_onchain_transaction(self, tx: OnChainTransaction) -> bool:
        tx.from_address = tx.from_address.lower()
        tx.to_address = tx.to_address.lower()
        return self._backend.insert_onchain_transaction(tx)

    def get_onchain_transactions(
        self, *, address: str | None = None, limit: int = 500
    ) -> list[OnChainTransaction]:
        return self._backend.get_onchain_transactions(
            address=address.lower() if address else None, limit=limit
        )

    # --- Agent registry ---

    def insert_agent(self, agent: AgentRecord) -> bool:
        agent.owner_address = agent.owner_address.lower()
        return self._backend.insert_agent(agent)

    def set_agent_active(self, agent_id: int, is_active: bool, updated_at: int) -> bool:
        return self._backend.set_agent_active(agent_id, is_active, updated_at)

    def update_agent_uri(self, agent_id: int, agent_uri: str, updated_at: int) -> bool:
        return self._backend.update_agent_uri(agent_id, agent_uri, updated_at)

    def get_agent(self, agent_id: int) -> AgentRecord | None:
        return self._backend.get_agent(agent_id)

    # --- Feedback ---

    def insert_feedback(self, feedback: FeedbackRecord) -> bool:
        feedback.subject_address = feedback.subject_address.lower()
        feedback.submitter_address = feedback.submitter_address.lower()
        return self._backend.insert_feedback(feedback)

    def revoke_feedback(
        self, subject: str, submitter: str, tag: str, revoked_at: int, block_number: int, log_index: int
    ) -> int:
        return self._backend.revoke_feedback(
            subject.lower(), submitter.lower(), tag, revoked_at, block_number, log_index
        )

    def get_feedback_for_subject(
        self, subject: str, *, include_revoked: bool = False
    ) -> list[FeedbackRecord]:
        return self._backend.get_feedback_for_subject(subject.lower(), include_revoked=include_revoked)

    # --- Services and payments ---

    def upsert_service(self, service: ServiceRecord) -> None:
        if service.agent_address:
            service.agent_address = service.agent_address.lower()
        self._backend.upsert_service(service)

    def get_service(self, service_id: str) -> ServiceRecord | None:
        return self._backend.get_service(service_id)

    def get_active_service_ids(self) -> list[str]:
        return self._backend.get_active_service_ids()

    def insert_payment(self, payment: PaymentRecord) -> int:
        payment.payer_address = payment.payer_address.lower()
        return self._backend.insert_payment(payment)

    def get_payments(self, service_id: str) -> list[PaymentRecord]:
        return self._backend.get_payments(service_id)

    def get_unconfirmed_payments(self, limit: int = 100) -> list[PaymentRecord]:
        return self._backend.get_unconfirmed_payments(limit)

    def set_payment_block_number(self, payment_id: int, block_number: int) -> bool:
        return self._backend.set_payment_block_number(payment_id, block_number)

    # --- Reputation ---

    def upsert_reputation_score(self, score: ReputationScore, metrics: ReputationMetrics) -> None:
        self._backend.upsert_reputation_score(score, metrics)

    def get_reputation_score(self, subject_id: str) -> ReputationScore | None:
        return self._backend.get_reputation_score(subject_id)

    def refresh_service_rankings(self) -> int:
        """Rebuild the materialized ranking from the latest snapshots."""
        count = self._backend.refresh_service_rankings()
        logger.info("service_rankings_refreshed", ranked=count)
        return count

    def get_top_services(self, *, limit: int = 10) -> list[ServiceRanking]:
        return self._backend.get_top_services(limit=limit)


def get_database(path: str | Path | None = None, *, decimals: int = 6) -> Database:
    """
    Return a Database instance for MVP (SQLite).

    path: Path to the SQLite file (e.g. "data/relay_indexer.db"). Default: "relay_indexer.db" in cwd.
    For PostgreSQL later: use a different factory that builds PostgreSQLBackend from URL.
    """
    if path is None:
        path = Path("relay_indexer.db")
    backend = SQLiteBackend(path, decimals=decimals)
    db = Database(backend)
    db.ensure_schema()
    return db

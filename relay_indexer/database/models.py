"""
Domain models for database entities.

Indexer cursors, escrow sessions and their event ledger, on-chain transfers,
agent registry state, feedback, payment outcomes and reputation snapshots.
Used by the repository layer; no ORM coupling so backends stay swappable.

Token amounts are stored as integers in base units (``*_units``) and exposed
as Decimal through properties, so aggregate math never touches floats.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

USDC_DECIMALS = 6


def units_to_decimal(units: int, decimals: int = USDC_DECIMALS) -> Decimal:
    """Convert base units to a token amount: 1_500_000 -> Decimal('1.500000')."""
    return Decimal(int(units)).scaleb(-decimals)


def decimal_to_units(amount: Decimal | str | int, decimals: int = USDC_DECIMALS) -> int:
    """Convert a token amount to base units; truncates anything below one unit."""
    return int(Decimal(str(amount)).scaleb(decimals))


class SessionEventType(str, enum.Enum):
    CREATE = "CREATE"
    DEPOSIT = "DEPOSIT"
    RELEASE = "RELEASE"
    REFUND = "REFUND"
    CLOSE = "CLOSE"
    AUTHORIZE = "AUTHORIZE"
    REVOKE = "REVOKE"


class PaymentStatus(str, enum.Enum):
    SUCCESS = "success"
    FAILED = "failed"
    TIMEOUT = "timeout"
    PENDING = "pending"


@dataclass
class IndexerCursor:
    """Last fully processed block for a named indexer."""

    name: str
    last_block: int
    updated_at: int | None = None
    """Unix timestamp (seconds) of the last cursor write."""


@dataclass
class EscrowSession:
    """Escrow session row; deposited/released are running aggregates of the ledger."""

    session_id: str
    owner: str
    escrow_agent: str
    max_spend_units: int
    expiry: int
    """Unix timestamp (seconds) after which the session can no longer spend."""
    created_at: int
    created_tx_hash: str
    created_block: int
    deposited_units: int = 0
    released_units: int = 0
    is_active: bool = True
    closed_at: int | None = None
    closed_tx_hash: str | None = None
    closed_block: int | None = None
    decimals: int = USDC_DECIMALS

    @property
    def max_spend(self) -> Decimal:
        return units_to_decimal(self.max_spend_units, self.decimals)

    @property
    def deposited(self) -> Decimal:
        return units_to_decimal(self.deposited_units, self.decimals)

    @property
    def released(self) -> Decimal:
        return units_to_decimal(self.released_units, self.decimals)

    @property
    def remaining(self) -> Decimal:
        return self.deposited - self.released


@dataclass
class SessionEvent:
    """Append-only ledger row: one per escrow chain event, never updated."""

    session_id: str
    event_type: SessionEventType
    timestamp: int
    tx_hash: str
    block_number: int
    log_index: int
    actor: str | None = None
    amount_units: int | None = None
    execution_id: str | None = None
    """bytes32 execution id as 0x-prefixed hex (RELEASE only)."""
    id: int | None = None
    decimals: int = USDC_DECIMALS

    @property
    def amount(self) -> Decimal | None:
        if self.amount_units is None:
            return None
        return units_to_decimal(self.amount_units, self.decimals)


@dataclass
class SessionAgent:
    """Authorization state of one agent within one escrow session."""

    session_id: str
    agent_address: str
    is_authorized: bool
    authorized_at: int | None = None
    revoked_at: int | None = None
    tx_hash: str | None = None
    block_number: int | None = None


@dataclass
class OnChainTransaction:
    """Ledger row for one token transfer log; unique by (tx_hash, log_index)."""

    tx_hash: str
    log_index: int
    from_address: str
    to_address: str
    value: Decimal
    type: str
    timestamp: int
    block_number: int
    block_hash: str | None = None
    status: str = "success"
    metadata: dict[str, Any] = field(default_factory=dict)
    """Opaque, versioned payload ({"v": 1, ...}); never read back for business logic."""


@dataclass
class AgentEarnings:
    """Running total of escrow releases paid to an agent address."""

    agent_address: str
    total_earned_units: int
    payment_count: int
    last_payment_at: int | None = None
    decimals: int = USDC_DECIMALS

    @property
    def total_earned(self) -> Decimal:
        return units_to_decimal(self.total_earned_units, self.decimals)


@dataclass
class AgentRecord:
    """Identity registry state for one agent id."""

    agent_id: int
    owner_address: str
    agent_uri: str
    is_active: bool
    registered_at: int
    registration_tx_hash: str
    registration_block: int
    updated_at: int | None = None


@dataclass
class FeedbackRecord:
    """One FeedbackSubmitted event from the reputation registry."""

    subject_address: str
    submitter_address: str
    tag: str
    score: int
    comment: str
    timestamp: int
    tx_hash: str
    block_number: int
    log_index: int
    revoked_at: int | None = None
    id: int | None = None


@dataclass
class ServiceRecord:
    """A service whose reputation is tracked; written by the service registry."""

    service_id: str
    is_active: bool = True
    agent_address: str | None = None
    category: str | None = None


@dataclass
class PaymentRecord:
    """Payment outcome row; written by the payment layer, read by reputation."""

    service_id: str
    payer_address: str
    amount: Decimal
    status: str
    block_timestamp: int
    latency_ms: int | None = None
    tx_hash: str | None = None
    block_number: int = 0
    id: int | None = None


@dataclass
class ServiceRanking:
    subject_id: str
    reputation_score: float
    rank: int
    category: str | None = None
    refreshed_at: int | None = None


@dataclass
class ReputationMetrics:
    """Aggregated payment outcomes for one subject; recomputed on every run."""

    total_payments: int
    successful_payments: int
    failed_payments: int
    timeout_payments: int
    avg_latency_ms: float
    median_latency_ms: float
    p95_latency_ms: float
    unique_payers: int
    repeat_customers: int
    total_volume: Decimal
    first_payment_at: int
    last_payment_at: int


@dataclass
class ReputationScore:
    """Composite reputation for one subject, with its component scores."""

    subject_id: str
    reputation_score: float
    success_rate: float
    reliability_score: float
    speed_score: float
    volume_score: float
    recency_weight: float
    calculated_at: int
    calculation_version: int = 1
    feedback_score: float | None = None
    """Time-decayed mean of on-chain feedback for the subject's agent; informational."""

    def to_dict(self) -> dict[str, Any]:
        return {
            "subject_id": self.subject_id,
            "reputation_score": self.reputation_score,
            "success_rate": self.success_rate,
            "reliability_score": self.reliability_score,
            "speed_score": self.speed_score,
            "volume_score": self.volume_score,
            "recency_weight": self.recency_weight,
            "calculated_at": self.calculated_at,
            "calculation_version": self.calculation_version,
            "feedback_score": self.feedback_score,
        }

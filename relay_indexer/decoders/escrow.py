"""
Escrow session contract events.

Seven lifecycle events keyed by sessionId. decode_escrow_log() routes a raw
log by topic0 to its typed event; anything else is a DecodeError.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from relay_indexer.chain.models import RawLog
from relay_indexer.core.exceptions import DecodeError
from relay_indexer.decoders.abi import ChainEvent, EventSpec

SESSION_CREATED = EventSpec.parse(
    "event SessionCreated(uint256 indexed sessionId, address indexed owner, "
    "address escrowAgent, uint256 maxSpend, uint256 expiry)"
)
FUNDS_DEPOSITED = EventSpec.parse(
    "event FundsDeposited(uint256 indexed sessionId, address indexed depositor, uint256 amount)"
)
PAYMENT_RELEASED = EventSpec.parse(
    "event PaymentReleased(uint256 indexed sessionId, address indexed agent, uint256 amount, bytes32 executionId)"
)
SESSION_REFUNDED = EventSpec.parse(
    "event SessionRefunded(uint256 indexed sessionId, address indexed owner, uint256 amount)"
)
SESSION_CLOSED = EventSpec.parse("event SessionClosed(uint256 indexed sessionId)")
AGENT_AUTHORIZED = EventSpec.parse(
    "event AgentAuthorized(uint256 indexed sessionId, address indexed agent)"
)
AGENT_REVOKED = EventSpec.parse("event AgentRevoked(uint256 indexed sessionId, address indexed agent)")

ESCROW_EVENTS = (
    SESSION_CREATED,
    FUNDS_DEPOSITED,
    PAYMENT_RELEASED,
    SESSION_REFUNDED,
    SESSION_CLOSED,
    AGENT_AUTHORIZED,
    AGENT_REVOKED,
)


@dataclass(frozen=True)
class SessionCreated(ChainEvent):
    session_id: int
    owner: str
    escrow_agent: str
    max_spend: int
    expiry: int


@dataclass(frozen=True)
class FundsDeposited(ChainEvent):
    session_id: int
    depositor: str
    amount: int


@dataclass(frozen=True)
class PaymentReleased(ChainEvent):
    session_id: int
    agent: str
    amount: int
    execution_id: str


@dataclass(frozen=True)
class SessionRefunded(ChainEvent):
    session_id: int
    owner: str
    amount: int


@dataclass(frozen=True)
class SessionClosed(ChainEvent):
    session_id: int


@dataclass(frozen=True)
class AgentAuthorized(ChainEvent):
    session_id: int
    agent: str


@dataclass(frozen=True)
class AgentRevoked(ChainEvent):
    session_id: int
    agent: str


EscrowEvent = Union[
    SessionCreated,
    FundsDeposited,
    PaymentReleased,
    SessionRefunded,
    SessionClosed,
    AgentAuthorized,
    AgentRevoked,
]


def decode_escrow_log(log: RawLog, timestamp: int) -> EscrowEvent:
    """Decode one escrow contract log. Raises DecodeError for unknown or malformed logs."""
    pos = ChainEvent.position(log, timestamp)
    topic = log.topic0
    if topic == SESSION_CREATED.topic:
        a = SESSION_CREATED.decode_args(log)
        return SessionCreated(
            **pos,
            session_id=a["sessionId"],
            owner=a["owner"],
            escrow_agent=a["escrowAgent"],
            max_spend=a["maxSpend"],
            expiry=a["expiry"],
        )
    if topic == FUNDS_DEPOSITED.topic:
        a = FUNDS_DEPOSITED.decode_args(log)
        return FundsDeposited(**pos, session_id=a["sessionId"], depositor=a["depositor"], amount=a["amount"])
    if topic == PAYMENT_RELEASED.topic:
        a = PAYMENT_RELEASED.decode_args(log)
        return PaymentReleased(
            **pos,
            session_id=a["sessionId"],
            agent=a["agent"],
            amount=a["amount"],
            execution_id=a["executionId"],
        )
    if topic == SESSION_REFUNDED.topic:
        a = SESSION_REFUNDED.decode_args(log)
        return SessionRefunded(**pos, session_id=a["sessionId"], owner=a["owner"], amount=a["amount"])
    if topic == SESSION_CLOSED.topic:
        a = SESSION_CLOSED.decode_args(log)
        return SessionClosed(**pos, session_id=a["sessionId"])
    if topic == AGENT_AUTHORIZED.topic:
        a = AGENT_AUTHORIZED.decode_args(log)
        return AgentAuthorized(**pos, session_id=a["sessionId"], agent=a["agent"])
    if topic == AGENT_REVOKED.topic:
        a = AGENT_REVOKED.decode_args(log)
        return AgentRevoked(**pos, session_id=a["sessionId"], agent=a["agent"])
    raise DecodeError(f"Unknown escrow event topic {topic}", tx_hash=log.tx_hash, log_index=log.log_index)

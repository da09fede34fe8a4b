"""
Identity registry (agents) and reputation registry (feedback) events.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from relay_indexer.chain.models import RawLog
from relay_indexer.core.exceptions import DecodeError
from relay_indexer.decoders.abi import ChainEvent, EventSpec

AGENT_REGISTERED = EventSpec.parse(
    "event AgentRegistered(uint256 indexed agentId, address indexed owner, string agentURI)"
)
AGENT_DEACTIVATED = EventSpec.parse("event AgentDeactivated(uint256 indexed agentId)")
AGENT_REACTIVATED = EventSpec.parse("event AgentReactivated(uint256 indexed agentId)")
AGENT_URI_UPDATED = EventSpec.parse("event AgentURIUpdated(uint256 indexed agentId, string newURI)")

IDENTITY_EVENTS = (AGENT_REGISTERED, AGENT_DEACTIVATED, AGENT_REACTIVATED, AGENT_URI_UPDATED)

FEEDBACK_SUBMITTED = EventSpec.parse(
    "event FeedbackSubmitted(address indexed subject, address indexed submitter, "
    "string tag, uint8 score, string comment)"
)
FEEDBACK_REVOKED = EventSpec.parse(
    "event FeedbackRevoked(address indexed subject, address indexed submitter, string tag)"
)

FEEDBACK_EVENTS = (FEEDBACK_SUBMITTED, FEEDBACK_REVOKED)


@dataclass(frozen=True)
class AgentRegistered(ChainEvent):
    agent_id: int
    owner: str
    agent_uri: str


@dataclass(frozen=True)
class AgentStatusChanged(ChainEvent):
    """AgentDeactivated (is_active False) or AgentReactivated (True)."""

    agent_id: int
    is_active: bool


@dataclass(frozen=True)
class AgentURIUpdated(ChainEvent):
    agent_id: int
    agent_uri: str


@dataclass(frozen=True)
class FeedbackSubmitted(ChainEvent):
    subject: str
    submitter: str
    tag: str
    score: int
    comment: str


@dataclass(frozen=True)
class FeedbackRevoked(ChainEvent):
    subject: str
    submitter: str
    tag: str


AgentEvent = Union[AgentRegistered, AgentStatusChanged, AgentURIUpdated]
FeedbackEvent = Union[FeedbackSubmitted, FeedbackRevoked]


def decode_agent_log(log: RawLog, timestamp: int) -> AgentEvent:
    pos = ChainEvent.position(log, timestamp)
    topic = log.topic0
    if topic == AGENT_REGISTERED.topic:
        a = AGENT_REGISTERED.decode_args(log)
        return AgentRegistered(**pos, agent_id=a["agentId"], owner=a["owner"], agent_uri=a["agentURI"])
    if topic == AGENT_DEACTIVATED.topic:
        a = AGENT_DEACTIVATED.decode_args(log)
        return AgentStatusChanged(**pos, agent_id=a["agentId"], is_active=False)
    if topic == AGENT_REACTIVATED.topic:
        a = AGENT_REACTIVATED.decode_args(log)
        return AgentStatusChanged(**pos, agent_id=a["agentId"], is_active=True)
    if topic == AGENT_URI_UPDATED.topic:
        a = AGENT_URI_UPDATED.decode_args(log)
        return AgentURIUpdated(**pos, agent_id=a["agentId"], agent_uri=a["newURI"])
    raise DecodeError(f"Unknown identity event topic {topic}", tx_hash=log.tx_hash, log_index=log.log_index)


def decode_feedback_log(log: RawLog, timestamp: int) -> FeedbackEvent:
    pos = ChainEvent.position(log, timestamp)
    topic = log.topic0
    if topic == FEEDBACK_SUBMITTED.topic:
        a = FEEDBACK_SUBMITTED.decode_args(log)
        if not 0 <= a["score"] <= 100:
            raise DecodeError(
                f"Feedback score out of range: {a['score']}", tx_hash=log.tx_hash, log_index=log.log_index
            )
        return FeedbackSubmitted(
            **pos,
            subject=a["subject"],
            submitter=a["submitter"],
            tag=a["tag"],
            score=a["score"],
            comment=a["comment"],
        )
    if topic == FEEDBACK_REVOKED.topic:
        a = FEEDBACK_REVOKED.decode_args(log)
        return FeedbackRevoked(**pos, subject=a["subject"], submitter=a["submitter"], tag=a["tag"])
    raise DecodeError(f"Unknown feedback event topic {topic}", tx_hash=log.tx_hash, log_index=log.log_index)

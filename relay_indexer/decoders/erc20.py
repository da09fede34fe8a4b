"""
ERC-20 Transfer and EIP-3009 TransferWithAuthorization events (USDC).
"""

from __future__ import annotations

from dataclasses import dataclass

from relay_indexer.chain.models import RawLog
from relay_indexer.core.exceptions import DecodeError
from relay_indexer.decoders.abi import ChainEvent, EventSpec

TRANSFER = EventSpec.parse("event Transfer(address indexed from, address indexed to, uint256 value)")
TRANSFER_WITH_AUTHORIZATION = EventSpec.parse(
    "event TransferWithAuthorization(address indexed from, address indexed to, uint256 value, "
    "uint256 validAfter, uint256 validBefore, bytes32 nonce)"
)

TRANSFER_TOPICS = [TRANSFER.topic, TRANSFER_WITH_AUTHORIZATION.topic]


@dataclass(frozen=True)
class TokenTransfer(ChainEvent):
    """A token transfer; is_x402 marks gasless EIP-3009 authorizations."""

    from_address: str
    to_address: str
    value: int
    is_x402: bool = False
    nonce: str | None = None


def decode_transfer_log(log: RawLog, timestamp: int) -> TokenTransfer:
    """Decode a Transfer or TransferWithAuthorization log."""
    pos = ChainEvent.position(log, timestamp)
    if log.topic0 == TRANSFER.topic:
        a = TRANSFER.decode_args(log)
        return TokenTransfer(**pos, from_address=a["from"], to_address=a["to"], value=a["value"])
    if log.topic0 == TRANSFER_WITH_AUTHORIZATION.topic:
        a = TRANSFER_WITH_AUTHORIZATION.decode_args(log)
        return TokenTransfer(
            **pos,
            from_address=a["from"],
            to_address=a["to"],
            value=a["value"],
            is_x402=True,
            nonce=a["nonce"],
        )
    raise DecodeError(f"Unknown transfer topic {log.topic0}", tx_hash=log.tx_hash, log_index=log.log_index)

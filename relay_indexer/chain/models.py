"""
Data models for chain RPC output.

RawLog mirrors one eth_getLogs result item with hex quantities parsed to int.
It is the unit of work handed from the scanner to the event decoders.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


def hex_to_int(value: Any) -> int:
    """Parse a JSON-RPC quantity ("0x1a") or plain int."""
    if isinstance(value, int):
        return value
    return int(str(value), 16)


@dataclass(frozen=True)
class RawLog:
    """
    Normalized EVM log from eth_getLogs.

    Addresses and hashes are lowercase 0x-hex; topics[0] is the event signature hash.
    """

    address: str
    topics: tuple[str, ...]
    data: str
    block_number: int
    block_hash: str | None
    tx_hash: str
    log_index: int
    removed: bool = False

    @property
    def key(self) -> tuple[str, int]:
        """Natural key of the log on chain."""
        return (self.tx_hash, self.log_index)

    @property
    def topic0(self) -> str | None:
        return self.topics[0] if self.topics else None

    @classmethod
    def from_rpc_item(cls, item: dict[str, Any]) -> "RawLog":
        """Build from a single eth_getLogs result item."""
        return cls(
            address=str(item["address"]).lower(),
            topics=tuple(str(t).lower() for t in item.get("topics") or ()),
            data=str(item.get("data") or "0x"),
            block_number=hex_to_int(item["blockNumber"]),
            block_hash=(item.get("blockHash") or None),
            tx_hash=str(item["transactionHash"]).lower(),
            log_index=hex_to_int(item["logIndex"]),
            removed=bool(item.get("removed", False)),
        )

"""
Chain log scanner: block windows, filtered eth_getLogs, block timestamps.

Responsibilities:
- Compute the next block window for an indexer from its cursor.
- Run one eth_getLogs per topic filter, merge, de-duplicate by (tx_hash, log_index),
  drop removed (re-orged) logs and return them in chain order.
- Fetch each distinct block timestamp once per run.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Sequence

from eth_abi import encode
from eth_utils import to_checksum_address

from relay_indexer.chain.models import RawLog
from relay_indexer.chain.rpc import ChainRpcClient
from relay_indexer.logging import get_logger

logger = get_logger(__name__)

# Position-wise topic filter: topic hex, list of alternatives, or None (wildcard)
TopicFilter = Sequence[Any]


def address_topic(address: str) -> str:
    """Left-pad an address to a 32-byte topic: 0x000...0<20-byte address>."""
    return "0x" + encode(["address"], [to_checksum_address(address)]).hex()


@dataclass(frozen=True)
class BlockWindow:
    """Inclusive block range for one indexer run."""

    from_block: int
    to_block: int

    @property
    def size(self) -> int:
        return self.to_block - self.from_block + 1


class LogScanner:
    """Wraps a ChainRpcClient with window planning and log normalization."""

    def __init__(
        self,
        rpc: ChainRpcClient,
        *,
        max_blocks_per_run: int = 1000,
        block_confirmations: int = 0,
    ) -> None:
        if max_blocks_per_run < 1:
            raise ValueError("max_blocks_per_run must be at least 1")
        self._rpc = rpc
        self._max_blocks = max_blocks_per_run
        self._confirmations = max(0, block_confirmations)

    @property
    def rpc(self) -> ChainRpcClient:
        return self._rpc

    def head(self) -> int:
        """Latest block considered final: chain head minus confirmation depth."""
        return max(0, self._rpc.block_number() - self._confirmations)

    def next_window(
        self,
        last_block: int | None,
        *,
        start_block: int = 0,
        lookback_blocks: int = 10_000,
    ) -> BlockWindow | None:
        """
        Window after ``last_block`` capped at max_blocks_per_run and head.

        last_block None (never run): start at start_block if set, else
        head - lookback_blocks. Returns None when there is nothing new.
        """
        head = self.head()
        if last_block is None:
            from_block = start_block if start_block > 0 else max(0, head - lookback_blocks)
        else:
            from_block = last_block + 1
        to_block = min(from_block + self._max_blocks - 1, head)
        if from_block > to_block:
            return None
        return BlockWindow(from_block=from_block, to_block=to_block)

    def scan(
        self,
        address: str,
        topic_filters: Iterable[TopicFilter],
        from_block: int,
        to_block: int,
    ) -> list[RawLog]:
        """
        Logs emitted by ``address`` matching any of ``topic_filters`` in [from_block, to_block].

        Raises RpcError if any underlying call fails; no partial results.
        """
        seen: dict[tuple[str, int], RawLog] = {}
        removed = 0
        for topics in topic_filters:
            for log in self._rpc.get_logs(address, list(topics), from_block, to_block):
                if log.removed:
                    removed += 1
                    continue
                seen.setdefault(log.key, log)
        logs = sorted(seen.values(), key=lambda lg: (lg.block_number, lg.log_index))
        logger.debug(
            "scanner_logs_fetched",
            address=address,
            from_block=from_block,
            to_block=to_block,
            log_count=len(logs),
            removed=removed,
        )
        return logs

    def block_timestamps(self, logs: Iterable[RawLog]) -> dict[int, int]:
        """Map block number to unix timestamp for every distinct block in ``logs``."""
        timestamps: dict[int, int] = {}
        for block_number in sorted({log.block_number for log in logs}):
            timestamps[block_number] = self._rpc.get_block_timestamp(block_number)
        return timestamps

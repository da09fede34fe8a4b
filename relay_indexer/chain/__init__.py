"""
Chain access: JSON-RPC client, raw log model and the log scanner.
"""

from relay_indexer.chain.models import RawLog
from relay_indexer.chain.rpc import ChainRpcClient
from relay_indexer.chain.scanner import BlockWindow, LogScanner, address_topic

__all__ = [
    "BlockWindow",
    "ChainRpcClient",
    "LogScanner",
    "RawLog",
    "address_topic",
]

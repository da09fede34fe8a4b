"""
Core: shared exception taxonomy and cross-cutting helpers.

Used by the chain client, decoders, indexers, reputation engine and
the suite runtime.
"""

from relay_indexer.core.exceptions import (
    ConfigurationError,
    DecodeError,
    RelayIndexerError,
    RpcError,
    SnapshotWriteError,
    UnknownIndexerError,
)

__all__ = [
    "ConfigurationError",
    "DecodeError",
    "RelayIndexerError",
    "RpcError",
    "SnapshotWriteError",
    "UnknownIndexerError",
]

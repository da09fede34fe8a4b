"""
Application-level exceptions.

- RpcError: transient chain RPC failure; the current run aborts and the
  cursor stays where it was, so the next tick retries the same window.
- DecodeError: one log could not be decoded; logged and skipped.
- SnapshotWriteError: a reputation snapshot could not be persisted after retries.
- ConfigurationError: fatal at startup.
"""

from __future__ import annotations


class RelayIndexerError(Exception):
    """Base class for all relay indexer errors."""


class ConfigurationError(RelayIndexerError):
    """Missing or invalid configuration (contract address, wallet, RPC URL)."""


class RpcError(RelayIndexerError):
    """Chain JSON-RPC transport or protocol error."""

    def __init__(self, message: str, *, method: str | None = None, code: int | None = None) -> None:
        super().__init__(message)
        self.method = method
        self.code = code


class DecodeError(RelayIndexerError):
    """A raw log does not match the event it was routed to."""

    def __init__(self, message: str, *, tx_hash: str | None = None, log_index: int | None = None) -> None:
        super().__init__(message)
        self.tx_hash = tx_hash
        self.log_index = log_index


class SnapshotWriteError(RelayIndexerError):
    """Reputation snapshot upsert failed after all retries."""


class UnknownIndexerError(RelayIndexerError, KeyError):
    """Manual trigger asked for an indexer name that is not registered."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "unknown indexer"

"""
EVM JSON-RPC client (read-only): eth_blockNumber, eth_getLogs, eth_getBlockByNumber.

Synchronous httpx client shared by the indexer threads. Transport failures are
retried with exponential backoff; JSON-RPC error responses are not (they are
deterministic for the same request). Either way the caller sees RpcError and
no partial result.
"""

from __future__ import annotations

import itertools
import threading
import time
from typing import Any, Callable

import httpx

from relay_indexer.chain.models import RawLog, hex_to_int
from relay_indexer.core.exceptions import RpcError
from relay_indexer.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT_SEC = 30.0
MAX_RETRY_DELAY_SEC = 30.0


class ChainRpcClient:
    """
    Thin JSON-RPC wrapper around httpx.Client.

    One instance is built at process start and injected into every job;
    httpx.Client is thread-safe, the request id counter is guarded.
    """

    def __init__(
        self,
        rpc_url: str,
        *,
        timeout_sec: float = DEFAULT_TIMEOUT_SEC,
        max_retries: int = 3,
        retry_delay_sec: float = 1.0,
        max_retry_delay_sec: float = MAX_RETRY_DELAY_SEC,
        transport: httpx.BaseTransport | None = None,
        sleep_fn: Callable[[float], None] = time.sleep,
    ) -> None:
        """
        Args:
            rpc_url: HTTP JSON-RPC endpoint (e.g. https://evm-t3.cronos.org).
            timeout_sec: Per-request HTTP timeout.
            max_retries: Attempts per call before raising RpcError (min 1).
            retry_delay_sec: Initial backoff delay; doubles per attempt.
            transport: Optional httpx transport (tests pass httpx.MockTransport).
            sleep_fn: Injected for tests.
        """
        if not rpc_url.strip():
            raise ValueError("rpc_url must be non-empty")
        self._rpc_url = rpc_url.rstrip("/")
        self._max_retries = max(1, max_retries)
        self._retry_delay = retry_delay_sec
        self._max_retry_delay = max_retry_delay_sec
        self._sleep = sleep_fn
        self._ids = itertools.count(1)
        self._id_lock = threading.Lock()
        self._client = httpx.Client(timeout=httpx.Timeout(timeout_sec), transport=transport)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "ChainRpcClient":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def _next_id(self) -> int:
        with self._id_lock:
            return next(self._ids)

    def call(self, method: str, params: list[Any]) -> Any:
        """Perform one JSON-RPC call with retry; return ``result`` or raise RpcError."""
        body = {"jsonrpc": "2.0", "id": self._next_id(), "method": method, "params": params}
        delay = self._retry_delay
        last_error: Exception | None = None
        for attempt in range(self._max_retries):
            try:
                resp = self._client.post(self._rpc_url, json=body)
                resp.raise_for_status()
                data = resp.json()
            except (httpx.HTTPError, ValueError) as e:
                last_error = e
                logger.warning(
                    "rpc_retry",
                    method=method,
                    attempt=attempt + 1,
                    max_retries=self._max_retries,
                    error=str(e),
                )
                if attempt + 1 < self._max_retries:
                    self._sleep(delay)
                    delay = min(delay * 2, self._max_retry_delay)
                continue
            if "error" in data and data["error"]:
                err = data["error"]
                message = err.get("message", err) if isinstance(err, dict) else err
                code = err.get("code") if isinstance(err, dict) else None
                raise RpcError(f"RPC error on {method}: {message}", method=method, code=code)
            if "result" not in data:
                raise RpcError(f"RPC returned no result for {method}", method=method)
            return data["result"]
        logger.error("rpc_give_up", method=method, max_retries=self._max_retries, error=str(last_error))
        raise RpcError(f"RPC {method} failed after {self._max_retries} attempts: {last_error}", method=method)

    def block_number(self) -> int:
        return hex_to_int(self.call("eth_blockNumber", []))

    def get_logs(
        self,
        address: str,
        topics: list[Any],
        from_block: int,
        to_block: int,
    ) -> list[RawLog]:
        """
        eth_getLogs over an inclusive block range.

        topics follows the JSON-RPC filter shape: position-wise, each entry is a
        topic hex, a list of alternatives (OR), or None (wildcard).
        """
        params = {
            "address": address,
            "topics": topics,
            "fromBlock": hex(from_block),
            "toBlock": hex(to_block),
        }
        result = self.call("eth_getLogs", [params])
        if not isinstance(result, list):
            raise RpcError("eth_getLogs returned a non-list result", method="eth_getLogs")
        try:
            return [RawLog.from_rpc_item(item) for item in result]
        except (KeyError, TypeError, ValueError) as e:
            raise RpcError(f"eth_getLogs returned a malformed log: {e}", method="eth_getLogs") from e

    def get_block_timestamp(self, block_number: int) -> int:
        """Unix timestamp (seconds) of a block."""
        block = self.call("eth_getBlockByNumber", [hex(block_number), False])
        if not block or "timestamp" not in block:
            raise RpcError(f"Block {block_number} not found", method="eth_getBlockByNumber")
        return hex_to_int(block["timestamp"])

    def get_transaction(self, tx_hash: str) -> dict[str, Any] | None:
        """eth_getTransactionByHash; None if the node does not know the hash."""
        tx = self.call("eth_getTransactionByHash", [tx_hash])
        if tx is not None and not isinstance(tx, dict):
            raise RpcError("eth_getTransactionByHash returned a non-object result", method="eth_getTransactionByHash")
        return tx

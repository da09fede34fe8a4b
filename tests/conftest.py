"""
Pytest fixtures for relay indexer tests.

Uses a temporary SQLite DB and an in-memory fake EVM node served through
httpx.MockTransport, so indexers run end to end without a real RPC.
Logs are ABI-encoded with eth_abi exactly as a node would return them.
"""

from __future__ import annotations

import itertools
import json
from typing import Any

import httpx
import pytest
from eth_abi import encode
from eth_utils import keccak

from relay_indexer.chain import ChainRpcClient, LogScanner, address_topic
from relay_indexer.database import get_database
from relay_indexer.decoders.abi import EventSpec

RPC_URL = "http://rpc.test"
BASE_TIMESTAMP = 1_700_000_000
SECONDS_PER_BLOCK = 6


def _topic_for(type_: str, value: Any) -> str:
    if type_ == "address":
        return address_topic(value)
    if type_ in ("string", "bytes"):
        raw = value.encode("utf-8") if isinstance(value, str) else value
        return "0x" + keccak(raw).hex()
    return "0x" + encode([type_], [value]).hex()


class FakeChain:
    """
    Minimal EVM node: eth_blockNumber, eth_getLogs, eth_getBlockByNumber and
    eth_getTransactionByHash.

    emit() appends an encoded log; handler() answers JSON-RPC requests and
    records every call in ``calls``. Methods listed in ``failing`` answer
    with HTTP 503 so the client exhausts its retries. ``transactions`` maps a
    tx hash to its block (None while pending); hashes in ``broken_transactions``
    answer with a JSON-RPC error.
    """

    def __init__(self, head: int = 100) -> None:
        self.head = head
        self.logs: list[dict[str, Any]] = []
        self.calls: list[tuple[str, list[Any]]] = []
        self.failing: set[str] = set()
        self.timestamps: dict[int, int] = {}
        self.transactions: dict[str, int | None] = {}
        self.broken_transactions: set[str] = set()
        self._tx_ids = itertools.count(1)
        self._log_indexes: dict[int, itertools.count] = {}

    def block_timestamp(self, block: int) -> int:
        return self.timestamps.get(block, BASE_TIMESTAMP + block * SECONDS_PER_BLOCK)

    def emit(
        self,
        address: str,
        spec: EventSpec,
        args: dict[str, Any],
        *,
        block: int,
        tx_hash: str | None = None,
        log_index: int | None = None,
        removed: bool = False,
    ) -> dict[str, Any]:
        topics = [spec.topic] + [_topic_for(p.type, args[p.name]) for p in spec.indexed_params]
        data_params = spec.data_params
        data = encode([p.type for p in data_params], [args[p.name] for p in data_params]) if data_params else b""
        if log_index is None:
            log_index = next(self._log_indexes.setdefault(block, itertools.count(0)))
        item = {
            "address": address,
            "topics": topics,
            "data": "0x" + data.hex(),
            "blockNumber": hex(block),
            "blockHash": "0x" + f"{block:064x}",
            "transactionHash": tx_hash or "0x" + f"{next(self._tx_ids):064x}",
            "logIndex": hex(log_index),
            "removed": removed,
        }
        self.logs.append(item)
        return item

    def methods_called(self, method: str) -> list[list[Any]]:
        return [params for m, params in self.calls if m == method]

    def _matches(self, item: dict[str, Any], flt: dict[str, Any]) -> bool:
        if item["address"].lower() != str(flt["address"]).lower():
            return False
        block = int(item["blockNumber"], 16)
        if not int(flt["fromBlock"], 16) <= block <= int(flt["toBlock"], 16):
            return False
        for position, wanted in enumerate(flt.get("topics") or []):
            if wanted is None:
                continue
            if position >= len(item["topics"]):
                return False
            actual = item["topics"][position].lower()
            options = wanted if isinstance(wanted, list) else [wanted]
            if actual not in [o.lower() for o in options]:
                return False
        return True

    def _result(self, method: str, params: list[Any]) -> Any:
        if method == "eth_blockNumber":
            return hex(self.head)
        if method == "eth_getLogs":
            flt = params[0]
            return [item for item in self.logs if self._matches(item, flt)]
        if method == "eth_getBlockByNumber":
            block = int(params[0], 16)
            if block > self.head:
                return None
            return {"number": params[0], "timestamp": hex(self.block_timestamp(block))}
        if method == "eth_getTransactionByHash":
            tx_hash = params[0]
            if tx_hash not in self.transactions:
                return None
            block = self.transactions[tx_hash]
            return {
                "hash": tx_hash,
                "blockNumber": None if block is None else hex(block),
                "blockHash": None if block is None else "0x" + f"{block:064x}",
            }
        raise KeyError(method)

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        method, params = body["method"], body["params"]
        self.calls.append((method, params))
        if method in self.failing:
            return httpx.Response(503, json={"error": "unavailable"})
        if method == "eth_getTransactionByHash" and params[0] in self.broken_transactions:
            return httpx.Response(
                200,
                json={"jsonrpc": "2.0", "id": body["id"], "error": {"code": -32000, "message": "backend unavailable"}},
            )
        try:
            result = self._result(method, params)
        except KeyError:
            return httpx.Response(
                200,
                json={"jsonrpc": "2.0", "id": body["id"], "error": {"code": -32601, "message": "method not found"}},
            )
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})


@pytest.fixture
def db(tmp_path):
    """Fresh SQLite database with the full schema."""
    return get_database(tmp_path / "relay_indexer.db")


@pytest.fixture
def chain():
    return FakeChain(head=100)


@pytest.fixture
def rpc(chain):
    client = ChainRpcClient(
        RPC_URL,
        max_retries=2,
        retry_delay_sec=0.0,
        transport=httpx.MockTransport(chain.handler),
        sleep_fn=lambda _: None,
    )
    yield client
    client.close()


@pytest.fixture
def scanner(rpc):
    return LogScanner(rpc, max_blocks_per_run=1000, block_confirmations=0)

"""
Event ABI parsing and log decoding.

EventSpec.parse() takes a human-readable fragment such as
``event Transfer(address indexed from, address indexed to, uint256 value)``;
its topic is keccak-256 of the canonical signature. Indexed static params are
decoded from topics[1:], the rest from data, both with eth_abi.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from eth_abi import decode
from eth_abi.exceptions import DecodingError
from eth_utils import keccak

from relay_indexer.chain.models import RawLog
from relay_indexer.core.exceptions import DecodeError

_EVENT_RE = re.compile(r"^\s*(?:event\s+)?([A-Za-z_]\w*)\s*\((.*)\)\s*;?\s*$", re.DOTALL)
_TYPE_RE = re.compile(r"^(u?int\d*|address|bool|bytes\d*|string)(\[\d*\])*$")

# Indexed params of these types are stored as keccak hashes in topics
_DYNAMIC_TYPES = ("string", "bytes")


@dataclass(frozen=True)
class EventParam:
    type: str
    name: str
    indexed: bool = False

    @property
    def is_hashed_when_indexed(self) -> bool:
        return self.type in _DYNAMIC_TYPES or self.type.endswith("]")


def _canonical_type(type_: str) -> str:
    if type_ == "uint":
        return "uint256"
    if type_ == "int":
        return "int256"
    return type_


def _normalize_value(type_: str, value: Any) -> Any:
    """Lowercase addresses and 0x-hex fixed bytes; leave ints and strings as-is."""
    if type_ == "address":
        return str(value).lower()
    if type_.startswith("bytes") and isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    return value


@dataclass(frozen=True)
class ChainEvent:
    """Position of a decoded event on chain; every typed event extends this."""

    tx_hash: str
    log_index: int
    block_number: int
    timestamp: int
    block_hash: str | None

    @staticmethod
    def position(log: RawLog, timestamp: int) -> dict[str, Any]:
        return {
            "tx_hash": log.tx_hash,
            "log_index": log.log_index,
            "block_number": log.block_number,
            "timestamp": timestamp,
            "block_hash": log.block_hash,
        }


@dataclass(frozen=True)
class EventSpec:
    """Parsed event ABI: name, ordered params, canonical signature and topic0."""

    name: str
    params: tuple[EventParam, ...]
    signature: str
    topic: str

    @classmethod
    def parse(cls, fragment: str) -> "EventSpec":
        match = _EVENT_RE.match(fragment)
        if not match:
            raise ValueError(f"Not an event fragment: {fragment!r}")
        name, body = match.group(1), match.group(2).strip()
        params: list[EventParam] = []
        if body:
            for position, raw in enumerate(body.split(",")):
                parts = raw.split()
                if not parts:
                    raise ValueError(f"Empty parameter in {fragment!r}")
                type_ = _canonical_type(parts[0])
                if not _TYPE_RE.match(type_):
                    raise ValueError(f"Unsupported ABI type {parts[0]!r} in {fragment!r}")
                indexed = "indexed" in parts[1:]
                names = [p for p in parts[1:] if p != "indexed"]
                params.append(EventParam(type=type_, name=names[0] if names else f"arg{position}", indexed=indexed))
        signature = f"{name}({','.join(p.type for p in params)})"
        topic = "0x" + keccak(text=signature).hex()
        return cls(name=name, params=tuple(params), signature=signature, topic=topic)

    @property
    def indexed_params(self) -> tuple[EventParam, ...]:
        return tuple(p for p in self.params if p.indexed)

    @property
    def data_params(self) -> tuple[EventParam, ...]:
        return tuple(p for p in self.params if not p.indexed)

    def matches(self, log: RawLog) -> bool:
        return log.topic0 == self.topic

    def decode_args(self, log: RawLog) -> dict[str, Any]:
        """
        Decode a log into {param name: value}.

        Raises DecodeError on topic mismatch, wrong topic count or malformed data.
        Indexed dynamic params come back as their 0x-hex topic hash.
        """
        if not self.matches(log):
            raise DecodeError(
                f"{self.name}: topic0 {log.topic0} does not match {self.topic}",
                tx_hash=log.tx_hash,
                log_index=log.log_index,
            )
        indexed = self.indexed_params
        if len(log.topics) != len(indexed) + 1:
            raise DecodeError(
                f"{self.name}: expected {len(indexed) + 1} topics, got {len(log.topics)}",
                tx_hash=log.tx_hash,
                log_index=log.log_index,
            )
        values: dict[str, Any] = {}
        try:
            for param, topic in zip(indexed, log.topics[1:]):
                if param.is_hashed_when_indexed:
                    values[param.name] = topic
                    continue
                (value,) = decode([param.type], bytes.fromhex(topic[2:]))
                values[param.name] = _normalize_value(param.type, value)
            data_params = self.data_params
            if data_params:
                data = bytes.fromhex(log.data[2:] if log.data.startswith("0x") else log.data)
                decoded = decode([p.type for p in data_params], data)
                for param, value in zip(data_params, decoded):
                    values[param.name] = _normalize_value(param.type, value)
        except (DecodingError, ValueError, TypeError, OverflowError) as e:
            raise DecodeError(f"{self.name}: {e}", tx_hash=log.tx_hash, log_index=log.log_index) from e
        return values

"""
Event decoders: raw logs to typed, frozen event dataclasses.
"""

from relay_indexer.decoders.abi import ChainEvent, EventParam, EventSpec
from relay_indexer.decoders.erc20 import TokenTransfer, decode_transfer_log
from relay_indexer.decoders.escrow import decode_escrow_log
from relay_indexer.decoders.registry import decode_agent_log, decode_feedback_log

__all__ = [
    "ChainEvent",
    "EventParam",
    "EventSpec",
    "TokenTransfer",
    "decode_agent_log",
    "decode_escrow_log",
    "decode_feedback_log",
    "decode_transfer_log",
]

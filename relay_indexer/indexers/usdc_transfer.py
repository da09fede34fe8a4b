"""
USDC transfer indexer.

Records every USDC Transfer and EIP-3009 TransferWithAuthorization to or from
the relay wallet in on_chain_transactions, so payments settled outside the
relay's own API still show up in the explorer.
"""

from __future__ import annotations

from relay_indexer.chain.models import RawLog
from relay_indexer.chain.scanner import LogScanner, TopicFilter, address_topic
from relay_indexer.database import Database, OnChainTransaction, units_to_decimal
from relay_indexer.decoders.abi import ChainEvent
from relay_indexer.decoders.erc20 import TRANSFER_TOPICS, TokenTransfer, decode_transfer_log
from relay_indexer.indexers.base import BlockRangeIndexer

INDEXER_NAME = "usdc_transfer_indexer"
METADATA_VERSION = 1


def classify_transfer(transfer: TokenTransfer, relay_wallet: str) -> str:
    """relay_incoming / relay_outgoing / x402_incoming / x402_outgoing."""
    relay = relay_wallet.lower()
    outgoing = transfer.from_address.lower() == relay
    incoming = transfer.to_address.lower() == relay
    if transfer.is_x402:
        return "x402_outgoing" if outgoing else "x402_incoming"
    if outgoing:
        return "relay_outgoing"
    if incoming:
        return "relay_incoming"
    return "usdc_transfer"


class UsdcTransferIndexer(BlockRangeIndexer):
    def __init__(
        self,
        *,
        db: Database,
        scanner: LogScanner,
        usdc_address: str,
        relay_wallet: str,
        network: str = "testnet",
        decimals: int = 6,
        lookback_blocks: int = 10_000,
    ) -> None:
        super().__init__(
            INDEXER_NAME,
            db=db,
            scanner=scanner,
            contract_address=usdc_address,
            lookback_blocks=lookback_blocks,
        )
        if not relay_wallet:
            raise ValueError("relay_wallet must be non-empty")
        self.relay_wallet = relay_wallet.lower()
        self.network = network
        self.decimals = decimals

    def topic_filters(self) -> list[TopicFilter]:
        relay = address_topic(self.relay_wallet)
        return [
            [TRANSFER_TOPICS, relay, None],
            [TRANSFER_TOPICS, None, relay],
        ]

    def decode(self, log: RawLog, timestamp: int) -> ChainEvent:
        return decode_transfer_log(log, timestamp)

    def apply(self, event: ChainEvent) -> bool:
        if not isinstance(event, TokenTransfer):
            raise TypeError(f"Unexpected transfer event {type(event).__name__}")
        tx_type = classify_transfer(event, self.relay_wallet)
        metadata = {
            "v": METADATA_VERSION,
            "is_x402": event.is_x402,
            "usdc_contract": self.contract_address,
            "network": self.network,
            "indexed_by": INDEXER_NAME,
        }
        if event.nonce:
            metadata["nonce"] = event.nonce
        tx = OnChainTransaction(
            tx_hash=event.tx_hash,
            log_index=event.log_index,
            from_address=event.from_address,
            to_address=event.to_address,
            value=units_to_decimal(event.value, self.decimals),
            type=tx_type,
            status="success",
            timestamp=event.timestamp,
            block_number=event.block_number,
            block_hash=event.block_hash,
            metadata=metadata,
        )
        inserted = self.db.insert_onchain_transaction(tx)
        if inserted:
            self.logger.debug("usdc_transfer_indexed", tx_hash=tx.tx_hash, type=tx_type, value=str(tx.value))
        return inserted

"""
Agent registry indexer: identity registry registrations and lifecycle.
"""

from __future__ import annotations

from relay_indexer.chain.models import RawLog
from relay_indexer.chain.scanner import LogScanner, TopicFilter
from relay_indexer.database import AgentRecord, Database
from relay_indexer.decoders.abi import ChainEvent
from relay_indexer.decoders.registry import (
    IDENTITY_EVENTS,
    AgentRegistered,
    AgentStatusChanged,
    AgentURIUpdated,
    decode_agent_log,
)
from relay_indexer.indexers.base import BlockRangeIndexer

INDEXER_NAME = "agent_registry"


class AgentRegistryIndexer(BlockRangeIndexer):
    def __init__(
        self,
        *,
        db: Database,
        scanner: LogScanner,
        registry_address: str,
        lookback_blocks: int = 10_000,
    ) -> None:
        super().__init__(
            INDEXER_NAME,
            db=db,
            scanner=scanner,
            contract_address=registry_address,
            lookback_blocks=lookback_blocks,
        )

    def topic_filters(self) -> list[TopicFilter]:
        return [[[spec.topic for spec in IDENTITY_EVENTS]]]

    def decode(self, log: RawLog, timestamp: int) -> ChainEvent:
        return decode_agent_log(log, timestamp)

    def apply(self, event: ChainEvent) -> bool:
        if isinstance(event, AgentRegistered):
            inserted = self.db.insert_agent(
                AgentRecord(
                    agent_id=event.agent_id,
                    owner_address=event.owner,
                    agent_uri=event.agent_uri,
                    is_active=True,
                    registered_at=event.timestamp,
                    registration_tx_hash=event.tx_hash,
                    registration_block=event.block_number,
                )
            )
            if inserted:
                self.logger.debug("agent_registered", agent_id=event.agent_id, owner=event.owner)
            return inserted
        if isinstance(event, AgentStatusChanged):
            changed = self.db.set_agent_active(event.agent_id, event.is_active, event.timestamp)
        elif isinstance(event, AgentURIUpdated):
            changed = self.db.update_agent_uri(event.agent_id, event.agent_uri, event.timestamp)
        else:
            raise TypeError(f"Unexpected identity event {type(event).__name__}")
        if not changed:
            self.logger.warning("agent_not_found", agent_id=event.agent_id, chain_event=type(event).__name__)
        # State updates are overwrites, not new rows
        return False

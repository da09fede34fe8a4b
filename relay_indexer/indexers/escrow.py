"""
Escrow session event indexer.

Indexes the full session lifecycle from the escrow contract: creation,
deposits, agent releases, refunds, closes and agent authorization. Every
event becomes one session_events ledger row; deposits and releases also move
the session aggregates and releases credit agent_earnings.
"""

from __future__ import annotations

from relay_indexer.chain.models import RawLog
from relay_indexer.chain.scanner import LogScanner, TopicFilter
from relay_indexer.database import Database, EscrowSession, SessionEvent, SessionEventType
from relay_indexer.decoders.abi import ChainEvent
from relay_indexer.decoders.escrow import (
    ESCROW_EVENTS,
    AgentAuthorized,
    AgentRevoked,
    FundsDeposited,
    PaymentReleased,
    SessionClosed,
    SessionCreated,
    SessionRefunded,
    decode_escrow_log,
)
from relay_indexer.indexers.base import BlockRangeIndexer

INDEXER_NAME = "escrow_session_events"


class EscrowSessionIndexer(BlockRangeIndexer):
    def __init__(
        self,
        *,
        db: Database,
        scanner: LogScanner,
        contract_address: str,
        deploy_block: int = 0,
        lookback_blocks: int = 10_000,
        decimals: int = 6,
    ) -> None:
        super().__init__(
            INDEXER_NAME,
            db=db,
            scanner=scanner,
            contract_address=contract_address,
            start_block=deploy_block,
            lookback_blocks=lookback_blocks,
        )
        self.decimals = decimals

    def topic_filters(self) -> list[TopicFilter]:
        # One query: topic0 OR-ed over all seven events
        return [[[spec.topic for spec in ESCROW_EVENTS]]]

    def decode(self, log: RawLog, timestamp: int) -> ChainEvent:
        return decode_escrow_log(log, timestamp)

    def _ledger_row(
        self,
        event: ChainEvent,
        session_id: int,
        event_type: SessionEventType,
        *,
        actor: str | None = None,
        amount: int | None = None,
        execution_id: str | None = None,
    ) -> SessionEvent:
        return SessionEvent(
            session_id=str(session_id),
            event_type=event_type,
            actor=actor,
            amount_units=amount,
            execution_id=execution_id,
            timestamp=event.timestamp,
            tx_hash=event.tx_hash,
            block_number=event.block_number,
            log_index=event.log_index,
            decimals=self.decimals,
        )

    def apply(self, event: ChainEvent) -> bool:
        if isinstance(event, SessionCreated):
            session = EscrowSession(
                session_id=str(event.session_id),
                owner=event.owner,
                escrow_agent=event.escrow_agent,
                max_spend_units=event.max_spend,
                expiry=event.expiry,
                created_at=event.timestamp,
                created_tx_hash=event.tx_hash,
                created_block=event.block_number,
                decimals=self.decimals,
            )
            row = self._ledger_row(event, event.session_id, SessionEventType.CREATE, actor=event.owner)
            inserted = self.db.record_session_event(row, session)
            if inserted:
                self.logger.debug("escrow_session_created", session_id=session.session_id, owner=event.owner)
            return inserted
        if isinstance(event, FundsDeposited):
            row = self._ledger_row(
                event, event.session_id, SessionEventType.DEPOSIT, actor=event.depositor, amount=event.amount
            )
        elif isinstance(event, PaymentReleased):
            row = self._ledger_row(
                event,
                event.session_id,
                SessionEventType.RELEASE,
                actor=event.agent,
                amount=event.amount,
                execution_id=event.execution_id,
            )
        elif isinstance(event, SessionRefunded):
            row = self._ledger_row(
                event, event.session_id, SessionEventType.REFUND, actor=event.owner, amount=event.amount
            )
        elif isinstance(event, SessionClosed):
            row = self._ledger_row(event, event.session_id, SessionEventType.CLOSE)
        elif isinstance(event, AgentAuthorized):
            row = self._ledger_row(event, event.session_id, SessionEventType.AUTHORIZE, actor=event.agent)
        elif isinstance(event, AgentRevoked):
            row = self._ledger_row(event, event.session_id, SessionEventType.REVOKE, actor=event.agent)
        else:
            raise TypeError(f"Unexpected escrow event {type(event).__name__}")
        inserted = self.db.record_session_event(row)
        if inserted:
            self.logger.debug(
                "escrow_event_indexed",
                session_id=row.session_id,
                session_event=row.event_type.value,
                amount_units=row.amount_units,
            )
        return inserted

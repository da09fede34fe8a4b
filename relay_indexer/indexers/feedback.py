"""
Feedback indexer: reputation registry submissions and revocations.
"""

from __future__ import annotations

from relay_indexer.chain.models import RawLog
from relay_indexer.chain.scanner import LogScanner, TopicFilter
from relay_indexer.database import Database, FeedbackRecord
from relay_indexer.decoders.abi import ChainEvent
from relay_indexer.decoders.registry import (
    FEEDBACK_EVENTS,
    FeedbackRevoked,
    FeedbackSubmitted,
    decode_feedback_log,
)
from relay_indexer.indexers.base import BlockRangeIndexer

INDEXER_NAME = "feedback_events"


class FeedbackIndexer(BlockRangeIndexer):
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
        return [[[spec.topic for spec in FEEDBACK_EVENTS]]]

    def decode(self, log: RawLog, timestamp: int) -> ChainEvent:
        return decode_feedback_log(log, timestamp)

    def apply(self, event: ChainEvent) -> bool:
        if isinstance(event, FeedbackSubmitted):
            inserted = self.db.insert_feedback(
                FeedbackRecord(
                    subject_address=event.subject,
                    submitter_address=event.submitter,
                    tag=event.tag,
                    score=event.score,
                    comment=event.comment,
                    timestamp=event.timestamp,
                    tx_hash=event.tx_hash,
                    block_number=event.block_number,
                    log_index=event.log_index,
                )
            )
            if inserted:
                self.logger.debug("feedback_indexed", subject=event.subject, tag=event.tag, score=event.score)
            return inserted
        if isinstance(event, FeedbackRevoked):
            revoked = self.db.revoke_feedback(
                event.subject, event.submitter, event.tag, event.timestamp, event.block_number, event.log_index
            )
            if revoked:
                self.logger.debug("feedback_revoked", subject=event.subject, tag=event.tag, rows=revoked)
            return False
        raise TypeError(f"Unexpected feedback event {type(event).__name__}")

"""
Payment confirmation indexer.

Settled payments are written by the payment layer with block_number = 0.
Each run takes up to batch_size of them, looks the tx_hash up on chain and
stores the mining block once it has block_confirmations confirmations.
A lookup failure is counted and logged and the batch carries on; the
payment stays unconfirmed and is retried next run.
"""

from __future__ import annotations

from collections import Counter

from relay_indexer.chain import ChainRpcClient
from relay_indexer.chain.models import hex_to_int
from relay_indexer.core.exceptions import RpcError
from relay_indexer.database import Database
from relay_indexer.indexers.base import RunResult, RunStatus, ScheduledJob

INDEXER_NAME = "payment_events"


class PaymentConfirmationIndexer(ScheduledJob):
    def __init__(
        self,
        *,
        db: Database,
        rpc: ChainRpcClient,
        batch_size: int = 100,
        block_confirmations: int = 0,
    ) -> None:
        super().__init__(INDEXER_NAME)
        self.db = db
        self.rpc = rpc
        self.batch_size = batch_size
        self.block_confirmations = block_confirmations

    def _execute(self) -> RunResult:
        payments = self.db.get_unconfirmed_payments(self.batch_size)
        if not payments:
            self.logger.debug("payment_nothing_to_confirm")
            return RunResult(job=self.name, status=RunStatus.NOOP)

        head = self.rpc.block_number()
        self.logger.info("indexer_run_started", payments=len(payments), head=head)
        result = RunResult(job=self.name, status=RunStatus.COMPLETED, to_block=head)
        events: Counter[str] = Counter({"confirmed": 0, "pending": 0, "failed": 0})
        for payment in payments:
            result.processed += 1
            try:
                tx = self.rpc.get_transaction(payment.tx_hash)
            except RpcError as e:
                events["failed"] += 1
                self.logger.warning(
                    "payment_lookup_failed",
                    payment_id=payment.id,
                    tx_hash=payment.tx_hash,
                    error=str(e),
                )
                continue
            if not tx or tx.get("blockNumber") is None:
                events["pending"] += 1
                continue
            block_number = hex_to_int(tx["blockNumber"])
            if head - block_number < self.block_confirmations:
                events["pending"] += 1
                continue
            if self.db.set_payment_block_number(payment.id, block_number):
                result.inserted += 1
                events["confirmed"] += 1
                self.logger.debug(
                    "payment_confirmed",
                    payment_id=payment.id,
                    tx_hash=payment.tx_hash,
                    block_number=block_number,
                )
        result.events = dict(events)
        self.logger.info(
            "indexer_run_completed",
            processed=result.processed,
            indexed=events["confirmed"],
            pending=events["pending"],
            failed=events["failed"],
        )
        return result

"""
Indexer suite: builds every enabled job from settings and owns their lifecycle.

Clients (RPC, database) are constructed once here and injected into each job.
start() schedules every job on its own cron trigger; stop() stops scheduling
and waits for in-flight runs; run_indexer() runs one job synchronously for
backfills and testing.
"""

from __future__ import annotations

from dataclasses import dataclass

from relay_indexer.chain import ChainRpcClient, LogScanner
from relay_indexer.config import Settings
from relay_indexer.core.exceptions import UnknownIndexerError
from relay_indexer.database import Database, get_database
from relay_indexer.indexers import (
    AgentRegistryIndexer,
    EscrowSessionIndexer,
    FeedbackIndexer,
    PaymentConfirmationIndexer,
    RunResult,
    ScheduledJob,
    UsdcTransferIndexer,
)
from relay_indexer.logging import get_logger
from relay_indexer.reputation import ReputationEngine, ReputationJob
from relay_indexer.scheduler import Cadence, Scheduler

logger = get_logger(__name__)

# Manual-trigger names accepted by run_indexer(), mapped to job names
INDEXER_ALIASES: dict[str, str] = {
    "escrow": "escrow_session_events",
    "usdc": "usdc_transfer_indexer",
    "usdc-transfer": "usdc_transfer_indexer",
    "usdc_transfer": "usdc_transfer_indexer",
    "payment": "payment_events",
    "payments": "payment_events",
    "agent": "agent_registry",
    "agents": "agent_registry",
    "feedback": "feedback_events",
    "reputation": "reputation_calculator",
}


@dataclass
class SuiteJob:
    job: ScheduledJob
    schedule: Cadence


class IndexerSuite:
    """Process-level owner of all scheduled jobs."""

    def __init__(
        self,
        jobs: list[SuiteJob],
        *,
        rpc: ChainRpcClient | None = None,
        scheduler: Scheduler | None = None,
    ) -> None:
        self._jobs: dict[str, SuiteJob] = {}
        for entry in jobs:
            if entry.job.name in self._jobs:
                raise ValueError(f"Duplicate job name: {entry.job.name}")
            self._jobs[entry.job.name] = entry
        self._rpc = rpc
        self._scheduler = scheduler or Scheduler()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        db: Database | None = None,
        rpc: ChainRpcClient | None = None,
    ) -> "IndexerSuite":
        """
        Build clients and every enabled job. Raises ConfigurationError before
        anything is scheduled if an enabled job is missing its configuration.
        """
        settings.validate()
        db = db or get_database(settings.db_path, decimals=settings.usdc_decimals)
        rpc = rpc or ChainRpcClient(
            settings.rpc_url,
            timeout_sec=settings.rpc_timeout_sec,
            max_retries=settings.rpc_max_retries,
            retry_delay_sec=settings.rpc_retry_delay_sec,
        )
        scanner = LogScanner(
            rpc,
            max_blocks_per_run=settings.max_blocks_per_run,
            block_confirmations=settings.block_confirmations,
        )
        jobs: list[SuiteJob] = []
        if settings.is_enabled("escrow"):
            jobs.append(
                SuiteJob(
                    EscrowSessionIndexer(
                        db=db,
                        scanner=scanner,
                        contract_address=settings.escrow_contract_address,
                        deploy_block=settings.escrow_deploy_block,
                        lookback_blocks=settings.lookback_blocks,
                        decimals=settings.usdc_decimals,
                    ),
                    settings.escrow_schedule,
                )
            )
        if settings.is_enabled("usdc"):
            jobs.append(
                SuiteJob(
                    UsdcTransferIndexer(
                        db=db,
                        scanner=scanner,
                        usdc_address=settings.usdc_address,
                        relay_wallet=settings.relay_wallet_address,
                        network=settings.network,
                        decimals=settings.usdc_decimals,
                        lookback_blocks=settings.lookback_blocks,
                    ),
                    settings.usdc_schedule,
                )
            )
        if settings.is_enabled("payment"):
            jobs.append(
                SuiteJob(
                    PaymentConfirmationIndexer(
                        db=db,
                        rpc=rpc,
                        batch_size=settings.payment_batch_size,
                        block_confirmations=settings.block_confirmations,
                    ),
                    settings.payment_schedule,
                )
            )
        if settings.is_enabled("agent"):
            jobs.append(
                SuiteJob(
                    AgentRegistryIndexer(
                        db=db,
                        scanner=scanner,
                        registry_address=settings.identity_registry_address,
                        lookback_blocks=settings.lookback_blocks,
                    ),
                    settings.agent_schedule,
                )
            )
        if settings.is_enabled("feedback"):
            jobs.append(
                SuiteJob(
                    FeedbackIndexer(
                        db=db,
                        scanner=scanner,
                        registry_address=settings.reputation_registry_address,
                        lookback_blocks=settings.lookback_blocks,
                    ),
                    settings.feedback_schedule,
                )
            )
        if settings.is_enabled("reputation"):
            engine = ReputationEngine(
                db,
                cache_ttl_sec=settings.reputation_cache_ttl_sec,
                persist_retries=settings.reputation_persist_retries,
                retry_delay_sec=settings.reputation_retry_delay_sec,
                time_decay_factor=settings.time_decay_factor,
                days_for_full_decay=settings.days_for_full_decay,
            )
            jobs.append(SuiteJob(ReputationJob(engine), settings.reputation_schedule))
        logger.info(
            "indexer_suite_configured",
            network=settings.network,
            chain_id=settings.chain_id,
            jobs=[j.job.name for j in jobs],
            db_path=str(settings.db_path),
        )
        return cls(jobs, rpc=rpc, scheduler=Scheduler(timezone=settings.timezone))

    @property
    def job_names(self) -> list[str]:
        return list(self._jobs)

    @property
    def scheduler(self) -> Scheduler:
        return self._scheduler

    def get_job(self, name: str) -> ScheduledJob:
        """Resolve a job by name or alias; raises UnknownIndexerError."""
        key = name.strip().lower()
        key = INDEXER_ALIASES.get(key, key)
        entry = self._jobs.get(key)
        if entry is None:
            raise UnknownIndexerError(
                f"Unknown indexer: {name} (available: {', '.join(sorted(set(INDEXER_ALIASES) | set(self._jobs)))})"
            )
        return entry.job

    def start(self, *, run_on_start: bool = False) -> None:
        for entry in self._jobs.values():
            self._scheduler.add(entry.job, entry.schedule, run_on_start=run_on_start)
        self._scheduler.start()
        logger.info("indexer_suite_started", jobs=self.job_names)

    def stop(self, *, wait: bool = True) -> None:
        """Stop scheduling; in-flight runs complete before this returns (wait=True)."""
        logger.info("indexer_suite_stopping")
        self._scheduler.stop(wait=wait)
        if self._rpc is not None:
            self._rpc.close()
        logger.info("indexer_suite_stopped")

    def run_indexer(self, name: str) -> RunResult:
        """Run one job once, synchronously, outside its schedule."""
        job = self.get_job(name)
        logger.info("manual_run_started", job=job.name)
        result = job.run()
        logger.info("manual_run_finished", **result.to_dict())
        return result

    def run_all_once(self) -> dict[str, RunResult]:
        """Run every job once in registration order (reputation last)."""
        logger.info("manual_run_all_started", jobs=self.job_names)
        results = {name: self.run_indexer(name) for name in self._jobs}
        logger.info(
            "manual_run_all_finished",
            statuses={name: r.status.value for name, r in results.items()},
        )
        return results

"""
Chain indexers: one scheduled job per contract, each bounded to a block window.
"""

from relay_indexer.indexers.agent_registry import AgentRegistryIndexer
from relay_indexer.indexers.base import (
    BlockRangeIndexer,
    JobState,
    RunResult,
    RunStatus,
    ScheduledJob,
)
from relay_indexer.indexers.escrow import EscrowSessionIndexer
from relay_indexer.indexers.feedback import FeedbackIndexer
from relay_indexer.indexers.payment import PaymentConfirmationIndexer
from relay_indexer.indexers.usdc_transfer import UsdcTransferIndexer

__all__ = [
    "AgentRegistryIndexer",
    "BlockRangeIndexer",
    "EscrowSessionIndexer",
    "FeedbackIndexer",
    "JobState",
    "PaymentConfirmationIndexer",
    "RunResult",
    "RunStatus",
    "ScheduledJob",
    "UsdcTransferIndexer",
]

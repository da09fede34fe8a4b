"""
Database abstraction layer: indexer cursors, escrow ledger, transfers, registry, reputation.

MVP uses SQLite via Database and get_database(); backend is swappable for PostgreSQL.
"""

from relay_indexer.database.database import (
    Database,
    DatabaseBackend,
    SQLiteBackend,
    get_database,
)
from relay_indexer.database.models import (
    AgentEarnings,
    AgentRecord,
    EscrowSession,
    FeedbackRecord,
    IndexerCursor,
    OnChainTransaction,
    PaymentRecord,
    PaymentStatus,
    ReputationMetrics,
    ReputationScore,
    ServiceRanking,
    ServiceRecord,
    SessionAgent,
    SessionEvent,
    SessionEventType,
    decimal_to_units,
    units_to_decimal,
)

__all__ = [
    "Database",
    "DatabaseBackend",
    "SQLiteBackend",
    "get_database",
    "AgentEarnings",
    "AgentRecord",
    "EscrowSession",
    "FeedbackRecord",
    "IndexerCursor",
    "OnChainTransaction",
    "PaymentRecord",
    "PaymentStatus",
    "ReputationMetrics",
    "ReputationScore",
    "ServiceRanking",
    "ServiceRecord",
    "SessionAgent",
    "SessionEvent",
    "SessionEventType",
    "decimal_to_units",
    "units_to_decimal",
]

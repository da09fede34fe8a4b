"""
SQLite schema for the relay indexer.

uint256 values (amounts, running totals, expiry) are TEXT decimal strings of
base units, since SQLite INTEGER stops at 2**63 - 1. Ledger tables carry a
UNIQUE natural key so re-scans are no-ops. For PostgreSQL: use BIGSERIAL,
NUMERIC(78,0) for units, TIMESTAMPTZ, JSONB for metadata.
"""

SCHEMA_INDEXER_STATE = """
CREATE TABLE IF NOT EXISTS indexer_state (
    indexer_name TEXT PRIMARY KEY,
    last_block INTEGER NOT NULL,
    updated_at INTEGER
);
"""

SCHEMA_ESCROW_SESSIONS = """
CREATE TABLE IF NOT EXISTS escrow_sessions (
    session_id TEXT PRIMARY KEY,
    owner TEXT NOT NULL,
    escrow_agent TEXT NOT NULL,
    max_spend_units TEXT NOT NULL,
    expiry TEXT NOT NULL,
    deposited_units TEXT NOT NULL DEFAULT '0',
    released_units TEXT NOT NULL DEFAULT '0',
    is_active INTEGER NOT NULL DEFAULT 1,
    created_at INTEGER NOT NULL,
    created_tx_hash TEXT NOT NULL,
    created_block INTEGER NOT NULL,
    closed_at INTEGER,
    closed_tx_hash TEXT,
    closed_block INTEGER
);
CREATE INDEX IF NOT EXISTS ix_escrow_sessions_owner ON escrow_sessions(owner);
CREATE INDEX IF NOT EXISTS ix_escrow_sessions_active ON escrow_sessions(is_active);
"""

SCHEMA_SESSION_EVENTS = """
CREATE TABLE IF NOT EXISTS session_events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id TEXT NOT NULL,
    event_type TEXT NOT NULL,
    actor TEXT,
    amount_units TEXT,
    execution_id TEXT,
    timestamp INTEGER NOT NULL,
    tx_hash TEXT NOT NULL,
    block_number INTEGER NOT NULL,
    log_index INTEGER NOT NULL,
    created_at INTEGER,
    UNIQUE(tx_hash, log_index)
);
CREATE INDEX IF NOT EXISTS ix_session_events_session ON session_events(session_id);
CREATE INDEX IF NOT EXISTS ix_session_events_block ON session_events(block_number);
"""

SCHEMA_SESSION_AGENTS = """
CREATE TABLE IF NOT EXISTS session_agents (
    session_id TEXT NOT NULL,
    agent_address TEXT NOT NULL,
    is_authorized INTEGER NOT NULL,
    authorized_at INTEGER,
    revoked_at INTEGER,
    tx_hash TEXT,
    block_number INTEGER,
    PRIMARY KEY (session_id, agent_address)
);
"""

SCHEMA_ONCHAIN_TRANSACTIONS = """
CREATE TABLE IF NOT EXISTS on_chain_transactions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    tx_hash TEXT NOT NULL,
    log_index INTEGER NOT NULL,
    from_address TEXT NOT NULL,
    to_address TEXT NOT NULL,
    value TEXT NOT NULL,
    type TEXT NOT NULL,
    status TEXT NOT NULL,
    timestamp INTEGER NOT NULL,
    block_number INTEGER NOT NULL,
    block_hash TEXT,
    metadata_json TEXT,
    created_at INTEGER,
    UNIQUE(tx_hash, log_index)
);
CREATE INDEX IF NOT EXISTS ix_onchain_tx_from ON on_chain_transactions(from_address);
CREATE INDEX IF NOT EXISTS ix_onchain_tx_to ON on_chain_transactions(to_address);
CREATE INDEX IF NOT EXISTS ix_onchain_tx_block ON on_chain_transactions(block_number);
"""

SCHEMA_AGENT_EARNINGS = """
CREATE TABLE IF NOT EXISTS agent_earnings (
    agent_address TEXT PRIMARY KEY,
    total_earned_units TEXT NOT NULL DEFAULT '0',
    payment_count INTEGER NOT NULL DEFAULT 0,
    last_payment_at INTEGER
);
"""

SCHEMA_AGENTS = """
CREATE TABLE IF NOT EXISTS agents (
    agent_id INTEGER PRIMARY KEY,
    owner_address TEXT NOT NULL,
    agent_uri TEXT NOT NULL,
    is_active INTEGER NOT NULL DEFAULT 1,
    registered_at INTEGER NOT NULL,
    registration_tx_hash TEXT NOT NULL,
    registration_block INTEGER NOT NULL,
    updated_at INTEGER
);
CREATE INDEX IF NOT EXISTS ix_agents_owner ON agents(owner_address);
"""

SCHEMA_FEEDBACK_EVENTS = """
CREATE TABLE IF NOT EXISTS feedback_events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    subject_address TEXT NOT NULL,
    submitter_address TEXT NOT NULL,
    tag TEXT NOT NULL,
    score INTEGER NOT NULL,
    comment TEXT,
    timestamp INTEGER NOT NULL,
    tx_hash TEXT NOT NULL,
    block_number INTEGER NOT NULL,
    log_index INTEGER NOT NULL,
    revoked_at INTEGER,
    UNIQUE(tx_hash, log_index)
);
CREATE INDEX IF NOT EXISTS ix_feedback_subject ON feedback_events(subject_address);
"""

SCHEMA_SERVICES = """
CREATE TABLE IF NOT EXISTS services (
    service_id TEXT PRIMARY KEY,
    is_active INTEGER NOT NULL DEFAULT 1,
    agent_address TEXT,
    category TEXT
);
"""

SCHEMA_PAYMENTS = """
CREATE TABLE IF NOT EXISTS payments (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    service_id TEXT NOT NULL,
    payer_address TEXT NOT NULL,
    amount TEXT NOT NULL,
    status TEXT NOT NULL,
    latency_ms INTEGER,
    block_timestamp INTEGER NOT NULL,
    tx_hash TEXT,
    block_number INTEGER NOT NULL DEFAULT 0
);
CREATE INDEX IF NOT EXISTS ix_payments_service_ts ON payments(service_id, block_timestamp);
CREATE INDEX IF NOT EXISTS ix_payments_unconfirmed ON payments(block_number, status);
"""

SCHEMA_REPUTATION_SCORES = """
CREATE TABLE IF NOT EXISTS reputation_scores (
    subject_id TEXT PRIMARY KEY,
    total_payments INTEGER NOT NULL,
    successful_payments INTEGER NOT NULL,
    failed_payments INTEGER NOT NULL,
    timeout_payments INTEGER NOT NULL,
    avg_latency_ms REAL NOT NULL,
    median_latency_ms REAL NOT NULL,
    p95_latency_ms REAL NOT NULL,
    unique_payers INTEGER NOT NULL,
    repeat_customers INTEGER NOT NULL,
    total_volume TEXT NOT NULL,
    first_payment_at INTEGER,
    last_payment_at INTEGER,
    reputation_score REAL NOT NULL,
    success_rate REAL NOT NULL,
    reliability_score REAL NOT NULL,
    speed_score REAL NOT NULL,
    volume_score REAL NOT NULL,
    recency_weight REAL NOT NULL,
    feedback_score REAL,
    calculated_at INTEGER NOT NULL,
    calculation_version INTEGER NOT NULL
);
"""

SCHEMA_SERVICE_RANKINGS = """
CREATE TABLE IF NOT EXISTS service_rankings (
    subject_id TEXT PRIMARY KEY,
    reputation_score REAL NOT NULL,
    rank INTEGER NOT NULL,
    category TEXT,
    refreshed_at INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS ix_service_rankings_rank ON service_rankings(rank);
"""

ALL_SCHEMAS = (
    SCHEMA_INDEXER_STATE,
    SCHEMA_ESCROW_SESSIONS,
    SCHEMA_SESSION_EVENTS,
    SCHEMA_SESSION_AGENTS,
    SCHEMA_ONCHAIN_TRANSACTIONS,
    SCHEMA_AGENT_EARNINGS,
    SCHEMA_AGENTS,
    SCHEMA_FEEDBACK_EVENTS,
    SCHEMA_SERVICES,
    SCHEMA_PAYMENTS,
    SCHEMA_REPUTATION_SCORES,
    SCHEMA_SERVICE_RANKINGS,
)

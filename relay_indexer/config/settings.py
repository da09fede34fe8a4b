"""
Application settings.

Typed settings for the chain client, indexers, scheduler cadences and the
reputation engine, built from environment variables (and .env). validate()
raises ConfigurationError for anything an enabled job cannot run without;
the runtime treats that as fatal before any job is scheduled.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import pytz
from eth_utils import is_address

from relay_indexer.config.env import (
    env_float,
    env_int,
    env_list,
    env_str,
    get_chain_id,
    get_network,
    get_rpc_url,
    load_relay_env,
)
from relay_indexer.core.exceptions import ConfigurationError
from relay_indexer.scheduler.triggers import build_trigger

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# Testnet deployments
DEFAULT_IDENTITY_REGISTRY = "0x4b697d8abc0e3da0086011222755d9029dbb9c43"
DEFAULT_REPUTATION_REGISTRY = "0xdafc2fa590c5ba88155a009660dc3b14a3651a67"
USDC_ADDRESSES = {
    "testnet": "0xc01efaaf7c5c61bebfaeb358e1161b537b8bc0e0",
    "mainnet": "0xf951ec28187d9e5ca673da8fe6757e6f0be5f77c",
}

# Short names accepted in ENABLED_INDEXERS and by the manual trigger
ALL_INDEXERS = ("escrow", "usdc", "payment", "agent", "feedback", "reputation")

# Cron cadences (5 fields, or 6 with leading seconds); plain seconds also accepted
DEFAULT_SCHEDULES = {
    "escrow": "*/2 * * * *",
    "usdc": "*/30 * * * * *",
    "payment": "*/5 * * * *",
    "agent": "*/15 * * * *",
    "feedback": "*/15 * * * *",
    "reputation": "0 1 * * *",
}


@dataclass
class Settings:
    """Relay indexer configuration. Defaults mirror the testnet deployment."""

    rpc_url: str
    network: str = "testnet"
    chain_id: int = 338
    db_path: Path = field(default_factory=lambda: Path("relay_indexer.db"))
    rpc_timeout_sec: float = 30.0
    rpc_max_retries: int = 3
    rpc_retry_delay_sec: float = 1.0

    escrow_contract_address: str = ZERO_ADDRESS
    escrow_deploy_block: int = 0
    identity_registry_address: str = DEFAULT_IDENTITY_REGISTRY
    reputation_registry_address: str = DEFAULT_REPUTATION_REGISTRY
    usdc_address: str = USDC_ADDRESSES["testnet"]
    usdc_decimals: int = 6
    relay_wallet_address: str = ""

    max_blocks_per_run: int = 1000
    lookback_blocks: int = 10_000
    """Blocks behind head to start from when a job has no cursor and no deploy block."""
    block_confirmations: int = 0

    enabled_indexers: list[str] = field(default_factory=lambda: list(ALL_INDEXERS))
    escrow_schedule: str = DEFAULT_SCHEDULES["escrow"]
    usdc_schedule: str = DEFAULT_SCHEDULES["usdc"]
    payment_schedule: str = DEFAULT_SCHEDULES["payment"]
    agent_schedule: str = DEFAULT_SCHEDULES["agent"]
    feedback_schedule: str = DEFAULT_SCHEDULES["feedback"]
    reputation_schedule: str = DEFAULT_SCHEDULES["reputation"]
    schedule_timezone: str = "UTC"

    payment_batch_size: int = 100

    reputation_cache_ttl_sec: float = 300.0
    reputation_persist_retries: int = 3
    reputation_retry_delay_sec: float = 1.0
    time_decay_factor: float = 0.95
    days_for_full_decay: int = 90

    def validate(self) -> None:
        """Raise ConfigurationError if an enabled job is missing what it needs."""
        if not self.rpc_url:
            raise ConfigurationError("CRONOS_RPC_URL must be non-empty")
        if self.max_blocks_per_run < 1:
            raise ConfigurationError("MAX_BLOCKS_PER_RUN must be at least 1")
        unknown = [n for n in self.enabled_indexers if n not in ALL_INDEXERS]
        if unknown:
            raise ConfigurationError(f"Unknown indexers in ENABLED_INDEXERS: {', '.join(unknown)}")
        required = {
            "escrow": [("ESCROW_CONTRACT_ADDRESS", self.escrow_contract_address)],
            "usdc": [
                ("USDC_ADDRESS", self.usdc_address),
                ("RELAY_WALLET_ADDRESS", self.relay_wallet_address),
            ],
            "agent": [("IDENTITY_REGISTRY_ADDRESS", self.identity_registry_address)],
            "feedback": [("REPUTATION_REGISTRY_ADDRESS", self.reputation_registry_address)],
        }
        for name in self.enabled_indexers:
            for env_name, value in required.get(name, []):
                if not value or value.lower() == ZERO_ADDRESS:
                    raise ConfigurationError(f"{env_name} is required for the {name} indexer")
                if not is_address(value):
                    raise ConfigurationError(f"{env_name} is not a valid address: {value}")
        if self.payment_batch_size < 1:
            raise ConfigurationError("PAYMENT_BATCH_SIZE must be at least 1")
        tz = self.timezone
        for name in self.enabled_indexers:
            try:
                build_trigger(self.schedule_for(name), timezone=tz)
            except ValueError as e:
                raise ConfigurationError(f"{name.upper()}_SCHEDULE is invalid: {e}") from e

    @property
    def timezone(self) -> pytz.BaseTzInfo:
        try:
            return pytz.timezone(self.schedule_timezone)
        except pytz.UnknownTimeZoneError as e:
            raise ConfigurationError(f"SCHEDULE_TIMEZONE is not a known timezone: {self.schedule_timezone}") from e

    def schedule_for(self, name: str) -> str:
        """Cadence expression for a short indexer name (escrow, usdc, ...)."""
        return getattr(self, f"{name}_schedule")

    def is_enabled(self, name: str) -> bool:
        return name in self.enabled_indexers


def get_settings() -> Settings:
    """
    Build Settings from the environment (after loading .env).

    Does not validate; callers that are about to schedule jobs call
    settings.validate() so a misconfiguration fails before anything runs.
    """
    load_relay_env()
    network = get_network()
    return Settings(
        rpc_url=get_rpc_url(),
        network=network,
        chain_id=get_chain_id(),
        db_path=Path(env_str("DB_PATH", "relay_indexer.db") or "relay_indexer.db"),
        rpc_timeout_sec=env_float("RPC_TIMEOUT_SEC", 30.0),
        rpc_max_retries=env_int("RPC_MAX_RETRIES", 3),
        rpc_retry_delay_sec=env_float("RPC_RETRY_DELAY_SEC", 1.0),
        escrow_contract_address=env_str("ESCROW_CONTRACT_ADDRESS", ZERO_ADDRESS),
        escrow_deploy_block=env_int("ESCROW_CONTRACT_DEPLOY_BLOCK", 0),
        identity_registry_address=env_str("IDENTITY_REGISTRY_ADDRESS", DEFAULT_IDENTITY_REGISTRY),
        reputation_registry_address=env_str("REPUTATION_REGISTRY_ADDRESS", DEFAULT_REPUTATION_REGISTRY),
        usdc_address=env_str("USDC_ADDRESS", USDC_ADDRESSES[network]),
        usdc_decimals=env_int("USDC_DECIMALS", 6),
        relay_wallet_address=env_str("RELAY_WALLET_ADDRESS") or env_str("PAYMENT_RECIPIENT_ADDRESS"),
        max_blocks_per_run=env_int("MAX_BLOCKS_PER_RUN", 1000),
        lookback_blocks=env_int("LOOKBACK_BLOCKS", 10_000),
        block_confirmations=env_int("BLOCK_CONFIRMATIONS", 0),
        enabled_indexers=[n.lower() for n in env_list("ENABLED_INDEXERS", list(ALL_INDEXERS))],
        escrow_schedule=env_str("ESCROW_SCHEDULE", DEFAULT_SCHEDULES["escrow"]),
        usdc_schedule=env_str("USDC_SCHEDULE", DEFAULT_SCHEDULES["usdc"]),
        payment_schedule=env_str("PAYMENT_SCHEDULE", DEFAULT_SCHEDULES["payment"]),
        agent_schedule=env_str("AGENT_SCHEDULE", DEFAULT_SCHEDULES["agent"]),
        feedback_schedule=env_str("FEEDBACK_SCHEDULE", DEFAULT_SCHEDULES["feedback"]),
        reputation_schedule=env_str("REPUTATION_SCHEDULE", DEFAULT_SCHEDULES["reputation"]),
        schedule_timezone=env_str("SCHEDULE_TIMEZONE", "UTC"),
        payment_batch_size=env_int("PAYMENT_BATCH_SIZE", 100),
        reputation_cache_ttl_sec=env_float("REPUTATION_CACHE_TTL_SEC", 300.0),
        reputation_persist_retries=env_int("REPUTATION_PERSIST_RETRIES", 3),
        reputation_retry_delay_sec=env_float("REPUTATION_RETRY_DELAY_SEC", 1.0),
        time_decay_factor=env_float("TIME_DECAY_FACTOR", 0.95),
        days_for_full_decay=env_int("DAYS_FOR_FULL_DECAY", 90),
    )

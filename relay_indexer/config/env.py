"""
Environment variable loading for the relay indexer.

- CRONOS_NETWORK: testnet | mainnet (default: testnet)
- CRONOS_RPC_URL: RPC endpoint; falls back to the public endpoint for the network
- Loads .env from project root when available.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

from relay_indexer.core.exceptions import ConfigurationError

# Project root: config is relay_indexer/config/, root is 2 levels up
_CONFIG_DIR = Path(__file__).resolve().parent
_PACKAGE_DIR = _CONFIG_DIR.parent
_ROOT = _PACKAGE_DIR.parent
_ENV_PATH = _ROOT / ".env"

TESTNET_RPC_URL = "https://evm-t3.cronos.org"
MAINNET_RPC_URL = "https://evm.cronos.org"
CHAIN_ID_TESTNET = 338
CHAIN_ID_MAINNET = 25

_TRUTHY = ("1", "true", "yes", "on")


def load_relay_env() -> None:
    """Load .env from project root. Existing environment variables win."""
    load_dotenv(_ENV_PATH, override=False)


def env_str(name: str, default: str = "") -> str:
    return (os.getenv(name) or default).strip()


def env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from e


def env_float(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from e


def env_bool(name: str, default: bool = False) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return default
    return raw in _TRUTHY


def env_list(name: str, default: list[str] | None = None) -> list[str]:
    """Comma-separated list; empty entries dropped."""
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return list(default or [])
    return [part.strip() for part in raw.split(",") if part.strip()]


def get_network() -> str:
    """
    Return CRONOS_NETWORK: testnet | mainnet.
    Accepts cronos-testnet / cronos-mainnet as well. Default: testnet.
    """
    raw = env_str("CRONOS_NETWORK", "testnet").lower()
    if raw in ("mainnet", "cronos-mainnet"):
        return "mainnet"
    return "testnet"


def get_rpc_url() -> str:
    """CRONOS_RPC_URL if set, else the public endpoint for the configured network."""
    url = env_str("CRONOS_RPC_URL")
    if url:
        return url
    return MAINNET_RPC_URL if get_network() == "mainnet" else TESTNET_RPC_URL


def get_chain_id() -> int:
    return CHAIN_ID_MAINNET if get_network() == "mainnet" else CHAIN_ID_TESTNET

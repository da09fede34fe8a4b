"""
Configuration management for the relay indexer.

Loads and validates settings from environment variables and an optional
.env file. Exposes a single source of truth for RPC, contracts, cadences
and reputation constants.
"""

from relay_indexer.config.settings import Settings, get_settings  # noqa: F401

__all__ = ["Settings", "get_settings"]

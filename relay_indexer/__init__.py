"""
Relay indexer: on-chain event indexing and reputation scoring.

Runs a suite of independently scheduled jobs that scan an EVM chain for
escrow session, USDC transfer, agent registry and feedback events, persist
them as ledger rows plus running aggregates, and periodically recompute a
time-decayed reputation score per service from indexed payment outcomes.
"""

__version__ = "0.1.0"

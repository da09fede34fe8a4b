"""
Main entrypoint: run every enabled indexer job on its cadence until SIGINT/SIGTERM.

Env: CRONOS_RPC_URL, DB_PATH, ESCROW_CONTRACT_ADDRESS, RELAY_WALLET_ADDRESS,
ENABLED_INDEXERS, *_SCHEDULE, etc. (see .env.example)

Flags follow the command: python main.py run --run-on-start
One-off run: python -m relay_indexer.agent_worker.runtime once escrow
"""

import sys

# Configure structured JSON logging before other imports that may log
from relay_indexer.logging import get_logger

logger = get_logger("main")


def main() -> int:
    from relay_indexer.agent_worker.runtime import main as runtime_main

    logger.info("main_starting")
    argv = sys.argv[1:]
    if not argv or argv[0] not in ("run", "once"):
        argv = ["run"] + argv
    return runtime_main(argv)


if __name__ == "__main__":
    sys.exit(main())

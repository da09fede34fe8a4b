"""
Structured logging for the relay indexer.

JSON logs with timestamp, event_type, indexer name and block window.
Use get_logger() in every module for aggregation-friendly output.
"""

from relay_indexer.logging.logger import bind_indexer, configure_logging, get_logger

__all__ = ["bind_indexer", "configure_logging", "get_logger"]

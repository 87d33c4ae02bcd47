"""
Observability module: structured logging.
"""

from streamdb.observability.logging import JsonFormatter, LogLevel, log_context, setup_logging

__all__ = [
    "JsonFormatter",
    "LogLevel",
    "log_context",
    "setup_logging",
]

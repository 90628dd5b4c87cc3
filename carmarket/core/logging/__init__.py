"""
CarMarket Logging Infrastructure

Queue-backed structured logging with ContextVar-based request context
(`LogContext`). Configured from `Config` on import.
"""

from carmarket.core.logging.logger import (
    ContextFilter,
    JSONFormatter,
    LogContext,
    get_logger,
    setup_logging,
    shutdown_logging,
)

__all__ = [
    "setup_logging",
    "shutdown_logging",
    "get_logger",
    "LogContext",
    "ContextFilter",
    "JSONFormatter",
]

"""
hexturf logging: queue-backed setup, JSON formatting and log context.
"""

from hexturf.core.logging.logger import (
    LogContext,
    clear_log_context,
    get_log_context,
    get_logger,
    is_logging_initialized,
    setup_logging,
    shutdown_logging,
)

__all__ = [
    "setup_logging",
    "shutdown_logging",
    "is_logging_initialized",
    "get_logger",
    "LogContext",
    "get_log_context",
    "clear_log_context",
]

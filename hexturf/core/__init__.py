"""
Core infrastructure layer.

Re-exports the infrastructure primitives services depend on: configuration,
database and Redis access, logging and the infrastructure exception
hierarchy. No logic lives here; feature modules import from their own
packages.
"""

from __future__ import annotations

from hexturf.core.config import Config
from hexturf.core.config.manager import ConfigManager
from hexturf.core.database import DatabaseService
from hexturf.core.exceptions import (
    ConfigurationError,
    DatabaseError,
    ErrorSeverity,
    HexturfInfrastructureException,
    LockAcquisitionError,
    RedisConnectionError,
)
from hexturf.core.logging import LogContext, get_logger
from hexturf.core.redis import RedisService

__all__ = [
    "Config",
    "ConfigManager",
    "ConfigurationError",
    "DatabaseError",
    "DatabaseService",
    "ErrorSeverity",
    "HexturfInfrastructureException",
    "LockAcquisitionError",
    "LogContext",
    "RedisConnectionError",
    "RedisService",
    "get_logger",
]

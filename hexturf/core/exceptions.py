"""
Infrastructure exceptions for hexturf.

Purpose
-------
Define the structured exception hierarchy for infrastructure-level concerns:
configuration errors, database failures, lock acquisition, and Redis
connectivity. Domain rule violations live in
``hexturf.modules.shared.exceptions``.

Design Notes
------------
- All infrastructure exceptions inherit from `HexturfInfrastructureException`.
- Each exception carries:
  - `message`: human-readable description
  - `details`: additional structured context (dict)
  - `severity`: `ErrorSeverity` value for logging/alerting
  - `is_retryable`: whether the operation can be retried
  - `error_code`: short, stable identifier for programmatic use
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorSeverity(Enum):
    """Error severity levels for logging and alerting."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class HexturfInfrastructureException(Exception):
    """
    Base exception for all infrastructure-level errors.

    Args:
        message: Human-readable error message
        details: Additional structured data about the error
        severity: Error severity level for logging handlers
        is_retryable: Whether the operation can be retried
        error_code: Optional code for programmatic handling
    """

    DEFAULT_SEVERITY: ErrorSeverity = ErrorSeverity.ERROR
    DEFAULT_RETRYABLE: bool = False

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        severity: Optional[ErrorSeverity] = None,
        is_retryable: Optional[bool] = None,
        error_code: Optional[str] = None,
    ) -> None:
        self.message: str = message
        self.details: Dict[str, Any] = details or {}
        self.severity: ErrorSeverity = severity or self.DEFAULT_SEVERITY
        self.is_retryable: bool = (
            is_retryable if is_retryable is not None else self.DEFAULT_RETRYABLE
        )
        self.error_code: str = error_code or self.__class__.__name__
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "severity": self.severity.value,
            "is_retryable": self.is_retryable,
        }

    def __str__(self) -> str:
        details_str = f" | Details: {self.details}" if self.details else ""
        return f"[{self.error_code}] {self.message}{details_str}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"details={self.details!r}, "
            f"severity={self.severity.value!r}, "
            f"is_retryable={self.is_retryable!r}"
            ")"
        )


class ConfigurationError(HexturfInfrastructureException):
    """
    Raised when a configuration key is invalid or missing.

    Args:
        config_key: The offending configuration key
        message: Explanation of the problem
    """

    DEFAULT_SEVERITY = ErrorSeverity.CRITICAL

    def __init__(self, config_key: str, message: str) -> None:
        self.config_key = config_key
        super().__init__(
            message,
            details={"config_key": config_key},
            error_code="CONFIGURATION_ERROR",
        )


class DatabaseError(HexturfInfrastructureException):
    """
    Raised when a database operation fails for infrastructure reasons.

    Args:
        operation: Name of the failed operation
        original_error: The underlying driver/ORM exception
    """

    DEFAULT_SEVERITY = ErrorSeverity.ERROR
    DEFAULT_RETRYABLE = True

    def __init__(self, operation: str, original_error: Exception) -> None:
        self.operation = operation
        self.original_error = original_error
        super().__init__(
            f"Database operation '{operation}' failed: {original_error}",
            details={
                "operation": operation,
                "error_type": type(original_error).__name__,
            },
            error_code="DATABASE_ERROR",
        )


class LockAcquisitionError(HexturfInfrastructureException):
    """
    Raised when a mutual-exclusion lock cannot be acquired in time.

    Args:
        lock_name: Name of the lock
        timeout_seconds: How long the caller waited
    """

    DEFAULT_SEVERITY = ErrorSeverity.WARNING
    DEFAULT_RETRYABLE = True

    def __init__(self, lock_name: str, timeout_seconds: float) -> None:
        self.lock_name = lock_name
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Could not acquire lock '{lock_name}' within {timeout_seconds:.1f}s",
            details={"lock_name": lock_name, "timeout_seconds": timeout_seconds},
            error_code="LOCK_NOT_ACQUIRED",
        )


class RedisConnectionError(HexturfInfrastructureException):
    """
    Raised when Redis is required but unavailable.

    Args:
        operation: Name of the failed operation
        original_error: Optional underlying client exception
    """

    DEFAULT_SEVERITY = ErrorSeverity.ERROR
    DEFAULT_RETRYABLE = True

    def __init__(self, operation: str, original_error: Optional[Exception] = None) -> None:
        self.operation = operation
        self.original_error = original_error
        reason = f": {original_error}" if original_error else ""
        super().__init__(
            f"Redis unavailable during '{operation}'{reason}",
            details={
                "operation": operation,
                "error_type": type(original_error).__name__ if original_error else None,
            },
            error_code="REDIS_UNAVAILABLE",
        )

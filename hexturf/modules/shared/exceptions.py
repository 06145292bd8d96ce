"""
Domain exceptions for hexturf.

Purpose
-------
Structured exception hierarchy for ledger rules and caller-facing errors.
Services raise these; the transport layer (outside this package) maps them
onto responses.

Design Notes
------------
- All domain exceptions inherit from `HexturfDomainException`.
- Each exception carries `message`, `details`, `severity`, `is_retryable`
  and `error_code`, and serializes with `to_dict()`.
- Helper functions (`is_transient_error`, `get_error_severity`,
  `should_alert`) centralize common handling decisions and also understand
  the infrastructure hierarchy in ``hexturf.core.exceptions``.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from hexturf.core.exceptions import ErrorSeverity, HexturfInfrastructureException


class HexturfDomainException(Exception):
    """
    Base exception for all domain-level errors.

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


class NotFoundError(HexturfDomainException):
    """
    Raised when a requested resource does not exist.

    Args:
        resource_type: Type of resource (e.g. "Activity", "Tile")
        identifier: Optional identifier for the missing resource
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO

    def __init__(self, resource_type: str, identifier: Optional[Any] = None) -> None:
        self.resource_type = resource_type
        self.identifier = identifier

        if identifier is not None:
            message = f"{resource_type} not found: {identifier}"
        else:
            message = f"{resource_type} not found"

        super().__init__(
            message,
            details={"resource_type": resource_type, "identifier": identifier},
            error_code=f"{resource_type.upper()}_NOT_FOUND",
        )


class ValidationError(HexturfDomainException):
    """
    Raised when caller input fails domain validation.

    Args:
        field: Name of the field that failed validation
        message: Explanation of why validation failed
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.validation_message = message
        super().__init__(
            f"Validation error for {field}: {message}",
            details={"field": field, "validation_message": message},
            error_code=f"VALIDATION_{field.upper()}",
        )


class PermissionDeniedError(HexturfDomainException):
    """
    Raised when a runner acts on a resource they neither own nor administer.

    Args:
        action: What was attempted (e.g. "delete_activity")
        user_id: The acting user
        resource_id: The resource acted upon
    """

    DEFAULT_SEVERITY = ErrorSeverity.WARNING

    def __init__(self, action: str, user_id: int, resource_id: Any) -> None:
        self.action = action
        self.user_id = user_id
        self.resource_id = resource_id
        super().__init__(
            f"User {user_id} may not {action} on {resource_id}",
            details={"action": action, "user_id": user_id, "resource_id": resource_id},
            error_code="PERMISSION_DENIED",
        )


class CaptureConflictError(HexturfDomainException):
    """
    Raised when a concurrent capture inserted one of our new tiles first.

    The whole capture was rolled back; re-running it will see the other
    claim and compare start dates normally.

    Args:
        activity_external_id: Upstream id of the activity being captured
        tile_count: Number of tiles in the attempted batch
    """

    DEFAULT_SEVERITY = ErrorSeverity.WARNING
    DEFAULT_RETRYABLE = True

    def __init__(self, activity_external_id: str, tile_count: int) -> None:
        self.activity_external_id = activity_external_id
        self.tile_count = tile_count
        super().__init__(
            f"Concurrent capture conflict for activity {activity_external_id}",
            details={
                "activity_external_id": activity_external_id,
                "tile_count": tile_count,
            },
            error_code="CAPTURE_CONFLICT",
        )


def is_transient_error(exc: Exception) -> bool:
    """True if the exception is marked retryable."""
    if isinstance(exc, (HexturfDomainException, HexturfInfrastructureException)):
        return exc.is_retryable
    return False


def get_error_severity(exc: Exception) -> ErrorSeverity:
    if isinstance(exc, (HexturfDomainException, HexturfInfrastructureException)):
        return exc.severity
    return ErrorSeverity.ERROR


def should_alert(exc: Exception) -> bool:
    return get_error_severity(exc) in (ErrorSeverity.ERROR, ErrorSeverity.CRITICAL)

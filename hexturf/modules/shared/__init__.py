from hexturf.modules.shared.base_repository import BaseRepository
from hexturf.modules.shared.base_service import BaseService
from hexturf.modules.shared.exceptions import (
    CaptureConflictError,
    HexturfDomainException,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
    get_error_severity,
    is_transient_error,
    should_alert,
)

__all__ = [
    "BaseRepository",
    "BaseService",
    "HexturfDomainException",
    "NotFoundError",
    "ValidationError",
    "PermissionDeniedError",
    "CaptureConflictError",
    "is_transient_error",
    "get_error_severity",
    "should_alert",
]

"""Custom exception hierarchy for the permissions engine.

Policy failures (bad configuration, ceiling violations, forbidden access)
are raised as PermissionsException subclasses. Backing-store failures are
never wrapped: SQLAlchemy errors reach the caller unchanged so that
infrastructure problems stay distinguishable from policy problems.
"""

from enum import Enum
from typing import Optional, Dict, Any


class ErrorCode(str, Enum):
    """Standardized error codes for API responses."""

    # Configuration errors
    INVALID_CONFIGURATION = "INVALID_CONFIGURATION"
    UNSUPPORTED_DIALECT = "UNSUPPORTED_DIALECT"

    # Grant errors
    CEILING_VIOLATION = "CEILING_VIOLATION"
    INVALID_ACCESS_LEVEL = "INVALID_ACCESS_LEVEL"

    # Validation errors
    VALIDATION_ERROR = "VALIDATION_ERROR"

    # Access errors
    FORBIDDEN = "FORBIDDEN"

    # Generic errors
    INTERNAL_ERROR = "INTERNAL_ERROR"


class PermissionsException(Exception):
    """
    Base exception for all permissions engine errors.

    Provides structured error responses with:
    - Human-readable message
    - Machine-readable error code
    - HTTP status code
    - Optional additional details
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert exception to dictionary for JSON response.

        Returns:
            Dictionary with error, message, and details fields
        """
        return {
            "error": self.error_code.value,
            "message": self.message,
            "details": self.details
        }


class PermissionsConfigError(PermissionsException):
    """A permissions table was configured inconsistently. Fatal at construction."""

    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else {}
        super().__init__(
            message,
            ErrorCode.INVALID_CONFIGURATION,
            status_code=500,
            details=details
        )


class UnsupportedDialectError(PermissionsException):
    """The backing store has no single-statement upsert we know how to emit."""

    def __init__(self, dialect: str):
        super().__init__(
            f"Unsupported database dialect for grant upserts: {dialect}",
            ErrorCode.UNSUPPORTED_DIALECT,
            status_code=500,
            details={"dialect": dialect}
        )


class ValidationError(PermissionsException):
    """Validation failed for caller input."""

    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else {}
        super().__init__(
            message,
            ErrorCode.VALIDATION_ERROR,
            status_code=400,
            details=details
        )


class InvalidAccessLevelError(ValidationError):
    """Value is not a level on the access-level scale."""

    def __init__(self, value: Any):
        super().__init__(f"Invalid access level: {value!r}", field="permissions")
        self.error_code = ErrorCode.INVALID_ACCESS_LEVEL
        self.details["value"] = value


class CeilingViolationError(PermissionsException):
    """A write asked for more access than the grant's class may carry.

    Nothing is written when this is raised.
    """

    def __init__(self, grant_class: str, requested: int, ceiling: int):
        super().__init__(
            f"Cannot grant {grant_class} permissions {requested}: maximum is {ceiling}",
            ErrorCode.CEILING_VIOLATION,
            status_code=400,
            details={
                "grant_class": grant_class,
                "requested": requested,
                "ceiling": ceiling,
            }
        )


class ForbiddenError(PermissionsException):
    """Authenticated user lacks the access level the action requires."""

    def __init__(
        self,
        message: str = "You do not have permission to perform this action",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message,
            ErrorCode.FORBIDDEN,
            status_code=403,
            details=details
        )


class QueryGuardError(TypeError):
    """A query cannot be guarded because it is not correlated with the resource key.

    Subclasses TypeError: this is a programming error in the caller, raised
    while the guarded query is being built and never at execution time.
    """

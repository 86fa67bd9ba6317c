"""Generic resource permissions engine.

Grants, resolves and revokes per-user and public access levels on the rows
of any resource table, with configured ceilings on public and user-granted
access.
"""

from .exceptions import (
    CeilingViolationError,
    ForbiddenError,
    InvalidAccessLevelError,
    PermissionsConfigError,
    PermissionsException,
    QueryGuardError,
    UnsupportedDialectError,
)
from .models import AccessLevel, Grant, to_access_level
from .schemas import CollectionRef, PermissionsConfig, PermissionsResult, PublicUniqueness
from .services import PermissionsTable, QueryGuard

__all__ = [
    "AccessLevel",
    "CeilingViolationError",
    "CollectionRef",
    "ForbiddenError",
    "Grant",
    "InvalidAccessLevelError",
    "PermissionsConfig",
    "PermissionsConfigError",
    "PermissionsException",
    "PermissionsResult",
    "PermissionsTable",
    "PublicUniqueness",
    "QueryGuard",
    "QueryGuardError",
    "UnsupportedDialectError",
    "to_access_level",
]

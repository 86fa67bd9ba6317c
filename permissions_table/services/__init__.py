"""Permission resolution services."""

from .permission_service import PermissionsTable
from .query_guard import QueryGuard

__all__ = ["PermissionsTable", "QueryGuard"]

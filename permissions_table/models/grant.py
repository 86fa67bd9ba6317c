"""Grant row model.

A grant is one stored (grantee, resource) -> access level row. The grantee
is None for the public grant, which applies to every user lacking a
personal grant. ``granted_by`` is None for system-issued grants.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Generic, Optional, TypeVar

UserKeyT = TypeVar("UserKeyT")
ResourceKeyT = TypeVar("ResourceKeyT")


@dataclass(frozen=True)
class Grant(Generic[UserKeyT, ResourceKeyT]):
    """A stored grant exactly as persisted, before any clamping."""

    granted_to: Optional[UserKeyT]
    resource_id: ResourceKeyT
    permissions: int
    granted_at: Optional[datetime] = None
    granted_by: Optional[UserKeyT] = None

    @property
    def is_public(self) -> bool:
        return self.granted_to is None

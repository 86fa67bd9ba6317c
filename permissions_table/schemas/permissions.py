"""Permissions table configuration and resolution result schemas."""

from enum import Enum
from typing import Generic, Optional, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator
from sqlalchemy import String
from sqlalchemy.types import TypeEngine

from ..exceptions import PermissionsConfigError
from ..models.access_level import AccessLevel

UserKeyT = TypeVar("UserKeyT")
ResourceKeyT = TypeVar("ResourceKeyT")


class PublicUniqueness(str, Enum):
    """How the store keeps public grants (NULL grantee) unique per resource.

    SQL treats NULLs as distinct in unique indexes, so a plain unique key on
    (granted_to, resource_id) would allow any number of public rows.
    """

    # PostgreSQL 15+: UNIQUE NULLS NOT DISTINCT (granted_to, resource_id)
    NULLS_NOT_DISTINCT = "nulls_not_distinct"
    # Any dialect with expression indexes: UNIQUE (COALESCE(granted_to, sentinel), resource_id)
    SENTINEL = "sentinel"


class CollectionRef(BaseModel):
    """A table whose key column grant rows reference."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    table: str
    column: str = "id"
    data_type: TypeEngine = Field(default_factory=lambda: String(50))
    # Resources only: column holding the owning user's key.
    owner_column: Optional[str] = None

    @property
    def key_reference(self) -> str:
        return f"{self.table}.{self.column}"


class PermissionsConfig(BaseModel, Generic[UserKeyT, ResourceKeyT]):
    """Immutable description of one permissions relation.

    One instance per governed resource type, shared read-only by every
    operation against it. Construction fails with PermissionsConfigError
    when the ceilings are inconsistent: a public grant may never carry more
    than an ordinary user could be delegated.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    max_public_permissions: int
    max_user_granted_permissions: int
    users: CollectionRef
    resources: CollectionRef
    owner_permissions: int = AccessLevel.OWNER
    table_name: Optional[str] = None
    public_uniqueness: PublicUniqueness = PublicUniqueness.SENTINEL
    public_key_sentinel: Optional[Union[int, str]] = None

    @model_validator(mode="after")
    def _check_ceilings(self) -> "PermissionsConfig":
        if self.max_public_permissions < 0:
            raise PermissionsConfigError(
                "max_public_permissions cannot be negative",
                field="max_public_permissions",
            )
        if self.max_public_permissions > self.max_user_granted_permissions:
            raise PermissionsConfigError(
                f"max_public_permissions ({self.max_public_permissions}) cannot exceed "
                f"max_user_granted_permissions ({self.max_user_granted_permissions})",
                field="max_public_permissions",
            )
        if self.public_uniqueness == PublicUniqueness.SENTINEL:
            # Raises when no sentinel can be derived for the key type.
            self.public_sentinel
        return self

    @property
    def grants_table_name(self) -> str:
        return self.table_name or f"{self.resources.table}_permissions"

    @property
    def allows_public_grants(self) -> bool:
        return self.max_public_permissions > 0

    @property
    def public_sentinel(self) -> Union[int, str]:
        """Out-of-range grantee key standing in for NULL inside the uniqueness index."""
        if self.public_key_sentinel is not None:
            return self.public_key_sentinel
        try:
            python_type = self.users.data_type.python_type
        except NotImplementedError:
            python_type = None
        if python_type is int:
            return -1
        if python_type is str:
            return ""
        raise PermissionsConfigError(
            f"No default public_key_sentinel for user key type {self.users.data_type!r}; "
            "set public_key_sentinel or use PublicUniqueness.NULLS_NOT_DISTINCT",
            field="public_key_sentinel",
        )


class PermissionsResult(BaseModel, Generic[ResourceKeyT, UserKeyT]):
    """Resolved access of one user to one resource.

    ``granted_by`` tells a system-issued grant (None) from a delegated one.
    """

    model_config = ConfigDict(frozen=True)

    resource_id: ResourceKeyT
    permissions: int
    granted_by: Optional[UserKeyT] = None


"""Permission resolution and grant policy.

This is the ONE place where the grant rules are applied. Everything else in
the package either stores rows (GrantRepository) or rewrites queries
(QueryGuard); the ceilings and the public-fallback policy live here.

Design:
    - A user's effective level on a resource is the greater of their own
      grant and the public grant, each clamped to its ceiling
    - Public grants are clamped to max_public_permissions
    - Grants made by a user (granted_by set) are clamped to
      max_user_granted_permissions; system grants (granted_by None) are not
    - Owners of a resource (when the resource table names an owner column)
      resolve to owner_permissions regardless of stored grants
    - No applicable grant = level 0
    - Writes above a ceiling are rejected; reads above a ceiling are clamped
"""

from __future__ import annotations

import logging
from typing import Generic, Optional, Sequence, TypeVar

from sqlalchemy import MetaData
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..exceptions import CeilingViolationError, InvalidAccessLevelError, ValidationError
from ..models.grant import Grant
from ..repositories.grant_repository import GrantRepository, build_grants_table
from ..schemas.permissions import PermissionsConfig, PermissionsResult, PublicUniqueness
from .query_guard import QueryGuard

logger = logging.getLogger(__name__)

UserKeyT = TypeVar("UserKeyT")
ResourceKeyT = TypeVar("ResourceKeyT")


class PermissionsTable(Generic[UserKeyT, ResourceKeyT]):
    """Grants, resolves and revokes access levels for one resource type.

    Built once per resource type from an immutable PermissionsConfig and
    shared freely; every method takes the caller's Session. Pass the host's
    MetaData when the user and resource tables are declared there, so the
    grant table's foreign keys resolve without reflection.
    """

    def __init__(self, config: PermissionsConfig, metadata: Optional[MetaData] = None):
        self.config = config
        self.metadata = metadata if metadata is not None else MetaData()
        self.grants = build_grants_table(config, self.metadata)
        self.guard = QueryGuard(config, self.grants)

    @property
    def name(self) -> str:
        return self.grants.name

    def _repository(self, db: Session) -> GrantRepository[UserKeyT, ResourceKeyT]:
        return GrantRepository(db, self.config, self.grants)

    # -- schema --------------------------------------------------------------

    def create_schema(self, db: Session) -> None:
        self._repository(db).create_schema()
        db.commit()

    def drop_schema(self, db: Session) -> None:
        self._repository(db).drop_schema()
        db.commit()

    # -- writes --------------------------------------------------------------

    def _check_grantee(self, granted_to: Optional[UserKeyT]) -> None:
        """Reject the reserved key that stands in for the public grantee in the uniqueness index."""
        if (
            granted_to is not None
            and self.config.public_uniqueness == PublicUniqueness.SENTINEL
            and granted_to == self.config.public_sentinel
        ):
            raise ValidationError(
                f"User key {granted_to!r} is reserved for public grants", field="granted_to"
            )

    def _check_ceiling(
        self,
        granted_to: Optional[UserKeyT],
        permissions: int,
        granted_by: Optional[UserKeyT],
    ) -> None:
        """Reject a write the ceilings don't allow. Raises before anything is written."""
        if isinstance(permissions, bool) or not isinstance(permissions, int) or permissions < 0:
            raise InvalidAccessLevelError(permissions)
        if granted_to is None:
            if not self.config.allows_public_grants or permissions > self.config.max_public_permissions:
                raise CeilingViolationError("public", permissions, self.config.max_public_permissions)
        if granted_by is not None and permissions > self.config.max_user_granted_permissions:
            raise CeilingViolationError(
                "user-granted", permissions, self.config.max_user_granted_permissions
            )

    def set_permissions(
        self,
        db: Session,
        granted_to: Optional[UserKeyT],
        resource_id: ResourceKeyT,
        permissions: int,
        granted_by: Optional[UserKeyT] = None,
    ) -> None:
        """Grant *permissions* on *resource_id* to a user, or to the public when *granted_to* is None.

        Replaces any existing grant for the same (grantee, resource) pair.
        *granted_by* None marks a system grant, which is exempt from
        max_user_granted_permissions.

        Raises:
            CeilingViolationError: The level exceeds the ceiling for this
                class of grant. Nothing is written.
            InvalidAccessLevelError: The level is not a non-negative integer.
            ValidationError: *granted_to* is the reserved public sentinel key.
            sqlalchemy.exc.SQLAlchemyError: Propagated unchanged after a
                rollback, e.g. IntegrityError for an unknown user or resource.
        """
        log_fields = {
            "table": self.name,
            "granted_to": granted_to,
            "resource_id": resource_id,
            "permissions": permissions,
            "granted_by": granted_by,
        }
        try:
            self._check_grantee(granted_to)
            self._check_ceiling(granted_to, permissions, granted_by)
        except (CeilingViolationError, ValidationError) as e:
            logger.warning("Rejected grant: %s", e.message, extra=log_fields)
            raise

        try:
            self._repository(db).upsert_grant(granted_to, resource_id, permissions, granted_by)
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            raise
        logger.info("Grant set", extra=log_fields)

    def remove_permissions(
        self,
        db: Session,
        granted_to: Optional[UserKeyT],
        resource_id: ResourceKeyT,
    ) -> bool:
        """Revoke a grant. Returns True if one was removed; revoking nothing is not an error."""
        self._check_grantee(granted_to)
        try:
            removed = self._repository(db).delete_grant(granted_to, resource_id)
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            raise
        if removed:
            logger.info(
                "Grant removed",
                extra={"table": self.name, "granted_to": granted_to, "resource_id": resource_id},
            )
        return removed

    # -- reads ---------------------------------------------------------------

    def clamp(self, grant: Grant) -> int:
        """A stored grant's level after applying the read-time ceilings."""
        level = grant.permissions
        if grant.is_public:
            level = min(level, self.config.max_public_permissions)
        if grant.granted_by is not None:
            level = min(level, self.config.max_user_granted_permissions)
        if level != grant.permissions:
            # Only rows written outside set_permissions, or ceilings lowered since, get here.
            logger.warning(
                "Clamped stored grant above its ceiling",
                extra={
                    "table": self.name,
                    "granted_to": grant.granted_to,
                    "resource_id": grant.resource_id,
                    "stored": grant.permissions,
                    "clamped": level,
                },
            )
        return level

    def _resolve(self, grants: Sequence[Grant]) -> tuple[int, Optional[UserKeyT]]:
        """Reduce the applicable grants of one resource to (level, granted_by).

        On a tie the user's own grant wins, since its granted_by says more
        than the public row's.
        """
        best: Optional[tuple[int, Grant]] = None
        for grant in grants:
            level = self.clamp(grant)
            if (
                best is None
                or level > best[0]
                or (level == best[0] and best[1].is_public and not grant.is_public)
            ):
                best = (level, grant)
        if best is None:
            return 0, None
        return best[0], best[1].granted_by

    def get_permissions(
        self,
        db: Session,
        granted_to: Optional[UserKeyT],
        resource_id: ResourceKeyT,
    ) -> int:
        """Effective level of *granted_to* on one resource (0 when nothing applies).

        *granted_to* None resolves as an anonymous user: only the public
        grant applies.
        """
        repo = self._repository(db)
        if repo.owned_resource_ids(granted_to, [resource_id]):
            return self.config.owner_permissions
        level, _ = self._resolve(repo.query_grants(granted_to, [resource_id]))
        return level

    def get_permissions_batch(
        self,
        db: Session,
        granted_to: Optional[UserKeyT],
        resource_ids: Sequence[ResourceKeyT],
    ) -> list[PermissionsResult]:
        """Resolve *granted_to* against many resources in one grant query.

        Returns one PermissionsResult per input ID, in the caller's order.
        The IDs are sorted, the applicable grants fetched sorted by resource,
        and the two streams merged in lock-step; each resource contributes
        zero, one or two adjacent grant rows.
        """
        ids = list(resource_ids)
        order = sorted(range(len(ids)), key=ids.__getitem__)
        sorted_ids = [ids[i] for i in order]

        repo = self._repository(db)
        rows = repo.query_grants(granted_to, sorted_ids)
        # The database collation may order keys differently from Python.
        rows.sort(key=lambda grant: grant.resource_id)
        owned = repo.owned_resource_ids(granted_to, sorted_ids)

        results: list[Optional[PermissionsResult]] = [None] * len(ids)
        previous: Optional[PermissionsResult] = None
        pos = 0
        for index in order:
            resource_id = ids[index]
            if previous is not None and previous.resource_id == resource_id:
                results[index] = previous
                continue

            while pos < len(rows) and rows[pos].resource_id < resource_id:
                pos += 1
            matched = []
            while pos < len(rows) and rows[pos].resource_id == resource_id:
                matched.append(rows[pos])
                pos += 1

            if resource_id in owned:
                level, granted_by = self.config.owner_permissions, None
            else:
                level, granted_by = self._resolve(matched)
            previous = PermissionsResult(
                resource_id=resource_id, permissions=level, granted_by=granted_by
            )
            results[index] = previous
        return results

    def list_grants(self, db: Session, resource_id: ResourceKeyT) -> list[Grant]:
        """Stored grants on a resource, unclamped, public grant first."""
        return self._repository(db).list_grants(resource_id)

    # -- query guard ---------------------------------------------------------

    def guard_query(self, query, min_level: int, granted_to: Optional[UserKeyT], **kwargs):
        """Restrict *query* to resources *granted_to* holds at least *min_level* on.

        See QueryGuard.apply for the keyword arguments.
        """
        return self.guard.apply(query, min_level, granted_to, **kwargs)

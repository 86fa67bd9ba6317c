"""Query guard: push permission filtering into a single SQL statement.

Given a read query over the resource table, joins the grants table twice
(the acting user's row and the public row), computes the same clamped
maximum the resolution service computes in Python, and keeps only the rows
resolving to at least the required level. Used so listings can paginate
over accessible resources without a second round trip per page.
"""

from typing import Any, Optional

from sqlalchemy import Table, and_, case, literal
from sqlalchemy.orm import Query
from sqlalchemy.sql import ColumnElement
from sqlalchemy.sql.selectable import Join

from ..exceptions import QueryGuardError
from ..schemas.permissions import PermissionsConfig


def _iter_froms(froms):
    """Flatten joins into their component FROM elements."""
    for from_ in froms:
        if isinstance(from_, Join):
            yield from _iter_froms([from_.left, from_.right])
        else:
            yield from_


def _names_table(from_, table_name: str) -> bool:
    if getattr(from_, "name", None) == table_name:
        return True
    # Aliases keep the aliased table as .element
    return getattr(getattr(from_, "element", None), "name", None) == table_name


class QueryGuard:
    """Rewrites resource queries for one permissions table. Read-only."""

    def __init__(self, config: PermissionsConfig, grants: Table):
        self.config = config
        self.grants = grants

    def _find_resource_from(self, query):
        statement = query.statement if isinstance(query, Query) else query
        resources = self.config.resources
        for from_ in _iter_froms(statement.get_final_froms()):
            if _names_table(from_, resources.table) and resources.column in from_.c:
                return from_
        raise QueryGuardError(
            f"Query does not select from {resources.table!r} with key column "
            f"{resources.column!r}; pass resource_key to correlate it explicitly"
        )

    def _owner_column(self, resource_from) -> ColumnElement:
        owner_column = self.config.resources.owner_column
        if resource_from is None or owner_column not in resource_from.c:
            raise QueryGuardError(
                f"Owner column {owner_column!r} is not available on the guarded query"
            )
        return resource_from.c[owner_column]

    def resolved_level(
        self,
        user_grant,
        public_grant,
        granted_to: Optional[Any],
        owner: Optional[ColumnElement] = None,
    ) -> ColumnElement:
        """SQL expression for the clamped effective level, given the two joined grant aliases."""
        max_public = int(self.config.max_public_permissions)
        max_user = int(self.config.max_user_granted_permissions)

        public_level = case(
            (public_grant.c.permissions.is_(None), 0),
            (public_grant.c.permissions > max_public, max_public),
            else_=public_grant.c.permissions,
        )
        if user_grant is None:
            level = public_level
        else:
            user_level = case(
                (user_grant.c.permissions.is_(None), 0),
                (
                    and_(
                        user_grant.c.granted_by.is_not(None),
                        user_grant.c.permissions > max_user,
                    ),
                    max_user,
                ),
                else_=user_grant.c.permissions,
            )
            level = case((user_level >= public_level, user_level), else_=public_level)

        if owner is not None and granted_to is not None:
            level = case(
                (owner == granted_to, literal(int(self.config.owner_permissions))),
                else_=level,
            )
        return level

    def apply(
        self,
        query,
        min_level: int,
        granted_to: Optional[Any],
        resource_key: Optional[ColumnElement] = None,
        with_permissions: bool = False,
        permissions_label: str = "permissions",
    ):
        """Return *query* restricted to resources *granted_to* holds at least *min_level* on.

        Args:
            query: A ``select()`` or legacy ``Query`` over the resource table,
                possibly already joined to other tables.
            min_level: Minimum resolved level a row must have to be kept.
            granted_to: The acting user's key, or None for an anonymous user
                (only public grants apply).
            resource_key: The resource key column to correlate on. Found in
                the query's FROM list when omitted.
            with_permissions: Also select the resolved level, labelled
                *permissions_label*.

        Raises:
            QueryGuardError: The query does not expose the resource key
                column (or the configured owner column). Raised here, before
                anything is executed.
        """
        if resource_key is None:
            resource_from = self._find_resource_from(query)
            resource_key = resource_from.c[self.config.resources.column]
        else:
            resource_from = getattr(resource_key, "table", None)

        owner = None
        if self.config.resources.owner_column is not None:
            owner = self._owner_column(resource_from)

        name = self.grants.name
        public_grant = self.grants.alias(f"{name}_public")
        query = query.outerjoin(
            public_grant,
            and_(
                public_grant.c.resource_id == resource_key,
                public_grant.c.granted_to.is_(None),
            ),
        )

        user_grant = None
        if granted_to is not None:
            user_grant = self.grants.alias(f"{name}_user")
            query = query.outerjoin(
                user_grant,
                and_(
                    user_grant.c.resource_id == resource_key,
                    user_grant.c.granted_to == granted_to,
                ),
            )

        level = self.resolved_level(user_grant, public_grant, granted_to, owner)
        query = query.filter(level >= min_level)
        if with_permissions:
            query = query.add_columns(level.label(permissions_label))
        return query

"""Grant repository: schema lifecycle and raw persistence for one permissions table.

Owns the storage relation holding one row per (grantee, resource) pair.
Public grants are stored with a NULL grantee; uniqueness of the public row
is enforced either by PostgreSQL's NULLS NOT DISTINCT or by a unique
expression index over COALESCE(granted_to, sentinel) on SQLite, PostgreSQL
and MySQL 8.0.13+. Rows are returned exactly as stored; clamping is the
service layer's concern.
"""

import logging
from typing import Any, Generic, Optional, Sequence, TypeVar

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    Table,
    UniqueConstraint,
    column,
    delete,
    func,
    literal_column,
    or_,
    select,
    table,
)
from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.orm import Session

from ..exceptions import UnsupportedDialectError
from ..models.grant import Grant
from ..schemas.permissions import PermissionsConfig, PublicUniqueness

logger = logging.getLogger(__name__)

UserKeyT = TypeVar("UserKeyT")
ResourceKeyT = TypeVar("ResourceKeyT")

_GRANT_COLUMNS = ("granted_to", "resource_id", "permissions", "granted_at", "granted_by")


def _sql_literal(value: Any) -> str:
    """Render a sentinel key as an inline SQL literal."""
    if isinstance(value, bool):
        raise TypeError("Boolean sentinels are not supported")
    if isinstance(value, int):
        return str(value)
    return "'" + str(value).replace("'", "''") + "'"


def _sentinel(config: PermissionsConfig):
    # Inline literal: DDL cannot carry bound parameters.
    return literal_column(_sql_literal(config.public_sentinel), type_=config.users.data_type)


def _public_key_expression(config: PermissionsConfig, grants: Table):
    """COALESCE(granted_to, sentinel): the grantee key as seen by the uniqueness index."""
    return func.coalesce(grants.c.granted_to, _sentinel(config))


def build_grants_table(config: PermissionsConfig, metadata: MetaData) -> Table:
    """Define the storage relation for *config* on *metadata*.

    ``granted_to`` is nullable exactly when public grants are allowed.
    Deleting a grantee (as grantee or grantor) or a resource cascades to
    its grant rows.
    """
    name = config.grants_table_name
    users = config.users
    resources = config.resources

    grants = Table(
        name,
        metadata,
        Column(
            "granted_to",
            users.data_type,
            ForeignKey(users.key_reference, ondelete="CASCADE"),
            nullable=config.allows_public_grants,
        ),
        Column(
            "resource_id",
            resources.data_type,
            ForeignKey(resources.key_reference, ondelete="CASCADE"),
            nullable=False,
        ),
        Column("permissions", Integer, nullable=False),
        Column("granted_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
        Column(
            "granted_by",
            users.data_type,
            ForeignKey(users.key_reference, ondelete="CASCADE"),
            nullable=True,
        ),
        CheckConstraint("permissions >= 0", name=f"{name}_permissions_check"),
    )

    if config.public_uniqueness == PublicUniqueness.NULLS_NOT_DISTINCT:
        grants.append_constraint(
            UniqueConstraint(
                "granted_to",
                "resource_id",
                name=f"{name}_grantee_resource_key",
                postgresql_nulls_not_distinct=True,
            )
        )
    else:
        Index(
            f"{name}_grantee_resource_key",
            _public_key_expression(config, grants),
            grants.c.resource_id,
            unique=True,
        )
        # The sentinel shares the public row's uniqueness slot; no user may hold it.
        grants.append_constraint(
            CheckConstraint(
                or_(grants.c.granted_to.is_(None), grants.c.granted_to != _sentinel(config)),
                name=f"{name}_granted_to_check",
            )
        )
    # Grants are looked up by resource far more often than by grantee.
    Index(f"{name}_resource_idx", grants.c.resource_id)
    return grants


class GrantRepository(Generic[UserKeyT, ResourceKeyT]):
    """Persistence for the grants of one PermissionsConfig.

    Every method is a single round trip on the caller's session. Nothing
    here commits; transaction boundaries belong to the caller.
    """

    def __init__(self, db: Session, config: PermissionsConfig, grants: Table):
        self.db = db
        self.config = config
        self.grants = grants

    # -- schema --------------------------------------------------------------

    def create_schema(self) -> None:
        """Create the grants table and its indexes if they don't exist yet.

        Referenced user/resource tables missing from the table's MetaData are
        reflected from the database so the foreign keys can be resolved.
        """
        self._dialect()
        conn = self.db.connection()
        metadata = self.grants.metadata
        for ref in (self.config.users, self.config.resources):
            if ref.table not in metadata.tables:
                Table(ref.table, metadata, autoload_with=conn)
        self.grants.create(bind=conn, checkfirst=True)
        logger.info("Created grants table %s", self.grants.name)

    def drop_schema(self) -> None:
        """Drop the grants table. No-op when it does not exist."""
        self.grants.drop(bind=self.db.connection(), checkfirst=True)
        logger.info("Dropped grants table %s", self.grants.name)

    # -- writes --------------------------------------------------------------

    def _dialect(self) -> str:
        """Name of the session's dialect, if the configured uniqueness mode works on it."""
        dialect = self.db.get_bind().dialect.name
        if dialect not in ("postgresql", "sqlite", "mysql"):
            raise UnsupportedDialectError(dialect)
        if (
            self.config.public_uniqueness == PublicUniqueness.NULLS_NOT_DISTINCT
            and dialect != "postgresql"
        ):
            raise UnsupportedDialectError(dialect)
        return dialect

    def _conflict_target(self) -> list:
        """Index expressions the upsert must name to hit the uniqueness index."""
        if self.config.public_uniqueness == PublicUniqueness.NULLS_NOT_DISTINCT:
            return [self.grants.c.granted_to, self.grants.c.resource_id]
        return [_public_key_expression(self.config, self.grants), self.grants.c.resource_id]

    def upsert_grant(
        self,
        granted_to: Optional[UserKeyT],
        resource_id: ResourceKeyT,
        permissions: int,
        granted_by: Optional[UserKeyT],
    ) -> None:
        """Insert the grant, or overwrite the existing one for the same key.

        Emitted as one INSERT ... ON CONFLICT DO UPDATE statement (ON
        DUPLICATE KEY UPDATE on MySQL), so concurrent writers on the same
        key resolve to the last commit.
        """
        dialect = self._dialect()
        values = {
            "granted_to": granted_to,
            "resource_id": resource_id,
            "permissions": permissions,
            "granted_by": granted_by,
        }
        if dialect == "mysql":
            # No conflict target: the grantee/resource key is the only unique key.
            stmt = mysql.insert(self.grants).values(**values)
            stmt = stmt.on_duplicate_key_update(
                permissions=stmt.inserted.permissions,
                granted_by=stmt.inserted.granted_by,
                granted_at=func.now(),
            )
        else:
            insert = postgresql.insert if dialect == "postgresql" else sqlite.insert
            stmt = insert(self.grants).values(**values)
            stmt = stmt.on_conflict_do_update(
                index_elements=self._conflict_target(),
                set_={
                    "permissions": stmt.excluded.permissions,
                    "granted_by": stmt.excluded.granted_by,
                    "granted_at": func.now(),
                },
            )
        self.db.execute(stmt)

    def delete_grant(self, granted_to: Optional[UserKeyT], resource_id: ResourceKeyT) -> bool:
        """Delete one grant. Returns True if a row was removed; absent rows are not an error."""
        grantee_clause = (
            self.grants.c.granted_to.is_(None)
            if granted_to is None
            else self.grants.c.granted_to == granted_to
        )
        result = self.db.execute(
            delete(self.grants).where(grantee_clause, self.grants.c.resource_id == resource_id)
        )
        return result.rowcount > 0

    # -- reads ---------------------------------------------------------------

    def query_grants(
        self,
        granted_to: Optional[UserKeyT],
        resource_ids: Sequence[ResourceKeyT],
    ) -> list[Grant]:
        """Grants applicable to *granted_to* on *resource_ids*.

        Applicable means the user's own grant and the public grant, so each
        resource yields at most two rows. Rows come back ordered by
        resource_id, the user's row ahead of the public row.
        """
        if not resource_ids:
            return []
        g = self.grants
        if granted_to is None:
            grantee_clause = g.c.granted_to.is_(None)
        else:
            grantee_clause = or_(g.c.granted_to == granted_to, g.c.granted_to.is_(None))

        stmt = (
            select(*(g.c[name] for name in _GRANT_COLUMNS))
            .where(g.c.resource_id.in_(list(resource_ids)), grantee_clause)
            .order_by(g.c.resource_id, g.c.granted_to.is_(None))
        )
        return [Grant(*row) for row in self.db.execute(stmt)]

    def list_grants(self, resource_id: ResourceKeyT) -> list[Grant]:
        """Every stored grant on a resource, public grant first, then by grantee."""
        g = self.grants
        stmt = (
            select(*(g.c[name] for name in _GRANT_COLUMNS))
            .where(g.c.resource_id == resource_id)
            .order_by(g.c.granted_to.is_not(None), g.c.granted_to)
        )
        return [Grant(*row) for row in self.db.execute(stmt)]

    def owned_resource_ids(
        self,
        user_id: UserKeyT,
        resource_ids: Sequence[ResourceKeyT],
    ) -> set:
        """Subset of *resource_ids* whose owner column holds *user_id*.

        Only meaningful when the resource collection has an owner column;
        returns an empty set otherwise, or when *user_id* is None.
        """
        resources = self.config.resources
        if resources.owner_column is None or user_id is None or not resource_ids:
            return set()
        key = column(resources.column)
        owner = column(resources.owner_column)
        resource_table = table(resources.table, key, owner)
        stmt = select(key).select_from(resource_table).where(
            key.in_(list(resource_ids)), owner == user_id
        )
        return set(self.db.scalars(stmt))

"""Shared test fixtures for the permissions engine test suite.

All tests use an in-memory SQLite database shared through a StaticPool, with
foreign keys turned on so cascades behave as on PostgreSQL. Each test gets
fresh ``users`` and ``documents`` tables and a permissions table governing
documents.
"""

import pytest
from sqlalchemy import Column, ForeignKey, MetaData, String, Table, insert
from sqlalchemy.pool import StaticPool

from permissions_table import AccessLevel, CollectionRef, PermissionsConfig, PermissionsTable
from permissions_table.database import create_db_engine, session_factory

USER_IDS = ["alice", "bob", "carol"]
DOCUMENT_IDS = ["doc-1", "doc-2", "doc-3", "doc-4", "doc-5"]


def make_config(**overrides) -> PermissionsConfig:
    """Factory for the documents permissions configuration."""
    fields = {
        "max_public_permissions": AccessLevel.READ,
        "max_user_granted_permissions": AccessLevel.EDIT,
        "users": CollectionRef(table="users"),
        "resources": CollectionRef(table="documents"),
    }
    fields.update(overrides)
    return PermissionsConfig(**fields)


@pytest.fixture()
def engine():
    engine = create_db_engine("sqlite://", poolclass=StaticPool)
    yield engine
    engine.dispose()


@pytest.fixture()
def metadata():
    """Host-application tables the grants reference."""
    md = MetaData()
    Table(
        "users", md,
        Column("id", String(50), primary_key=True),
        Column("name", String(100)),
    )
    Table(
        "documents", md,
        Column("id", String(50), primary_key=True),
        Column("owner_id", String(50), ForeignKey("users.id", ondelete="CASCADE"), nullable=True),
        Column("title", String(200)),
    )
    return md


@pytest.fixture()
def db(engine, metadata):
    """Per-test session over freshly created and seeded host tables."""
    users, documents = metadata.tables["users"], metadata.tables["documents"]
    metadata.create_all(engine, tables=[users, documents])
    session = session_factory(engine)()
    session.execute(insert(users), [{"id": uid, "name": uid.title()} for uid in USER_IDS])
    session.execute(
        insert(documents),
        [{"id": did, "owner_id": None, "title": f"Document {did}"} for did in DOCUMENT_IDS],
    )
    session.commit()
    yield session
    session.close()


@pytest.fixture()
def permissions(db, metadata) -> PermissionsTable:
    """Documents permissions table with public ceiling READ and user ceiling EDIT."""
    table = PermissionsTable(make_config(), metadata)
    table.create_schema(db)
    return table

"""Engine and session helpers for hosts that don't bring their own.

The permissions engine itself only needs a Session; these helpers build one
from Settings the way the engine expects it configured.
"""

import logging
from typing import Iterator, Optional

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from .core.config import settings

logger = logging.getLogger(__name__)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_engine(database_url: Optional[str] = None, **kwargs) -> Engine:
    """Create an engine with database-specific tuning.

    Extra keyword arguments are passed through to ``create_engine``.
    """
    url = database_url or settings.database_url

    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
        engine = create_engine(url, echo=settings.db_echo, **kwargs)

        # SQLite defaults foreign_keys to OFF; CASCADE constraints are silently
        # ignored unless we enable them on every connection.
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    else:
        # PostgreSQL: connection pool sized for typical web workloads.
        kwargs.setdefault("pool_size", settings.db_pool_size)
        kwargs.setdefault("max_overflow", settings.db_max_overflow)
        kwargs.setdefault("pool_timeout", settings.db_pool_timeout)
        kwargs.setdefault("pool_recycle", settings.db_pool_recycle)
        # Detects stale connections before use (prevents "server closed the connection" errors).
        kwargs.setdefault("pool_pre_ping", True)
        engine = create_engine(url, echo=settings.db_echo, **kwargs)

    logger.debug("Created %s engine", engine.dialect.name)
    return engine


def session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db(factory: sessionmaker) -> Iterator[Session]:
    """Yield a session from *factory* for one unit of work.

    Rolls back the transaction on unhandled exceptions so that the
    connection is returned to the pool in a clean state. Wrap it in a
    zero-argument function to use it as a FastAPI dependency.
    """
    db = factory()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()

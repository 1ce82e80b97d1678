"""
Module: approval_kernel.db.engine
Responsibility: Build engines and session factories for the SQL-backed
    template and instance stores, and run one store call per transaction.
Architecture position: Kernel > DB.  Imports db/base.py and, for table
    creation, the models package.  MUST NOT import from services/.

Invariants enforced:
    - PostgreSQL: pooled connections with pre-ping at READ COMMITTED.  The
      instance store takes ``FOR UPDATE`` on the row it saves and the
      ``version`` column catches anything that slips past.
    - SQLite: connections usable from any thread (the escalation scheduler
      sweeps on its own thread); ``:memory:`` databases share one
      connection so every session sees the same tables.

Failure modes:
    - ``session_scope`` rolls back and re-raises on any exception.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from approval_kernel.db.base import Base
from approval_kernel.logging_config import get_logger

logger = get_logger("db.engine")

POSTGRES_POOL_DEFAULTS: dict[str, Any] = {
    "pool_size": 10,
    "max_overflow": 5,
    "pool_timeout": 30,
    "pool_recycle": 1800,
}


def create_workflow_engine(database_url: str, *, echo: bool = False, **pool: Any) -> Engine:
    """
    Engine for ``database_url`` with dialect-appropriate pooling.

    ``pool`` overrides ``POSTGRES_POOL_DEFAULTS`` and is ignored for
    SQLite.
    """
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite":
        options: dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        if url.database in (None, "", ":memory:"):
            options["poolclass"] = StaticPool
        engine = create_engine(url, echo=echo, **options)
    else:
        engine = create_engine(
            url,
            echo=echo,
            pool_pre_ping=True,
            isolation_level="READ COMMITTED",
            **{**POSTGRES_POOL_DEFAULTS, **pool},
        )
    logger.info(
        "engine_created",
        extra={"dialect": engine.dialect.name, "database": url.database},
    )
    return engine


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    # Stores hand back DTOs after commit, so attributes must stay loaded.
    return sessionmaker(bind=engine, expire_on_commit=False)


def create_tables(engine: Engine) -> None:
    """Create every workflow table that does not exist yet."""
    import approval_kernel.models  # noqa: F401  registers tables on Base.metadata

    Base.metadata.create_all(engine)


def drop_tables(engine: Engine) -> None:
    import approval_kernel.models  # noqa: F401

    Base.metadata.drop_all(engine)


def open_database(database_url: str, *, echo: bool = False) -> sessionmaker[Session]:
    """Engine, schema and session factory in one call."""
    engine = create_workflow_engine(database_url, echo=echo)
    create_tables(engine)
    return create_session_factory(engine)


@contextmanager
def session_scope(factory: sessionmaker[Session]) -> Iterator[Session]:
    """
    One transaction: commit on normal exit, roll back and re-raise on error.

    Usage:
        with session_scope(self._session_factory) as session:
            session.add(model)
    """
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()

"""
consolidation_kernel.db.engine -- Process-wide SQLAlchemy engine and sessions.

Responsibility:
    Owns the single Engine and sessionmaker used by the SQL run store and
    provides ``session_scope`` for commit-or-rollback units of work.

Architecture position:
    Kernel > DB.  Knows nothing about the tables; schema creation lives with
    the models in ``consolidation_services.sql_store``.

Invariants enforced:
    - PostgreSQL connections run at READ COMMITTED.  One-active-run-per-key
      is enforced by a partial unique index, so no stricter level is needed.
    - An in-memory SQLite URL gets a StaticPool: every session shares the
      one connection that holds the database.

Failure modes:
    - RuntimeError from ``get_engine`` / ``get_session_factory`` before
      ``init_engine_from_url`` has been called.
"""

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from consolidation_kernel.logging_config import get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None

_NOT_INITIALIZED = "Database engine not initialized; call init_engine_from_url() first"


def init_engine_from_url(
    database_url: str,
    *,
    echo: bool = False,
    pool_size: int = 5,
    max_overflow: int = 5,
) -> Engine:
    """
    Create the process-wide engine.

    Args:
        database_url: ``postgresql+psycopg2://...`` in production, or
            ``sqlite://`` for an in-memory database.
        echo: Log every SQL statement.
        pool_size / max_overflow: Connection pool sizing (PostgreSQL only).
    """
    global _engine, _session_factory

    if database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_engine(
            database_url,
            echo=echo,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=True,
            isolation_level="READ COMMITTED",
        )

    _engine = engine
    _session_factory = sessionmaker(bind=engine, expire_on_commit=False)
    logger.info("engine_initialized", extra={"dialect": engine.dialect.name})
    return engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    if _session_factory is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _session_factory


@contextmanager
def session_scope(factory: sessionmaker[Session] | None = None) -> Iterator[Session]:
    """Yield a session that commits on success and rolls back on any error."""
    session = (factory or get_session_factory())()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def reset_engine() -> None:
    """Dispose the engine and forget the session factory (tests only)."""
    global _engine, _session_factory

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None

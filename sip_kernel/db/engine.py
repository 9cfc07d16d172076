"""
Module: sip_kernel.db.engine
Responsibility: SQLAlchemy engine construction, schema creation and the
    transactional scope used by every unit of work.
Architecture position: Kernel > DB.  May import from db/base.py and models/.

Invariants enforced:
    - PostgreSQL (psycopg2) is the production backend; SQLite is supported
      for tests and single-user installs.
    - Every unit of work runs in its own Session; sessions are never shared
      between the worker threads of a batch.

Non-goals:
    - No module-level engine.  Callers own the engine and pass a session
      factory to the services that need one.
"""

from contextlib import contextmanager
from typing import Callable, Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session

from sip_kernel.logging_config import get_logger

logger = get_logger("db.engine")


def build_engine(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Create an Engine for ``database_url``.

    SQLite URLs get ``check_same_thread=False`` and a busy timeout so the
    batch worker threads can share the file; pool sizing only applies to
    server databases.
    """
    url = make_url(database_url)

    if url.get_backend_name() == "sqlite":
        engine = create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": 30},
        )
    else:
        engine = create_engine(
            url,
            echo=echo,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=pool_pre_ping,
            pool_recycle=pool_recycle,
            isolation_level="READ COMMITTED",
        )

    logger.info(
        "engine_initialized",
        extra={"dialect": engine.dialect.name, "echo": echo},
    )
    return engine


@contextmanager
def session_scope(
    session_factory: Callable[[], Session],
) -> Generator[Session, None, None]:
    """
    Provide a transactional scope around a series of operations.

    Postconditions: on normal exit the session is committed and closed.
        On exception it is rolled back and closed, and the exception is
        re-raised to the caller.

    Usage:
        with session_scope(factory) as session:
            session.add(entity)
    """
    session = session_factory()
    logger.debug("transaction_started")
    try:
        yield session
        session.commit()
        logger.debug("transaction_committed")
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables(engine: Engine) -> None:
    """Create all tables defined by the ORM models."""
    from sip_kernel.db.base import Base
    import sip_kernel.models  # noqa: F401  (registers tables on Base.metadata)

    Base.metadata.create_all(engine)


def drop_tables(engine: Engine) -> None:
    """Drop all tables. Use with caution - primarily for testing."""
    from sip_kernel.db.base import Base
    import sip_kernel.models  # noqa: F401

    Base.metadata.drop_all(engine)

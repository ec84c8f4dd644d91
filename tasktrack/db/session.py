"""
TaskTrack Database Session Management.

Single entry point for DB initialisation plus a context manager for
transactional access. Repositories receive the session factory returned
by init_db() and open one session per operation.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy.orm import Session, sessionmaker

from tasktrack.db.base import Base, build_engine
from tasktrack.engine.config import DatabaseConfig

_session_factory: Optional[sessionmaker] = None


def init_db(db_config: DatabaseConfig, create_tables: bool = False) -> sessionmaker:
    """
    Initialise the database and install the module-level session factory.

    Args:
        db_config:     Database section of tasktrack.yaml.
        create_tables: When True, run Base.metadata.create_all(). Used by
                       ``tasktrack init`` and the test suite.

    Returns:
        A ``sessionmaker`` bound to the new engine.
    """
    global _session_factory

    # Importing the models registers their tables on Base.metadata
    from tasktrack.db import models  # noqa: F401

    engine = build_engine(
        db_config.url,
        pool_size=db_config.pool_size,
        max_overflow=db_config.max_overflow,
        pool_pre_ping=db_config.pool_pre_ping,
        echo=db_config.echo,
    )

    if create_tables:
        Base.metadata.create_all(engine)

    # expire_on_commit=False so rows handed back to callers stay readable
    _session_factory = sessionmaker(bind=engine, expire_on_commit=False)
    return _session_factory


def get_session_factory() -> sessionmaker:
    """Return the installed session factory."""
    if _session_factory is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _session_factory


@contextmanager
def session_scope(factory: Optional[sessionmaker] = None) -> Generator[Session, None, None]:
    """
    Context manager for DB sessions with auto-commit/rollback.

    Usage:
        with session_scope() as session:
            task = session.get(Task, 1)
    """
    session = (factory or get_session_factory())()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def close_db() -> None:
    """Dispose the engine behind the installed factory. Used during shutdown."""
    global _session_factory
    if _session_factory is not None:
        bind = _session_factory.kw.get("bind")
        if bind is not None:
            bind.dispose()
    _session_factory = None

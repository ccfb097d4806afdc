"""
Database configuration and session management.

This module provides SQLAlchemy engine configuration, the session factory,
and a transactional session scope used by the record store.
"""

from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from quillpress.core.config import get_settings


def create_db_engine(database_url: str | None = None, **overrides: Any) -> Engine:
    """
    Create SQLAlchemy engine with appropriate configuration.

    Args:
        database_url: Optional database URL override. If not provided,
                     uses the URL from settings.
        **overrides: Extra ``create_engine`` keyword arguments

    Returns:
        SQLAlchemy engine instance
    """
    settings = get_settings()
    url = database_url or settings.database_url

    engine_kwargs: dict[str, Any] = {"pool_pre_ping": True}

    if url.startswith("sqlite"):
        # Worker threads share the connection pool
        engine_kwargs["connect_args"] = {"check_same_thread": False}
    else:
        engine_kwargs.update(
            {
                "pool_size": 5,
                "max_overflow": 10,
                "pool_recycle": 3600,  # Recycle connections after 1 hour
            }
        )

    if settings.debug:
        engine_kwargs["echo"] = True

    engine_kwargs.update(overrides)
    return create_engine(url, **engine_kwargs)


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Create a session factory bound to ``engine``."""
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=engine,
    )


@contextmanager
def session_scope(factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    """
    Provide a transactional scope around a series of operations.

    Commits on success, rolls back on any exception and always closes.

    Yields:
        Session: SQLAlchemy database session
    """
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(engine: Engine) -> None:
    """
    Create all tables defined in the models.

    Intended for development and tests.
    """
    from quillpress.models import Base, ContentRecord  # noqa: F401

    Base.metadata.create_all(bind=engine)

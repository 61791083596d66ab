"""Database engine and session management for the conversation store."""

from contextlib import contextmanager
from typing import Generator, Optional
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import QueuePool, StaticPool

from chatcmd.infra.config import config


_engine: Optional[Engine] = None


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Create an engine for the given URL.

    SQLite URLs (used by tests and local development) get a single shared
    connection so an in-memory database survives across sessions.
    """
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=echo,
        )
    return create_engine(
        database_url,
        poolclass=QueuePool,
        pool_size=10,  # Number of connections to maintain
        max_overflow=20,  # Max connections beyond pool_size
        pool_timeout=30,  # Seconds to wait for connection from pool
        pool_recycle=3600,  # Recycle connections after 1 hour
        pool_pre_ping=True,  # Verify connections before using
        echo=echo,
    )


def get_engine() -> Engine:
    """Lazily create the process-wide engine from config."""
    global _engine
    if _engine is None:
        _engine = build_engine(config.DATABASE_URL, echo=config.DEBUG)
    return _engine


def dispose_engine() -> None:
    """Dispose the process-wide engine (called on shutdown)."""
    global _engine
    if _engine is not None:
        _engine.dispose()
    _engine = None


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@contextmanager
def session_scope(factory: sessionmaker) -> Generator[Session, None, None]:
    """
    Transactional session scope.

    Commits on success, rolls back and re-raises on failure.
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

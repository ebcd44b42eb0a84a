from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from contextlib import contextmanager
from typing import Callable, Iterator

from .config import Settings

Base = declarative_base()

SessionFactory = Callable[[], Session]

def build_engine(database_url: str) -> Engine:
    """Create an engine for the backing store.

    No connection is opened here; an unreachable server only shows up on the
    first statement, which the persistence adapter classifies.
    """
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
        )

    return create_engine(
        database_url,
        pool_size=5,
        max_overflow=10,
        pool_timeout=30,
        pool_recycle=1800,  # Recycle connections after 30 minutes
        pool_pre_ping=True,
    )

def build_session_factory(settings: Settings) -> sessionmaker:
    """Session factory bound to the configured backing store."""
    engine = build_engine(settings.get_database_url)
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=engine,
    )

@contextmanager
def session_scope(session_factory: SessionFactory) -> Iterator[Session]:
    """Yield a session, commit on success, roll back on error, always close."""
    db = session_factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()

"""Database configuration and session management.

The engine is created lazily from DATABASE_URL so that importing the ORM
models never opens a connection or loads a database driver.
"""

from functools import lru_cache
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from prompt_resolution.config import get_app_database_url


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""


def create_session_factory(
    database_url: str,
    engine: Optional[Engine] = None,
) -> "sessionmaker[Session]":
    """Build a session factory for the given URL.

    SQLite in-memory URLs share a single connection so every session sees
    the same database (used by tests).
    """
    if engine is None:
        if database_url.startswith("sqlite"):
            engine = create_engine(
                database_url,
                future=True,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            engine = create_engine(
                database_url,
                future=True,
                poolclass=QueuePool,
                pool_size=5,
                max_overflow=10,
                pool_pre_ping=True,  # Verify connections before using
            )

    return sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )


@lru_cache(maxsize=1)
def get_session_factory() -> "sessionmaker[Session]":
    """Process-wide session factory for the application database."""
    return create_session_factory(get_app_database_url())


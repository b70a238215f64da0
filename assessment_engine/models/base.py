"""
Database base configuration for SQLAlchemy models.

This module uses SQLAlchemy 2.0 style with DeclarativeBase. The engine itself
never opens connections at import time; hosts call ``create_session_factory``
with their own URL (tests pass ``sqlite:///:memory:``).
"""

from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

from assessment_engine.core.config import settings


class Base(DeclarativeBase):
    """Base class for all engine models."""


def create_db_engine(database_url: Optional[str] = None) -> Engine:
    """
    Create a sync engine for ``database_url`` (defaults to settings).

    In-memory SQLite URLs get a StaticPool so every session shares the same
    connection and therefore the same database.
    """
    url = database_url or settings.DATABASE_URL
    if url.startswith("sqlite"):
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url:
            kwargs["poolclass"] = StaticPool
        return create_engine(url, echo=settings.DEBUG, **kwargs)
    return create_engine(url, echo=settings.DEBUG, pool_pre_ping=True)


def create_session_factory(
    database_url: Optional[str] = None, *, create_tables: bool = False
) -> sessionmaker[Session]:
    """Build a session factory, optionally creating the schema first."""
    engine = create_db_engine(database_url)
    if create_tables:
        Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)

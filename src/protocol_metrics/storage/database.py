"""Database connection and session management.

This module provides the database engine and session factory for the
storage layer. Event processing is strictly sequential, so only the
synchronous engine is used.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from protocol_metrics.storage.models import Base

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


def normalize_sync_database_url(database_url: str) -> str:
    if database_url.startswith("postgresql://"):
        logger.debug("Database URL uses 'postgresql://'; using driver 'postgresql+psycopg://'.")
        return database_url.replace("postgresql://", "postgresql+psycopg://", 1)
    return database_url


def create_sync_engine(database_url: str, **kwargs: Any) -> Engine:
    """Create a synchronous SQLAlchemy engine.

    Args:
        database_url: Database connection URL (e.g., postgresql://... or sqlite://...).
        **kwargs: Additional engine options.

    Returns:
        SQLAlchemy Engine instance.
    """
    return create_engine(normalize_sync_database_url(database_url), **kwargs)


def create_sync_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Create a synchronous session factory.

    Args:
        engine: SQLAlchemy Engine instance.

    Returns:
        Session factory.
    """
    return sessionmaker(bind=engine, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    """Initialize the database schema.

    Creates all tables defined in the models.

    Args:
        engine: SQLAlchemy Engine instance.
    """
    Base.metadata.create_all(engine)
    logger.info("Database schema initialized")


class DatabaseManager:
    """Manages the database engine and sessions."""

    def __init__(
        self,
        database_url: str,
        *,
        pool_size: int = 5,
        max_overflow: int = 10,
        echo: bool = False,
    ) -> None:
        """Initialize database manager.

        Args:
            database_url: Database connection URL.
            pool_size: Connection pool size (ignored for SQLite).
            max_overflow: Maximum overflow connections (ignored for SQLite).
            echo: Echo SQL statements for debugging.
        """
        self.database_url = database_url
        self._pool_size = pool_size
        self._max_overflow = max_overflow
        self._echo = echo

        self._engine: Engine | None = None
        self._session_factory: sessionmaker[Session] | None = None

    def _get_engine(self) -> Engine:
        """Get or create the engine."""
        if self._engine is None:
            kwargs: dict[str, Any] = {"echo": self._echo}
            if not self.database_url.startswith("sqlite"):
                kwargs["pool_size"] = self._pool_size
                kwargs["max_overflow"] = self._max_overflow
            self._engine = create_sync_engine(self.database_url, **kwargs)
        return self._engine

    @property
    def session_factory(self) -> sessionmaker[Session]:
        """Get or create the session factory."""
        if self._session_factory is None:
            self._session_factory = create_sync_session_factory(self._get_engine())
        return self._session_factory

    def init_schema(self) -> None:
        """Initialize database schema."""
        init_db(self._get_engine())

    def dispose(self) -> None:
        """Dispose of all database connections."""
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
            self._session_factory = None
        logger.info("Database connections disposed")

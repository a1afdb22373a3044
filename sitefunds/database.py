"""
Database Connection Module

Provides the SQLAlchemy engine and the SQL-backed record repository.
"""

import logging
import os
from functools import lru_cache

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from .repository import SqlRepository

logger = logging.getLogger(__name__)

# Database URL from environment
DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"postgresql://{os.getenv('POSTGRES_USER', 'sitefunds')}:"
    f"{os.getenv('POSTGRES_PASSWORD', 'password')}@"
    f"{os.getenv('POSTGRES_HOST', 'localhost')}:"
    f"{os.getenv('POSTGRES_PORT', '5432')}/"
    f"{os.getenv('POSTGRES_DB', 'site_funds')}"
)


def create_db_engine(url: str | None = None) -> Engine:
    """Create an engine for the given URL.

    In-memory SQLite shares one connection so every session sees the
    same database.

    Args:
        url: Database URL (defaults to DATABASE_URL)

    Returns:
        SQLAlchemy engine
    """
    url = url or DATABASE_URL

    if url.startswith("sqlite"):
        if url in ("sqlite://", "sqlite:///:memory:"):
            return create_engine(
                url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        return create_engine(url, connect_args={"check_same_thread": False})

    return create_engine(
        url,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
    )


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    """Get the process-wide engine."""
    logger.info("Creating database engine")
    return create_db_engine()


def get_sql_repository() -> SqlRepository:
    """Get a repository bound to the process-wide engine."""
    return SqlRepository(get_engine())

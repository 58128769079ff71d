"""
Database configuration and connection management.

This module provides:
- SQLAlchemy engine creation with sane pooling defaults
- The users table touched by checkout
- Test database support

Used only by the SQL user store; Supabase deployments never open an engine.
"""
from typing import Optional
from sqlalchemy import create_engine, MetaData, Table, Column, String, DateTime, select
from sqlalchemy.engine import Engine
from sqlalchemy.pool import QueuePool, StaticPool
from sqlalchemy.sql import func
import logging
import os

from plancheckout.core.config import settings


logger = logging.getLogger("plancheckout")

# SQLAlchemy metadata for table definitions
metadata = MetaData()

# Connection pooling configuration
POOL_SIZE = 5
MAX_OVERFLOW = 10
POOL_TIMEOUT = 30
POOL_RECYCLE = 3600  # Recycle connections after 1 hour

# Global engines, keyed by URL
_engines = {}


def get_database_url() -> Optional[str]:
    """
    Get the database URL from settings or environment.

    For testing, use TEST_DATABASE_URL if available.
    """
    test_url = os.getenv("TEST_DATABASE_URL") or settings.TEST_DATABASE_URL
    if test_url:
        return test_url

    return settings.DATABASE_URL


def make_engine(url: str) -> Engine:
    """
    Create an engine for the given URL.

    SQLite (tests, local dev) gets a StaticPool so an in-memory database
    is shared across connections; everything else gets a QueuePool.
    """
    if url.startswith("sqlite"):
        return create_engine(
            url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    return create_engine(
        url,
        poolclass=QueuePool,
        pool_size=POOL_SIZE,
        max_overflow=MAX_OVERFLOW,
        pool_timeout=POOL_TIMEOUT,
        pool_recycle=POOL_RECYCLE,
        pool_pre_ping=True,
        echo=False,  # Set to True for SQL query logging
    )


def get_engine(database_url: Optional[str] = None) -> Engine:
    """Get (or lazily create) the engine for a URL, defaulting to DATABASE_URL."""
    url = database_url or get_database_url()
    if not url:
        raise ValueError(
            "DATABASE_URL is not configured. "
            "Set DATABASE_URL in environment or .env file."
        )
    engine = _engines.get(url)
    if engine is None:
        engine = make_engine(url)
        _engines[url] = engine
    return engine


def dispose_engines() -> None:
    """Dispose all cached engines (tests, shutdown)."""
    for engine in _engines.values():
        engine.dispose()
    _engines.clear()


def create_all_tables(engine: Optional[Engine] = None):
    """
    Create all tables defined in metadata.

    This is idempotent - tables that already exist will not be recreated.
    """
    metadata.create_all(bind=engine or get_engine())


def drop_all_tables(engine: Optional[Engine] = None):
    """
    Drop all tables defined in metadata.

    WARNING: This is destructive! Only use in tests or development.
    """
    metadata.drop_all(bind=engine or get_engine())


def check_connection(engine: Optional[Engine] = None) -> bool:
    """
    Check if database connection is available.

    Returns:
        True if connection successful, False otherwise
    """
    try:
        eng = engine or get_engine()
        with eng.connect() as conn:
            conn.execute(select(1))
        return True
    except Exception as e:
        logger.warning(f"Database connection check failed: {e}")
        return False


# Users table: only the columns checkout reads or writes
users = Table(
    'users',
    metadata,
    Column('id', String(100), primary_key=True),
    Column('email', String(320), nullable=False, index=True),
    Column('subscription_status', String(50), nullable=True),
    Column('plan_type', String(50), nullable=True),
    Column('selected_plan', String(100), nullable=True),
    Column('stripe_session_id', String(255), nullable=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column('updated_at', DateTime(timezone=True), nullable=True),
)

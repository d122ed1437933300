"""
Database configuration and session management for the planning engine.
Uses PostgreSQL in production and SQLite during local development.
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase
from typing import Generator

from gmao_planning.config import settings

DATABASE_URL = settings.DATABASE_URL

# SQLite requires a specific connection argument
connect_args = (
    {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
)

engine = create_engine(
    DATABASE_URL,
    connect_args=connect_args,
    pool_pre_ping=True,        # Safely recycle DB connections
    echo=False                 # Set True only for debugging SQL
)


# Base class for models
class Base(DeclarativeBase):
    pass


# Session factory
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)


def get_db() -> Generator:
    """
    FastAPI dependency that provides a database session.
    Ensures proper cleanup after request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """
    Initialize the database by creating all defined tables.
    Called during application startup.
    """
    import gmao_planning.models  # noqa: F401  Import all ORM models
    Base.metadata.create_all(bind=engine)

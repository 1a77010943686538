"""
Database configuration for the Finops Inbox service.

Loads environment variables and creates the SQLAlchemy engine and session factory
on first use.
"""

import os

from dotenv import load_dotenv
from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import sessionmaker

# Load environment variables from .env file
load_dotenv()


class DatabaseConfig:
    """Database configuration singleton."""

    _engine: Engine | None = None
    _session_factory: sessionmaker | None = None

    @classmethod
    def get_database_url(cls) -> str:
        """Get database URL from environment variables."""
        database_url = os.getenv("DATABASE_URL")
        if not database_url:
            raise ValueError(
                "DATABASE_URL environment variable is required. "
                "Copy .env.example to .env and set your database connection string."
            )
        return database_url

    @classmethod
    def get_engine(cls) -> Engine:
        """Get SQLAlchemy engine (singleton)."""
        if cls._engine is None:
            cls.configure(cls.get_database_url())
        return cls._engine

    @classmethod
    def configure(cls, database_url: str, **engine_kwargs) -> Engine:
        """Create the engine for an explicit URL, replacing any existing one."""
        if database_url.startswith("sqlite"):
            engine = create_engine(database_url, echo=False, **engine_kwargs)
            _enable_sqlite_foreign_keys(engine)
        else:
            engine = create_engine(
                database_url,
                pool_size=10,
                max_overflow=20,
                pool_pre_ping=True,
                echo=False,  # Set to True for SQL debugging
                **engine_kwargs,
            )
        cls.use_engine(engine)
        return engine

    @classmethod
    def use_engine(cls, engine: Engine) -> None:
        """Bind the session factory to an already-built engine."""
        cls._engine = engine
        cls._session_factory = sessionmaker(
            bind=engine,
            autoflush=False,
            autocommit=False,
            expire_on_commit=False,
        )

    @classmethod
    def get_session_factory(cls) -> sessionmaker:
        """Get session factory."""
        if cls._session_factory is None:
            cls.get_engine()
        return cls._session_factory

    @classmethod
    def reset(cls) -> None:
        """Dispose of the engine and forget the session factory."""
        if cls._engine is not None:
            cls._engine.dispose()
        cls._engine = None
        cls._session_factory = None


def _enable_sqlite_foreign_keys(engine: Engine) -> None:
    # SQLite ignores ON DELETE CASCADE unless foreign keys are switched on
    @event.listens_for(engine, "connect")
    def _set_pragma(dbapi_connection, _record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def SessionLocal():
    """Create a new session from the configured factory."""
    return DatabaseConfig.get_session_factory()()

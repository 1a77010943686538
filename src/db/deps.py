"""
Database dependency management for the Finops Inbox service.

Provides context managers and utilities for database session handling.
"""

from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy.orm import Session

from .config import SessionLocal


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """
    Context manager that yields a database session and ensures proper cleanup.

    Automatically handles:
    - Session creation
    - Transaction commit on success
    - Rollback on exception
    - Session cleanup

    Usage:
        with get_session() as session:
            invoice = session.get(Invoice, invoice_id)
            session.add(new_row)
            # Commit happens automatically if no exception
    """
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@contextmanager
def session_scope(session: Session | None = None) -> Generator[Session, None, None]:
    """Use the caller's session when given, otherwise open a committing one.

    Mirrors the ``if session is not None: ... else: with get_session()`` pattern
    used by the upsert helpers so callers can compose several operations in a
    single transaction.
    """
    if session is not None:
        yield session
        return
    with get_session() as sess:
        yield sess

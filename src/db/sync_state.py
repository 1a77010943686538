"""
Run state tracking for inbox scans.

Records the outcome of each Drive scan so the last run, its counts and any
failure are visible from the health endpoint and the CLI.
"""

import json
import logging
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import Column, DateTime, Index, Integer, String, Text, func
from sqlalchemy.orm import Session

from .deps import session_scope
from .models import Base
from .upserts import dialect_insert

logger = logging.getLogger(__name__)

DRIVE_SCAN_DOMAIN = "drive_inbox_scan"


class SyncState(Base):
    """
    Last-run record per sync domain.

    One row per domain, e.g. ``drive_inbox_scan``; overwritten on every run.
    """

    __tablename__ = "sync_state"

    domain = Column(String, primary_key=True)
    last_synced_at = Column(DateTime(timezone=True))  # UTC timestamp of the last run
    last_sync_key = Column(String)  # month scanned, e.g. "2025-11"
    status = Column(String, default="success")  # success, running, error
    error_count = Column(Integer, default=0)  # Consecutive error count
    error_message = Column(Text)
    sync_metadata = Column(Text)  # JSON run stats
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (Index("ix_sync_state_status", "status"),)

    @property
    def metadata_dict(self) -> dict[str, Any]:
        return json.loads(self.sync_metadata) if self.sync_metadata else {}


def update_sync_state(
    domain: str,
    status: str = "success",
    last_sync_key: str | None = None,
    error_message: str | None = None,
    sync_metadata: dict[str, Any] | None = None,
    session: Session | None = None,
) -> None:
    """
    Record a run for a domain.

    Args:
        domain: Sync domain
        status: Run status (success, running, error)
        last_sync_key: Month or cursor the run covered
        error_message: Error message if status is error
        sync_metadata: Run statistics (JSON serialized)
        session: Optional database session
    """
    now = datetime.now(UTC)
    metadata_json = json.dumps(sync_metadata, default=str) if sync_metadata else None

    with session_scope(session) as sess:
        stmt = dialect_insert(sess, SyncState.__table__).values(
            domain=domain,
            last_synced_at=now,
            status=status,
            last_sync_key=last_sync_key,
            error_count=1 if status == "error" else 0,
            error_message=error_message,
            sync_metadata=metadata_json,
            updated_at=now,
        )
        # running leaves the consecutive error count alone; success resets it
        current = SyncState.__table__.c.error_count
        if status == "error":
            error_count = current + 1
        elif status == "running":
            error_count = current
        else:
            error_count = stmt.excluded.error_count
        stmt = stmt.on_conflict_do_update(
            index_elements=["domain"],
            set_={
                "last_synced_at": stmt.excluded.last_synced_at,
                "status": stmt.excluded.status,
                "last_sync_key": stmt.excluded.last_sync_key,
                "error_count": error_count,
                "error_message": stmt.excluded.error_message,
                "sync_metadata": stmt.excluded.sync_metadata,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        sess.execute(stmt)

    logger.debug(f"Updated sync state for {domain}: {status}")


def mark_sync_running(domain: str, session: Session | None = None) -> None:
    """Mark a run as in progress."""
    update_sync_state(domain=domain, status="running", session=session)


def mark_sync_success(
    domain: str,
    last_sync_key: str | None = None,
    sync_metadata: dict[str, Any] | None = None,
    session: Session | None = None,
) -> None:
    """Mark a run as successful."""
    update_sync_state(
        domain=domain,
        status="success",
        last_sync_key=last_sync_key,
        sync_metadata=sync_metadata,
        session=session,
    )


def mark_sync_error(domain: str, error_message: str, session: Session | None = None) -> None:
    """Mark a run as failed."""
    update_sync_state(
        domain=domain, status="error", error_message=error_message, session=session
    )


def get_sync_state(domain: str, session: Session | None = None) -> SyncState | None:
    """Get the run record for a domain."""
    with session_scope(session) as sess:
        return sess.query(SyncState).filter_by(domain=domain).first()

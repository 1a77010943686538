#!/usr/bin/env python3
"""
Google Drive Inbox Scan Job

Walks ``<root>/inbox/{sales,costs,bank_statements}`` in Google Drive and adds
every file not seen before as a pending Document. Files are keyed on their
Drive file id, so repeated scans never create a second Document for a file,
whatever state the first one has reached.

Usage:
    python -m src.jobs.drive_inbox_scan [--month YYYY-MM]
"""

import argparse
import logging
from collections.abc import Callable
from datetime import date
from typing import Any

from src.adapters.google_drive import (
    FOLDER_MIME_TYPE,
    DriveError,
    DriveNotFoundError,
    GoogleDriveClient,
    create_drive_client,
)
from src.common.events import EventType, publish
from src.common.metrics import record_job_error, record_job_start, record_job_success
from src.config.loader import cfg
from src.db.deps import get_session
from src.db.models import _uuid
from src.db.sync_state import DRIVE_SCAN_DOMAIN, mark_sync_error, mark_sync_running, mark_sync_success
from src.db.upserts import insert_documents_if_new
from src.inbox.classifier import classify_document, detect_file_type, infer_month
from src.inbox.state import InboxStatus
from src.utils.time_windows import current_month, format_month, require_month

logger = logging.getLogger(__name__)

JOB_NAME = "drive_inbox_scan"
INBOX_FOLDER = "inbox"
INBOX_SUBFOLDERS = ("sales", "costs", "bank_statements")


def transform_file(file: dict[str, Any], folder_path: str, fallback_month: date) -> dict[str, Any]:
    """Build a Document row for a Drive file found in ``folder_path``."""
    name = file["name"]
    mime_type = file.get("mimeType")
    size = file.get("size")
    path = f"{folder_path}/{name}"

    return {
        "id": _uuid(),
        "file_name": name,
        "file_path": path,
        "file_type": detect_file_type(name, mime_type),
        "file_size": int(size) if size else None,
        "mime_type": mime_type,
        "document_category": classify_document(name, folder_path).value,
        "inbox_status": InboxStatus.PENDING.value,
        "applies_to_month": infer_month(name) or fallback_month,
        "external_file_id": file["id"],
        "external_path": path,
    }


def resolve_inbox_folders(client: GoogleDriveClient) -> list[tuple[str, str | None]]:
    """
    Locate the inbox subfolders.

    Returns:
        ``(folder_path, folder_id)`` pairs in scan order; a missing subfolder
        has id None

    Raises:
        DriveNotFoundError: The root or inbox folder does not exist
    """
    root_name = cfg("drive.root_folder_name", "TechPros Shared")
    root_id = client.find_folder_by_name(root_name)
    if not root_id:
        raise DriveNotFoundError(f"{root_name} folder not found in Google Drive")

    inbox_id = client.find_folder_by_name(INBOX_FOLDER, root_id)
    if not inbox_id:
        raise DriveNotFoundError(f"{INBOX_FOLDER} folder not found in {root_name}")

    subfolders = cfg("drive.inbox_folders", list(INBOX_SUBFOLDERS))
    return [
        (f"{INBOX_FOLDER}/{name}", client.find_folder_by_name(name, inbox_id))
        for name in subfolders
    ]


def scan_folder(
    client: GoogleDriveClient,
    folder_path: str,
    folder_id: str,
    fallback_month: date,
    stats: dict[str, Any],
    cancel: Callable[[], bool] | None = None,
) -> bool:
    """
    Insert unseen files from one folder, one at a time.

    Returns:
        False when the scan was cancelled part way through
    """
    files = client.list_files_in_folder(folder_id)
    logger.info(f"Found {len(files)} entries in {folder_path}")

    for file in files:
        if cancel is not None and cancel():
            return False
        if file.get("mimeType") == FOLDER_MIME_TYPE:
            continue

        stats["files_seen"] += 1
        row = transform_file(file, folder_path, fallback_month)
        with get_session() as session:
            inserted = insert_documents_if_new([row], session)

        if inserted:
            stats["new_documents"] += 1
            logger.info(f"New document {row['file_path']} ({row['document_category']})")
            publish(
                EventType.DOCUMENT_DISCOVERED, "drive",
                document_id=row["id"], category=row["document_category"],
            )
        else:
            stats["already_known"] += 1

    return True


def run_drive_inbox_scan(
    month: str | date | None = None,
    drive_client: GoogleDriveClient | None = None,
    cancel: Callable[[], bool] | None = None,
) -> dict[str, Any]:
    """
    Run the Drive inbox scan.

    Args:
        month: Month assigned to files whose names carry no month
            (defaults to the current month)
        drive_client: Drive client; built from config when omitted
        cancel: Checked between files; returning True stops the scan

    Returns:
        Dict with scan statistics (new_documents, already_known, files_seen,
        errors, cancelled)

    Raises:
        DriveError: The Drive root or inbox folder could not be read
    """
    fallback_month = require_month(month) if month else current_month()
    logger.info(f"Starting Drive inbox scan for {format_month(fallback_month)}")

    start_time = record_job_start(JOB_NAME)
    mark_sync_running(DRIVE_SCAN_DOMAIN)

    stats: dict[str, Any] = {
        "month": format_month(fallback_month),
        "new_documents": 0,
        "already_known": 0,
        "files_seen": 0,
        "errors": [],
        "cancelled": False,
    }

    try:
        client = drive_client or create_drive_client()
        folders = resolve_inbox_folders(client)
    except DriveError as e:
        logger.error(f"Drive inbox scan failed: {e}")
        mark_sync_error(DRIVE_SCAN_DOMAIN, str(e))
        record_job_error(JOB_NAME, start_time)
        raise

    for folder_path, folder_id in folders:
        if not folder_id:
            logger.warning(f"Folder {folder_path} not found; skipping")
            continue
        try:
            completed = scan_folder(client, folder_path, folder_id, fallback_month, stats, cancel)
        except DriveError as e:
            logger.error(f"Error scanning {folder_path}: {e}")
            stats["errors"].append(f"Error scanning {folder_path}: {e}")
            continue
        if not completed:
            logger.info("Drive inbox scan cancelled")
            stats["cancelled"] = True
            break

    mark_sync_success(
        DRIVE_SCAN_DOMAIN,
        last_sync_key=stats["month"],
        sync_metadata={k: v for k, v in stats.items() if k != "errors"},
    )
    record_job_success(JOB_NAME, start_time)
    logger.info(
        f"Drive inbox scan completed: {stats['new_documents']} new, "
        f"{stats['already_known']} already known, {len(stats['errors'])} folder errors"
    )
    return stats


def main():
    """CLI entry point for the Drive inbox scan."""
    parser = argparse.ArgumentParser(description="Google Drive Inbox Scan")
    parser.add_argument("--month", help="Fallback month for undated files (YYYY-MM)")
    parser.add_argument("--log-level", default="INFO", help="Logging level")

    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        result = run_drive_inbox_scan(month=args.month)
        print(f"Drive Inbox Scan Result: {result}")
        return 0
    except (DriveError, ValueError) as e:
        logger.error(f"Failed to run Drive inbox scan: {e}")
        return 1


if __name__ == "__main__":
    exit(main())

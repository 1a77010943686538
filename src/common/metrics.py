"""
Prometheus metrics for the inbox pipeline.

Counters are fed from the change-notification bus so writers do not import
prometheus_client directly. Job timing helpers wrap scan and CSV runs.
"""

import logging
from datetime import UTC, datetime

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram

from src.common.events import Event, EventType, bus

logger = logging.getLogger(__name__)

REGISTRY = CollectorRegistry()

job_runs_total = Counter(
    "job_runs_total", "Total number of job runs", ["job", "status"], registry=REGISTRY
)

job_duration_seconds = Histogram(
    "job_duration_seconds", "Job execution duration in seconds", ["job"], registry=REGISTRY
)

documents_discovered_total = Counter(
    "documents_discovered_total",
    "Documents added to the inbox",
    ["category", "origin"],
    registry=REGISTRY,
)

extractions_total = Counter(
    "extractions_total",
    "Extraction attempts by resulting status",
    ["category", "status"],
    registry=REGISTRY,
)

imports_total = Counter(
    "imports_total",
    "Document imports by category and outcome",
    ["category", "outcome"],
    registry=REGISTRY,
)

database_connection_healthy = Gauge(
    "database_connection_healthy", "Database connection health status", registry=REGISTRY
)


def _category(event: Event) -> str:
    return event.payload.get("category") or "unknown"


def _on_discovered(event: Event) -> None:
    documents_discovered_total.labels(category=_category(event), origin="drive").inc()


def _on_uploaded(event: Event) -> None:
    documents_discovered_total.labels(category=_category(event), origin="upload").inc()


def _on_processed(event: Event) -> None:
    extractions_total.labels(
        category=_category(event), status=event.payload.get("status", "unknown")
    ).inc()


def _on_imported(event: Event) -> None:
    imports_total.labels(category=_category(event), outcome="imported").inc()


def _on_skipped(event: Event) -> None:
    imports_total.labels(category=_category(event), outcome="skipped").inc()


def register_event_metrics() -> None:
    """Subscribe the counters to the process-wide event bus."""
    bus.subscribe(EventType.DOCUMENT_DISCOVERED, _on_discovered)
    bus.subscribe(EventType.DOCUMENT_UPLOADED, _on_uploaded)
    bus.subscribe(EventType.DOCUMENT_PROCESSED, _on_processed)
    bus.subscribe(EventType.DOCUMENT_IMPORTED, _on_imported)
    bus.subscribe(EventType.DOCUMENT_SKIPPED, _on_skipped)


def record_import_failure(category: str | None) -> None:
    imports_total.labels(category=category or "unknown", outcome="failed").inc()


# Metrics helpers for use in jobs
def record_job_start(job_name: str) -> float:
    """Record job start and return start time."""
    return datetime.now(UTC).timestamp()


def record_job_success(job_name: str, start_time: float) -> None:
    """Record successful job completion."""
    duration = datetime.now(UTC).timestamp() - start_time
    job_runs_total.labels(job=job_name, status="success").inc()
    job_duration_seconds.labels(job=job_name).observe(duration)


def record_job_error(job_name: str, start_time: float) -> None:
    """Record job error."""
    duration = datetime.now(UTC).timestamp() - start_time
    job_runs_total.labels(job=job_name, status="error").inc()
    job_duration_seconds.labels(job=job_name).observe(duration)

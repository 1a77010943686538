"""
HTTP API for the Finops Inbox service.

Health and metrics endpoints plus the inbox operations: scan, extraction,
review edits, imports, skips, uploads, ledger queries and assistant tools.
Endpoints that call the database or external services are plain ``def``
handlers so FastAPI runs them in its worker thread pool.
"""

import logging
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import generate_latest
from pydantic import BaseModel, Field
from sqlalchemy import text
from starlette.concurrency import run_in_threadpool

from src.adapters.google_drive import DriveError
from src.assistant.tools import TOOLS, call_tool
from src.common.metrics import REGISTRY, database_connection_healthy, register_event_metrics
from src.config.loader import cfg
from src.db.deps import get_session
from src.db.models import Document
from src.db.sync_state import DRIVE_SCAN_DOMAIN, get_sync_state
from src.inbox.documents import (
    add_contract,
    document_to_dict,
    documents_by_category,
    inbox_summary,
    list_documents_for_month,
    mark_reviewing,
    register_upload,
    statement_matches,
    update_document,
)
from src.inbox.extraction import process_document
from src.inbox.importer import (
    import_bank_statement,
    import_cost_invoice,
    import_sales_invoice,
    skip_document,
)
from src.jobs.drive_inbox_scan import run_drive_inbox_scan
from src.jobs.software_costs_csv import CSVFormatError, run_software_costs_import
from src.ledger.invoices import delete_invoice, update_invoice
from src.ledger.pl import get_monthly_pl

logger = logging.getLogger(__name__)

SERVICE_NAME = "Finops Inbox Service"
SERVICE_VERSION = "1.0.0"

_app_start_time = datetime.now(UTC)


class ScanRequest(BaseModel):
    month: str | None = None


class SalesInvoiceImport(BaseModel):
    client_id: str | None = None
    client_name: str | None = None
    invoice_number: str | None = None
    invoice_date: str | None = None
    total_value: float | None = None
    months_to_spread: int | None = None
    recognition_start_month: str | None = None
    currency: str | None = None
    notes: str | None = None


class CostInvoiceImport(BaseModel):
    team_member_id: str | None = None
    supplier_name: str | None = None
    cost_month: str | None = None
    actual_cost: float | None = None
    bonus: float | None = None
    notes: str | None = None


class SelectedCost(BaseModel):
    software_item_id: str
    actual_cost: float


class BankStatementImport(BaseModel):
    costs: list[SelectedCost] = Field(default_factory=list)
    month: str | None = None
    transactions: list[dict[str, Any]] | None = None


class SkipRequest(BaseModel):
    reason: str | None = None


class InvoiceUpdate(BaseModel):
    updates: dict[str, Any] | None = None
    new_recognition: dict[str, Any] | None = None


def _respond(result: dict[str, Any]) -> JSONResponse:
    """Write results keep their ``{success, error?}`` shape; failures are 400s."""
    return JSONResponse(result, status_code=200 if result.get("success") else 400)


def check_database_health() -> bool:
    """Check database connectivity."""
    try:
        with get_session() as session:
            session.execute(text("SELECT 1")).fetchone()
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        database_connection_healthy.set(0)
        return False
    database_connection_healthy.set(1)
    return True


def get_health_status() -> dict[str, Any]:
    """Database health plus the last Drive scan's state."""
    db_healthy = check_database_health()

    scan = None
    if db_healthy:
        state = get_sync_state(DRIVE_SCAN_DOMAIN)
        if state is not None:
            scan = {
                "status": state.status,
                "last_synced_at": state.last_synced_at.isoformat() if state.last_synced_at else None,
                "last_month": state.last_sync_key,
                "error_count": state.error_count,
                "error_message": state.error_message,
            }

    return {
        "status": "healthy" if db_healthy else "unhealthy",
        "timestamp": datetime.now(UTC).isoformat(),
        "uptime_seconds": (datetime.now(UTC) - _app_start_time).total_seconds(),
        "checks": {"database": "healthy" if db_healthy else "unhealthy"},
        "last_scan": scan,
    }


@asynccontextmanager
async def lifespan(app: FastAPI):
    """FastAPI lifespan context manager."""
    logger.info("Starting Finops Inbox server")
    if cfg("observability.metrics.enabled", True):
        register_event_metrics()
    yield
    logger.info("Stopping Finops Inbox server")


app = FastAPI(
    title=SERVICE_NAME,
    description="Document inbox ingestion, review and accounting import",
    version=SERVICE_VERSION,
    lifespan=lifespan,
)


@app.get("/healthz")
async def health_check():
    """Health check endpoint."""
    health = await run_in_threadpool(get_health_status)
    if health["status"] == "healthy":
        return health
    raise HTTPException(status_code=503, detail=health)


@app.get("/metrics", response_class=PlainTextResponse)
async def metrics():
    """Prometheus metrics endpoint."""
    await run_in_threadpool(check_database_health)
    return generate_latest(REGISTRY)


@app.get("/")
async def root():
    """Root endpoint with service info."""
    return {
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "timestamp": datetime.now(UTC).isoformat(),
        "endpoints": ["/healthz", "/metrics", "/inbox", "/pl", "/assistant/tools"],
    }


@app.get("/inbox")
def inbox(month: str = Query(..., description="YYYY-MM")):
    """Documents for a month grouped by category, with the month's summary."""
    try:
        documents = list_documents_for_month(month)
        summary = inbox_summary(month)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    grouped = documents_by_category(documents)
    return {
        "month": month,
        "documents": {k: [document_to_dict(d) for d in v] for k, v in grouped.items()},
        "pending_count": sum(1 for d in documents if d.inbox_status == "pending"),
        "summary": summary,
    }


@app.get("/inbox/summary")
def summary(month: str = Query(..., description="YYYY-MM")):
    try:
        return {"month": month, "summary": inbox_summary(month)}
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


@app.post("/inbox/scan")
def scan(body: ScanRequest):
    """Scan the Drive inbox folders for new files."""
    try:
        stats = run_drive_inbox_scan(month=body.month)
    except (DriveError, ValueError) as e:
        return _respond({"success": False, "error": str(e)})
    return _respond({"success": True, **stats})


@app.post("/inbox/upload")
async def upload(request: Request, file_name: str = Query(...), month: str = Query(...)):
    """Add a directly uploaded file (raw request body) to the inbox."""
    content = await request.body()
    if not content:
        return _respond({"success": False, "error": "Empty upload"})
    try:
        document = await run_in_threadpool(
            register_upload,
            file_name,
            content,
            month,
            request.headers.get("content-type"),
        )
    except ValueError as e:
        return _respond({"success": False, "error": str(e)})
    return _respond({"success": True, "document": document_to_dict(document)})


@app.get("/documents/{document_id}")
def get_document(document_id: str):
    with get_session() as session:
        document = session.get(Document, document_id)
        if document is None:
            raise HTTPException(status_code=404, detail=f"Document not found: {document_id}")
        return document_to_dict(document)


@app.patch("/documents/{document_id}")
def patch_document(document_id: str, updates: dict[str, Any]):
    return _respond(update_document(document_id, updates))


@app.post("/documents/{document_id}/review")
def review(document_id: str):
    return _respond(mark_reviewing(document_id))


@app.post("/documents/{document_id}/process")
def process(document_id: str):
    """Run extraction for a document."""
    return _respond(process_document(document_id))


@app.get("/documents/{document_id}/bank-matches")
def bank_matches(document_id: str):
    """Software item matches for an extracted bank statement."""
    return _respond(statement_matches(document_id))


@app.post("/documents/{document_id}/import/sales-invoice")
def import_sales(document_id: str, body: SalesInvoiceImport):
    return _respond(import_sales_invoice(document_id, body.model_dump(exclude_none=True)).to_dict())


@app.post("/documents/{document_id}/import/cost-invoice")
def import_cost(document_id: str, body: CostInvoiceImport):
    return _respond(import_cost_invoice(document_id, body.model_dump(exclude_none=True)).to_dict())


@app.post("/documents/{document_id}/import/bank-statement")
def import_bank(document_id: str, body: BankStatementImport):
    result = import_bank_statement(
        document_id,
        [c.model_dump() for c in body.costs],
        month=body.month,
        transactions=body.transactions,
    )
    return _respond(result.to_dict())


@app.post("/documents/{document_id}/skip")
def skip(document_id: str, body: SkipRequest | None = None):
    return _respond(skip_document(document_id, body.reason if body else None).to_dict())


@app.post("/contracts")
def create_contract(fields: dict[str, Any]):
    return _respond(add_contract(fields))


@app.patch("/invoices/{invoice_id}")
def patch_invoice(invoice_id: str, body: InvoiceUpdate):
    return _respond(update_invoice(invoice_id, body.updates, body.new_recognition))


@app.delete("/invoices/{invoice_id}")
def remove_invoice(invoice_id: str):
    return _respond(delete_invoice(invoice_id))


@app.get("/pl")
def monthly_pl(month: str = Query(..., description="YYYY-MM")):
    try:
        return get_monthly_pl(month)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


@app.post("/imports/software-costs")
async def import_software_costs(request: Request, dry_run: bool = False):
    """Load software costs from a CSV request body."""
    text_body = (await request.body()).decode("utf-8-sig", errors="replace")
    try:
        result = await run_in_threadpool(run_software_costs_import, text_body, dry_run)
    except CSVFormatError as e:
        return _respond({"success": False, "error": str(e)})
    return _respond(result)


@app.get("/assistant/tools")
async def list_tools():
    return [
        {"name": t.name, "description": t.description, "required": list(t.required)}
        for t in TOOLS.values()
    ]


@app.post("/assistant/tools/{name}")
def run_tool(name: str, arguments: dict[str, Any] | None = None):
    if name not in TOOLS:
        raise HTTPException(status_code=404, detail=f"Unknown tool: {name}")
    return _respond(call_tool(name, arguments))

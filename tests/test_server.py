"""
Tests for the HTTP API.

Runs the FastAPI app in-process with TestClient against the in-memory
database; Drive and the extraction service are patched out.
"""

from datetime import date
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from src.db.deps import get_session
from src.db.models import Document
from src.server import app


@pytest.fixture
def client():
    return TestClient(app)


def _add_document(**fields):
    defaults = {
        "file_name": "Invoice_2026-01_Acme.pdf",
        "document_category": "sales_invoice",
        "inbox_status": "completed",
        "applies_to_month": date(2026, 1, 1),
    }
    with get_session() as session:
        document = Document(**{**defaults, **fields})
        session.add(document)
        session.flush()
        return document.id


class TestServiceEndpoints:
    def test_health(self, client):
        response = client.get("/healthz")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["last_scan"] is None

    def test_metrics(self, client):
        response = client.get("/metrics")
        assert response.status_code == 200
        assert "database_connection_healthy" in response.text

    def test_root(self, client):
        assert client.get("/").json()["service"] == "Finops Inbox Service"


class TestInboxEndpoints:
    """Inbox listing, uploads, edits, imports and skips."""

    def test_inbox_listing(self, client):
        _add_document()
        _add_document(file_name="b.pdf", inbox_status="pending", document_category="cost_invoice")

        body = client.get("/inbox", params={"month": "2026-01"}).json()

        assert len(body["documents"]["sales_invoices"]) == 1
        assert len(body["documents"]["cost_invoices"]) == 1
        assert body["pending_count"] == 1

    def test_inbox_bad_month(self, client):
        assert client.get("/inbox", params={"month": "January"}).status_code == 400

    def test_upload(self, client, upload_dir):
        response = client.post(
            "/inbox/upload",
            params={"file_name": "invoice_2026-01.pdf", "month": "2026-01"},
            content=b"%PDF-1.4",
            headers={"content-type": "application/pdf"},
        )

        assert response.status_code == 200
        document = response.json()["document"]
        assert document["inbox_status"] == "pending"
        assert document["applies_to_month"] == "2026-01"

    def test_empty_upload(self, client, upload_dir):
        response = client.post(
            "/inbox/upload", params={"file_name": "a.pdf", "month": "2026-01"}, content=b""
        )
        assert response.status_code == 400

    def test_get_and_patch_document(self, client):
        document_id = _add_document(inbox_status="pending")

        assert client.get(f"/documents/{document_id}").json()["id"] == document_id
        assert client.get("/documents/missing").status_code == 404

        response = client.patch(f"/documents/{document_id}", json={"review_notes": "checked"})
        assert response.json() == {"success": True, "document_id": document_id}
        assert client.post(f"/documents/{document_id}/review").json()["success"] is True

    def test_import_sales_invoice(self, client, reference_data):
        document_id = _add_document()
        payload = {
            "client_id": reference_data["acme"].id,
            "invoice_number": "INV-001",
            "invoice_date": "2026-01-15",
            "total_value": 6000,
            "months_to_spread": 6,
            "recognition_start_month": "2026-01",
        }

        first = client.post(f"/documents/{document_id}/import/sales-invoice", json=payload)
        second = client.post(f"/documents/{document_id}/import/sales-invoice", json=payload)

        assert first.status_code == 200
        assert first.json()["recognition_rows"] == 6
        assert second.status_code == 400
        assert second.json()["success"] is False

        pl = client.get("/pl", params={"month": "2026-03"}).json()
        assert pl["revenue"]["total"] == 1000.0

    def test_import_bank_statement_blocked(self, client, reference_data):
        document_id = _add_document(document_category="bank_statement")

        response = client.post(
            f"/documents/{document_id}/import/bank-statement",
            json={
                "costs": [{"software_item_id": reference_data["zoom"].id, "actual_cost": 159}],
                "transactions": [{"description": "ACME SAAS", "amount": 49, "status": "no_match"}],
            },
        )

        assert response.status_code == 400
        assert "resolved" in response.json()["error"]

    def test_skip(self, client):
        document_id = _add_document()
        response = client.post(f"/documents/{document_id}/skip", json={"reason": "duplicate"})
        assert response.json()["reason"] == "duplicate"

    def test_process_uses_extraction(self, client):
        document_id = _add_document(inbox_status="pending")
        with patch("src.server.process_document") as mock_process:
            mock_process.return_value = {"success": True, "status": "completed"}
            response = client.post(f"/documents/{document_id}/process")
        assert response.status_code == 200
        mock_process.assert_called_once_with(document_id)

    def test_scan_drive_failure(self, client):
        with patch("src.server.run_drive_inbox_scan") as mock_scan:
            mock_scan.side_effect = ValueError("Google Drive: credentials required")
            response = client.post("/inbox/scan", json={"month": "2026-01"})
        assert response.status_code == 400
        assert "credentials" in response.json()["error"]


class TestLedgerEndpoints:
    def test_invoice_update_and_delete(self, client, reference_data):
        document_id = _add_document()
        imported = client.post(
            f"/documents/{document_id}/import/sales-invoice",
            json={
                "client_id": reference_data["acme"].id,
                "invoice_number": "INV-5",
                "invoice_date": "2026-01-01",
                "total_value": 300,
                "months_to_spread": 3,
                "recognition_start_month": "2026-01",
            },
        ).json()
        invoice_id = imported["invoice_id"]

        patched = client.patch(f"/invoices/{invoice_id}", json={"updates": {"status": "paid"}})
        assert patched.status_code == 200

        assert client.delete(f"/invoices/{invoice_id}").status_code == 200
        assert client.delete(f"/invoices/{invoice_id}").status_code == 400

    def test_software_costs_csv(self, client, reference_data):
        response = client.post(
            "/imports/software-costs",
            params={"dry_run": "true"},
            content=b"Name,Month,Amount\nZoom,2026-01,170\n",
        )
        assert response.status_code == 200
        assert response.json()["dry_run"] is True

    def test_bad_csv(self, client):
        response = client.post("/imports/software-costs", content=b"foo\n1\n")
        assert response.status_code == 400

    def test_assistant_tools(self, client, reference_data):
        tools = client.get("/assistant/tools").json()
        assert "record_hr_cost" in {t["name"] for t in tools}

        response = client.post(
            "/assistant/tools/record_software_cost",
            json={"software_name": "Zoom", "month": "2026-01", "actual_cost": 170},
        )
        assert response.json()["effective_cost"] == 170.0
        assert client.post("/assistant/tools/unknown", json={}).status_code == 404

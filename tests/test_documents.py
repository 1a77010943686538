"""
Tests for inbox queries, uploads and document edits.
"""

from datetime import date

from src.common.events import EventType
from src.db.deps import get_session
from src.db.models import Contract, Document
from src.inbox.documents import (
    add_contract,
    documents_by_category,
    inbox_summary,
    list_documents_for_month,
    mark_reviewing,
    register_upload,
    statement_matches,
    update_document,
)


def _add(**fields):
    with get_session() as session:
        document = Document(**fields)
        session.add(document)
        session.flush()
        return document.id


def _get(document_id):
    with get_session() as session:
        return session.get(Document, document_id)


class TestInboxQueries:
    """Month listing, grouping and summaries."""

    def test_month_and_period_coverage(self):
        in_month = _add(file_name="a.pdf", applies_to_month=date(2026, 1, 1), document_category="sales_invoice")
        covering = _add(
            file_name="contract.pdf",
            document_category="contract",
            period_start=date(2025, 10, 1),
            period_end=date(2026, 3, 31),
        )
        _add(file_name="old.pdf", applies_to_month=date(2025, 12, 1))

        ids = {d.id for d in list_documents_for_month("2026-01")}

        assert ids == {in_month, covering}

    def test_grouping(self):
        _add(file_name="a.pdf", applies_to_month=date(2026, 1, 1), document_category="bank_statement")
        _add(file_name="b.pdf", applies_to_month=date(2026, 1, 1))

        groups = documents_by_category(list_documents_for_month("2026-01"))

        assert [d.file_name for d in groups["bank_statements"]] == ["a.pdf"]
        assert [d.file_name for d in groups["other"]] == ["b.pdf"]
        assert groups["sales_invoices"] == []

    def test_summary(self):
        month = date(2026, 1, 1)
        _add(file_name="1.pdf", applies_to_month=month, document_category="sales_invoice",
             inbox_status="pending", extracted_data={"total_amount": 1200})
        _add(file_name="2.pdf", applies_to_month=month, document_category="sales_invoice",
             inbox_status="imported", extracted_data={"total_amount": "800.50"})
        _add(file_name="3.pdf", applies_to_month=month, document_category="sales_invoice",
             inbox_status="skipped")
        _add(file_name="4.csv", applies_to_month=month, document_category="bank_statement",
             inbox_status="manual_review")

        summary = {s["category"]: s for s in inbox_summary("2026-01")}

        assert summary["sales_invoice"] == {
            "category": "sales_invoice",
            "pending_count": 1,
            "imported_count": 1,
            "total_value": 2000.5,
        }
        assert summary["bank_statement"]["pending_count"] == 1


class TestUploads:
    def test_register_csv_upload(self, upload_dir, captured_events):
        content = b"Date,Description,Amount,Balance\n2026-01-05,ZOOM.US,-159.00,1000\n"

        document = register_upload("statement_2026-01.csv", content, "2025-12", "text/csv")

        assert document.document_category == "bank_statement"
        assert document.applies_to_month == date(2026, 1, 1)
        assert document.inbox_status == "pending"
        assert document.file_size == len(content)
        assert (upload_dir / document.file_path).read_bytes() == content
        assert captured_events[0].event_type == EventType.DOCUMENT_UPLOADED

    def test_fallback_month_and_safe_name(self, upload_dir):
        document = register_upload("../../etc/receipt.pdf", b"%PDF", "2026-02")

        assert document.file_name == "receipt.pdf"
        assert document.applies_to_month == date(2026, 2, 1)
        assert document.file_path.startswith("2026-02/")


class TestDocumentEdits:
    def test_update_fields(self):
        document_id = _add(file_name="a.pdf", inbox_status="completed")

        result = update_document(
            document_id, {"applies_to_month": "2026-03", "document_category": "cost_invoice"}
        )

        assert result["success"] is True
        stored = _get(document_id)
        assert stored.applies_to_month == date(2026, 3, 1)
        assert stored.document_category == "cost_invoice"

    def test_imported_documents_read_only(self):
        document_id = _add(file_name="a.pdf", inbox_status="imported")
        result = update_document(document_id, {"review_notes": "x"})
        assert result == {"success": False, "error": "Imported documents cannot be edited"}

    def test_rejects_unknown_fields_and_values(self):
        document_id = _add(file_name="a.pdf", inbox_status="pending")
        assert update_document(document_id, {"inbox_status": "imported"})["success"] is False
        assert update_document(document_id, {"applies_to_month": "soon"})["success"] is False
        assert update_document(document_id, {"document_category": "receipt"})["success"] is False
        assert _get(document_id).inbox_status == "pending"

    def test_mark_reviewing(self):
        pending = _add(file_name="a.pdf", inbox_status="pending")
        imported = _add(file_name="b.pdf", inbox_status="imported")

        assert mark_reviewing(pending)["success"] is True
        assert _get(pending).inbox_status == "reviewing"
        assert mark_reviewing(pending)["success"] is True
        assert mark_reviewing(imported)["success"] is False


class TestContracts:
    def test_add_contract(self, reference_data):
        result = add_contract(
            {
                "contract_name": "Acme SOW 2026",
                "contract_type": "sow",
                "client_id": reference_data["acme"].id,
                "start_date": "2026-01-01",
                "monthly_value": "1000",
            }
        )

        assert result["success"] is True
        with get_session() as session:
            contract = session.get(Contract, result["contract_id"])
            assert contract.contract_type == "sow"
            assert contract.start_date == date(2026, 1, 1)

    def test_contract_validation(self):
        assert add_contract({})["error"] == "Contract name is required"
        assert add_contract({"contract_name": "X", "contract_type": "nda"})["success"] is False


class TestStatementMatches:
    def test_matches_extracted_transactions(self, reference_data):
        document_id = _add(
            file_name="statement.pdf",
            document_category="bank_statement",
            extracted_data={
                "opening_balance": 1000,
                "closing_balance": 792,
                "transactions": [
                    {"date": "2026-01-05", "description": "ZOOM.US 888-799", "amount": -159.00},
                    {"date": "2026-01-09", "description": "ACME SAAS", "amount": -49.00},
                ],
            },
        )

        result = statement_matches(document_id)

        assert result["success"] is True
        assert [m["status"] for m in result["matches"]] == ["exact_match", "no_match"]
        assert [m["index"] for m in result["matches"]] == [0, 1]
        assert result["matches"][0]["software_id"] == reference_data["zoom"].id
        assert result["summary"]["unmatched"] == 1

    def test_requires_bank_statement(self):
        document_id = _add(file_name="a.pdf", document_category="sales_invoice", extracted_data={})
        assert statement_matches(document_id)["success"] is False

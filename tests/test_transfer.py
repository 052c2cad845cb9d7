"""Tests for CSV export and statement import."""

import asyncio
import io
from datetime import date
from decimal import Decimal

import openpyxl
import pytest

from conftest import make_response
from finan_ai.agents import TransactionExtractionAgent, workbook_to_text
from finan_ai.models import DEFAULT_CATEGORIES, Transaction, TransactionType
from finan_ai.store import AppState
from finan_ai.transfer import (
    EXPORT_HEADER,
    FileTooLargeError,
    ImportService,
    UnsupportedFileError,
    export_transactions_csv,
)

ROWS_JSON = (
    '[{"date": "2024-03-01", "description": "Salary", "amount": 50000, "type": "income"},'
    ' {"date": "2024-03-02", "description": "Groceries", "amount": 1200.5, "type": "expense"},'
    ' {"date": "2024-03-03", "description": "", "amount": 10, "type": "expense"}]'
)


def xlsx_bytes(rows):
    workbook = openpyxl.Workbook()
    sheet = workbook.active
    sheet.title = "March"
    for row in rows:
        sheet.append(row)
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


@pytest.fixture
def service_factory(make_client, app_settings):
    def _make(*responses):
        client, factory = make_client(*responses)
        return ImportService(TransactionExtractionAgent(client), app_settings), factory
    return _make


class TestExport:

    def test_header_and_rows(self):
        transactions = [
            Transaction(
                date=date(2024, 3, 2),
                description="Groceries, weekly",
                amount=Decimal("1200.5"),
                type=TransactionType.EXPENSE,
                category_id="1",
            ),
            Transaction(
                date=date(2024, 3, 1),
                description="Gift",
                amount=Decimal("500"),
                type=TransactionType.INCOME,
                category_id="deleted",
            ),
        ]
        lines = export_transactions_csv(transactions, list(DEFAULT_CATEGORIES)).splitlines()

        assert lines[0] == ",".join(EXPORT_HEADER)
        assert lines[1] == '2024-03-02,"Groceries, weekly",1200.50,expense,Food & Drinks'
        assert lines[2] == "2024-03-01,Gift,500.00,income,Uncategorized"

    def test_empty_ledger_exports_header_only(self):
        assert export_transactions_csv([], []) == "Date,Description,Amount,Type,Category\n"


class TestWorkbookToText:

    def test_flattens_sheets(self):
        text = workbook_to_text(xlsx_bytes([
            ["Date", "Narration", "Debit"],
            [None, None, None],
            ["2024-03-02", "Groceries", 1200.5],
        ]))
        assert "# Sheet: March" in text
        assert "2024-03-02,Groceries,1200.5" in text
        assert ",,\r\n" not in text

    def test_garbage_raises_value_error(self):
        with pytest.raises(ValueError):
            workbook_to_text(b"not a zip file")


class TestImportService:

    def test_rejects_unsupported_extension(self, service_factory):
        service, factory = service_factory()
        with pytest.raises(UnsupportedFileError):
            asyncio.run(service.import_file("statement.pdf", b"%PDF"))
        assert factory.calls == []

    def test_rejects_large_file(self, service_factory, app_settings):
        service, factory = service_factory()
        content = b"x" * (app_settings.max_upload_size_bytes + 1)
        with pytest.raises(FileTooLargeError):
            asyncio.run(service.import_file("big.csv", content))
        assert factory.calls == []

    def test_csv_preview(self, service_factory):
        service, factory = service_factory(make_response(ROWS_JSON))
        preview = asyncio.run(service.import_file(
            "March.CSV", "﻿date,desc,amount\n".encode("utf-8")
        ))

        assert preview.ok
        assert [d.description for d in preview.drafts] == ["Salary", "Groceries"]
        assert all(d.category_id == "" for d in preview.drafts)
        assert preview.parsed.dropped == 1
        assert preview.message.startswith("Found 2 transactions in March.CSV.")
        assert factory.calls[0]["generation_config"]["response_mime_type"] == "application/json"

    def test_xlsx_is_flattened_before_the_request(self, service_factory):
        service, factory = service_factory(make_response(ROWS_JSON))
        content = xlsx_bytes([["2024-03-02", "Groceries", 1200.5]])

        preview = asyncio.run(service.import_file("march.xlsx", content))

        assert preview.ok
        prompt = factory.calls[0]["request"][-1]["parts"][0]
        assert "2024-03-02,Groceries,1200.5" in prompt

    def test_unreadable_xlsx(self, service_factory):
        service, factory = service_factory()
        with pytest.raises(UnsupportedFileError):
            asyncio.run(service.import_file("march.xlsx", b"broken"))
        assert factory.calls == []

    def test_malformed_reply_previews_nothing(self, service_factory):
        service, _ = service_factory(make_response("I could not read this statement."))
        preview = asyncio.run(service.import_file("march.csv", b"a,b,c"))
        assert not preview.ok
        assert preview.drafts == []

    def test_confirm_import_adds_all_drafts(self, service_factory, storage):
        service, _ = service_factory(make_response(ROWS_JSON))
        preview = asyncio.run(service.import_file("march.csv", b"a,b,c"))
        state = AppState(storage, "a@b.com")

        added = ImportService.confirm_import(state, preview)

        assert len(added) == 2
        assert state.transactions == added
        assert "transactions" in state.dirty


if __name__ == "__main__":
    pytest.main([__file__, "-v"])

"""
Tests for the Receipt Scanner.

Gemini is replaced by FakeGeminiModel; these tests cover how its raw
text is interpreted.
"""

import datetime as dt
import json
from decimal import Decimal

import pytest

from finance_tracker.agents import (
    GeminiReceiptScanner,
    ReceiptParseError,
    ReceiptServiceError,
    UnsupportedReceiptError,
    parse_receipt_response,
)
from finance_tracker.agents.receipt_scanner import RECEIPT_PROMPT
from finance_tracker.models.audit import AuditEventType
from tests.conftest import FakeGeminiModel


RECEIPT_JSON = json.dumps({
    "amount": 42.5,
    "date": "2024-03-14T00:00:00Z",
    "description": "Weekly shop",
    "merchantName": "Corner Market",
    "category": "groceries",
})


class TestParseReceiptResponse:
    """Tests for classifier text interpretation."""

    def test_full_receipt(self):
        draft = parse_receipt_response(RECEIPT_JSON)

        assert draft.amount == Decimal("42.50")
        assert draft.date == dt.date(2024, 3, 14)
        assert draft.description == "Weekly shop"
        assert draft.merchant_name == "Corner Market"
        assert draft.category == "groceries"

    def test_empty_object_is_not_a_receipt(self):
        assert parse_receipt_response("{}") is None

    def test_code_fences_stripped(self):
        draft = parse_receipt_response(f"```json\n{RECEIPT_JSON}\n```")
        assert draft.amount == Decimal("42.50")

    def test_bare_fences_stripped(self):
        assert parse_receipt_response("```\n{}\n```") is None

    def test_unknown_category_falls_back(self):
        draft = parse_receipt_response('{"amount": 3, "category": "crypto"}')
        assert draft.category == "other-expense"

    def test_income_category_falls_back(self):
        draft = parse_receipt_response('{"amount": 3, "category": "salary"}')
        assert draft.category == "other-expense"

    def test_missing_optional_fields(self):
        draft = parse_receipt_response('{"amount": "12.30"}')

        assert draft.amount == Decimal("12.30")
        assert draft.date is None
        assert draft.description is None
        assert draft.merchant_name is None

    def test_plain_date(self):
        draft = parse_receipt_response('{"amount": 1, "date": "2023-12-31"}')
        assert draft.date == dt.date(2023, 12, 31)

    @pytest.mark.parametrize("text", [
        "not json",
        "",
        "[]",
        '[{"amount": 1}]',
        '"receipt"',
    ])
    def test_malformed_output(self, text):
        with pytest.raises(ReceiptParseError):
            parse_receipt_response(text)

    @pytest.mark.parametrize("body", [
        '{"description": "no amount"}',
        '{"amount": null}',
        '{"amount": "twelve"}',
        '{"amount": NaN}',
        '{"amount": Infinity}',
        '{"amount": 0}',
        '{"amount": -4.20}',
        '{"amount": true}',
    ])
    def test_bad_amount(self, body):
        with pytest.raises(ReceiptParseError):
            parse_receipt_response(body)

    def test_bad_date(self):
        with pytest.raises(ReceiptParseError):
            parse_receipt_response('{"amount": 1, "date": "last tuesday"}')


class TestGeminiReceiptScanner:
    """Tests for the scan call and upload checks."""

    async def test_scan_sends_image_and_prompt(self, audit_logger):
        model = FakeGeminiModel(RECEIPT_JSON)
        scanner = GeminiReceiptScanner(model=model, audit_logger=audit_logger)

        draft = await scanner.scan(b"\xff\xd8image", "image/jpeg")

        assert draft.merchant_name == "Corner Market"
        assert model.calls == [[
            {"mime_type": "image/jpeg", "data": b"\xff\xd8image"},
            RECEIPT_PROMPT,
        ]]

    async def test_not_a_receipt(self, audit_logger, audit_storage):
        scanner = GeminiReceiptScanner(model=FakeGeminiModel("{}"), audit_logger=audit_logger)

        assert await scanner.scan(b"cat photo", "image/png") is None

        events = await audit_storage.get_recent_events()
        assert [e.event_type for e in events] == [AuditEventType.RECEIPT_NOT_RECOGNIZED]

    async def test_mime_type_case_insensitive(self, audit_logger):
        scanner = GeminiReceiptScanner(model=FakeGeminiModel("{}"), audit_logger=audit_logger)
        assert await scanner.scan(b"data", "IMAGE/PNG") is None

    async def test_unsupported_type_never_calls_model(self, audit_logger):
        model = FakeGeminiModel(RECEIPT_JSON)
        scanner = GeminiReceiptScanner(model=model, audit_logger=audit_logger)

        with pytest.raises(UnsupportedReceiptError):
            await scanner.scan(b"%PDF", "application/pdf")

        assert model.calls == []

    async def test_empty_image_rejected(self, audit_logger):
        scanner = GeminiReceiptScanner(model=FakeGeminiModel(), audit_logger=audit_logger)
        with pytest.raises(UnsupportedReceiptError):
            await scanner.scan(b"", "image/jpeg")

    async def test_oversized_image_rejected(self, audit_logger):
        scanner = GeminiReceiptScanner(model=FakeGeminiModel(), audit_logger=audit_logger)
        with pytest.raises(UnsupportedReceiptError):
            await scanner.scan(b"x" * (5 * 1024 * 1024 + 1), "image/jpeg")

    async def test_service_failure(self, audit_logger, audit_storage):
        model = FakeGeminiModel(error=RuntimeError("quota exceeded"))
        scanner = GeminiReceiptScanner(model=model, audit_logger=audit_logger)

        with pytest.raises(ReceiptServiceError) as exc_info:
            await scanner.scan(b"data", "image/jpeg")

        assert str(exc_info.value) == "Failed to scan receipt"
        events = await audit_storage.get_recent_events()
        assert events[0].event_type == AuditEventType.EXTERNAL_SERVICE_ERROR

    async def test_parse_failure_audited(self, audit_logger, audit_storage):
        scanner = GeminiReceiptScanner(model=FakeGeminiModel("oops"), audit_logger=audit_logger)

        with pytest.raises(ReceiptParseError):
            await scanner.scan(b"data", "image/webp")

        events = await audit_storage.get_recent_events()
        assert events[0].event_type == AuditEventType.RECEIPT_PARSE_FAILED

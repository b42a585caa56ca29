import json
from datetime import datetime

import httpx
import pytest

from packages.statement_parser.core.errors import ExtractionError
from packages.statement_parser.document_parser import (
    GENERATE_PATH,
    ExtractionClient,
    build_prompt,
    extract_json_object,
    normalize_extracted,
    parse_document,
)
from packages.statement_parser.models import RawInput


@pytest.fixture
def pdf_artifact():
    return RawInput(
        name="statement.pdf", media_type="application/pdf", content=b"%PDF-1.4 fake"
    )


def _client(handler, max_retries=1):
    return ExtractionClient(
        base_url="https://extract.test/",
        timeout=5,
        max_retries=max_retries,
        transport=httpx.MockTransport(handler),
    )


def _payload(**overrides):
    payload = {
        "success": True,
        "transactions": [
            {"date": "2024-01-15", "description": "POS Purchase", "amount": 2500, "type": "debit"},
            {"date": "2024-01-20", "description": "Salary", "amount": 150000, "type": "credit"},
        ],
        "bank_name": "GTBank",
        "account_number": "6789",
        "period_start": "2023-12-01",
        "period_end": "2024-02-28",
    }
    payload.update(overrides)
    return payload


def test_build_prompt_mentions_bank_hint():
    assert "This is from Zenith bank." in build_prompt("Zenith")
    assert "This is from" not in build_prompt(None)
    assert '"success": true' in build_prompt(None)


def test_parse_document_structured_data(pdf_artifact):
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["body"] = request.read()
        return httpx.Response(200, json={"data": _payload()})

    result = parse_document(pdf_artifact, bank_hint="GTBank", client=_client(handler))

    assert seen["path"] == GENERATE_PATH
    assert b'name="prompt"' in seen["body"]
    assert b"statement.pdf" in seen["body"]

    assert result.success
    assert [t.amount for t in result.transactions] == [-2500.0, 150000.0]
    assert result.bank_name == "GTBank"
    assert result.account_number == "6789"
    # The period comes from the transactions, not from the service's claim
    assert result.period_start == datetime(2024, 1, 15)
    assert result.period_end == datetime(2024, 1, 20)


def test_parse_document_text_output(pdf_artifact):
    text = (
        "Here are the transactions:\n"
        + json.dumps(_payload(bank_name=None))
        + "\nLet me know if you need {anything} else."
    )

    def handler(request):
        return httpx.Response(200, json={"text_output": text})

    result = parse_document(pdf_artifact, bank_hint="Access", client=_client(handler))

    assert result.success
    assert len(result.transactions) == 2
    # Falls back to the caller's hint when the service names no bank
    assert result.bank_name == "Access"


def test_parse_document_per_transaction_warnings(pdf_artifact):
    transactions = [
        {"date": "2024-01-15", "description": "Kept", "amount": -100},
        {"date": "15/01/2024", "description": "Bad date", "amount": 5},
        {"description": "No amount", "date": "2024-01-16"},
        "not an object",
        {"date": "2024-01-17", "description": "Zero", "amount": 0},
        {"date": "2024-01-18", "amount": "12.5", "type": "Credit"},
    ]

    def handler(request):
        return httpx.Response(200, json={"data": _payload(transactions=transactions)})

    result = parse_document(pdf_artifact, client=_client(handler))

    assert result.success
    assert [t.description for t in result.transactions] == ["Kept", "No description"]
    assert result.transactions[1].amount == 12.5
    assert result.warnings == [
        'Row 2: Invalid date "15/01/2024"',
        "Row 3: Missing or invalid fields: amount",
        "Row 4: Expected a transaction object",
    ]


def test_parse_document_service_reports_failure(pdf_artifact):
    def handler(request):
        return httpx.Response(
            200, json={"data": {"success": False, "error": "Unreadable scan"}}
        )

    result = parse_document(pdf_artifact, client=_client(handler))

    assert not result.success
    assert result.error == "Unreadable scan"
    assert result.transactions == []


def test_parse_document_failure_without_reason(pdf_artifact):
    def handler(request):
        return httpx.Response(200, json={"data": {"success": True}})

    result = parse_document(pdf_artifact, client=_client(handler))

    assert result.error == "AI could not extract transactions from PDF"


def test_parse_document_empty_response(pdf_artifact):
    def handler(request):
        return httpx.Response(200, json={"text_output": "   "})

    result = parse_document(pdf_artifact, client=_client(handler))

    assert result.error == "No transaction data returned from AI"


def test_parse_document_text_without_json(pdf_artifact):
    def handler(request):
        return httpx.Response(200, json={"text_output": "Sorry, I cannot read this file."})

    result = parse_document(pdf_artifact, client=_client(handler))

    assert result.error == "Could not extract transaction data from PDF"


def test_parse_document_http_error_not_retried(pdf_artifact):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(503, json={"detail": "Model overloaded"})

    result = parse_document(pdf_artifact, client=_client(handler))

    assert not result.success
    assert result.error == "Model overloaded"
    assert len(calls) == 1


def test_parse_document_http_error_without_detail(pdf_artifact):
    def handler(request):
        return httpx.Response(500, text="Internal Server Error")

    result = parse_document(pdf_artifact, client=_client(handler))

    assert result.error == "API returned 500"


def test_parse_document_non_json_success(pdf_artifact):
    def handler(request):
        return httpx.Response(200, text="<html>ok</html>")

    result = parse_document(pdf_artifact, client=_client(handler))

    assert result.error == "Extraction service returned an invalid response"


def test_client_retries_transport_error_once(pdf_artifact):
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) == 1:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, json={"data": _payload()})

    result = parse_document(pdf_artifact, client=_client(handler))

    assert len(calls) == 2
    assert result.success


def test_client_gives_up_after_retries(pdf_artifact):
    calls = []

    def handler(request):
        calls.append(request)
        raise httpx.ReadTimeout("timed out", request=request)

    result = parse_document(pdf_artifact, client=_client(handler))

    assert len(calls) == 2
    assert not result.success
    assert result.error == "Extraction service unreachable: timed out"


def test_client_without_retries_raises(pdf_artifact):
    def handler(request):
        raise httpx.ConnectError("down", request=request)

    client = _client(handler, max_retries=0)

    with pytest.raises(ExtractionError) as exc_info:
        client.generate("a.pdf", b"%PDF", "application/pdf", "prompt")
    assert exc_info.value.status_code is None


def test_client_uses_settings_defaults(monkeypatch):
    monkeypatch.setenv("EXTRACTION_API_URL", "https://ml.example.com/")
    monkeypatch.setenv("EXTRACTION_TIMEOUT_SECONDS", "30")

    client = ExtractionClient()

    assert client.base_url == "https://ml.example.com"
    assert client.timeout == 30.0
    assert client.max_retries == 1


def test_extract_json_object():
    assert extract_json_object('noise {"a": {"b": 1}} trailing }') == {"a": {"b": 1}}

    with pytest.raises(ExtractionError, match="Could not extract"):
        extract_json_object("no braces here")
    with pytest.raises(ExtractionError, match="Failed to parse AI response as JSON"):
        extract_json_object("{not json")


def test_normalize_extracted_sign_follows_type():
    debit = normalize_extracted({"date": "2024-01-15", "amount": 40, "type": "DEBIT"}, 1)
    credit = normalize_extracted({"date": "2024-01-15", "amount": -40, "type": "credit"}, 2)
    untyped = normalize_extracted({"date": "2024-01-15", "amount": -40}, 3)

    assert debit.transaction.amount == -40
    assert credit.transaction.amount == 40
    assert untyped.transaction.amount == -40


def test_normalize_extracted_optional_fields():
    outcome = normalize_extracted(
        {
            "date": "2024-01-15T08:00:00Z",
            "description": "  Transfer  ",
            "amount": 10,
            "balance": 510.5,
            "reference": "FT123",
            "extra": None,
        },
        1,
    )

    tx = outcome.transaction
    assert tx.date == datetime(2024, 1, 15, 8, 0)
    assert tx.description == "Transfer"
    assert tx.balance == 510.5
    assert tx.reference == "FT123"
    assert "extra" not in tx.raw_fields


def test_normalize_extracted_rejects_non_finite_amount():
    outcome = normalize_extracted({"date": "2024-01-15", "amount": "nan"}, 4)

    assert outcome.transaction is None
    assert outcome.warning == "Row 4: Invalid amount"


def test_client_negative_retries_still_sends_once(pdf_artifact):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={"data": _payload()})

    client = _client(handler, max_retries=-1)
    result = parse_document(pdf_artifact, client=client)

    assert client.max_retries == 0
    assert len(calls) == 1
    assert result.success

"""
Document statement parser - sends PDFs to the extraction service and
revalidates its answer into ParsedTransaction records.

The service is untrusted: its response is decoded into loose pydantic
models first, then each transaction is checked field by field.
"""

import json
import math
from typing import Any, Dict, List, Optional

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, ValidationError

from .core.config import get_settings
from .core.errors import ExtractionError
from .models import ParsedTransaction, ParseResult, RawInput
from .normalizers import parse_iso_datetime
from .tabular import RowOutcome

logger = structlog.get_logger(__name__)

GENERATE_PATH = "/api/generate"

EXTRACTION_PROMPT = """Extract all transactions from this bank statement PDF.
{bank_line}
For each transaction, extract:
- date: The transaction date (in YYYY-MM-DD format)
- description: The transaction description/narration
- amount: The transaction amount (negative for debits/outgoing, positive for credits/incoming)
- balance: The balance after transaction (if available)
- reference: Any reference number (if available)
- type: "debit" or "credit"

Also extract:
- bank_name: The bank name if visible
- account_number: Last 4 digits of account number if visible
- period_start: Statement start date (YYYY-MM-DD)
- period_end: Statement end date (YYYY-MM-DD)

Return the data as a JSON object with this structure:
{{
  "success": true,
  "transactions": [...],
  "bank_name": "...",
  "account_number": "...",
  "period_start": "...",
  "period_end": "..."
}}"""


def build_prompt(bank_hint: Optional[str] = None) -> str:
    bank_line = f"This is from {bank_hint} bank.\n" if bank_hint else ""
    return EXTRACTION_PROMPT.format(bank_line=bank_line)


class ExtractedTransaction(BaseModel):
    """One transaction as returned by the extraction service."""

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    date: str
    amount: float
    description: Optional[str] = None
    balance: Optional[float] = None
    reference: Optional[str] = None
    type: Optional[str] = None


class ExtractionPayload(BaseModel):
    """Statement-level envelope; transactions stay raw until normalized."""

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    success: bool = False
    transactions: Optional[List[Any]] = None
    bank_name: Optional[str] = None
    account_number: Optional[str] = None
    period_start: Optional[str] = None
    period_end: Optional[str] = None
    error: Optional[str] = None


class ExtractionClient:
    """HTTP client for the document extraction service.

    Each request is bounded by ``timeout``; transport failures (timeouts
    included) are retried ``max_retries`` times. Error responses are not
    retried.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.EXTRACTION_API_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.EXTRACTION_TIMEOUT_SECONDS
        self.max_retries = max(
            0,
            max_retries if max_retries is not None else settings.EXTRACTION_MAX_RETRIES,
        )
        self.transport = transport

    def generate(
        self, filename: str, content: bytes, media_type: str, prompt: str
    ) -> Dict[str, Any]:
        """Upload a file with its instruction prompt; return the JSON body."""
        attempts = self.max_retries + 1

        for attempt in range(1, attempts + 1):
            try:
                with httpx.Client(
                    base_url=self.base_url, timeout=self.timeout, transport=self.transport
                ) as c:
                    r = c.post(
                        GENERATE_PATH,
                        files={"file": (filename, content, media_type)},
                        data={"prompt": prompt},
                    )
                break
            except httpx.TransportError as e:
                logger.warning(
                    "extraction_request_failed",
                    attempt=attempt,
                    attempts=attempts,
                    error=str(e) or type(e).__name__,
                )
                if attempt == attempts:
                    raise ExtractionError(
                        f"Extraction service unreachable: {str(e) or type(e).__name__}"
                    )

        return _read_response(r)


def _read_response(r: httpx.Response) -> Dict[str, Any]:
    try:
        body = r.json()
    except ValueError:
        body = None

    if not r.is_success:
        detail = None
        if isinstance(body, dict):
            detail = body.get("detail") or body.get("error")
        raise ExtractionError(
            str(detail) if detail else f"API returned {r.status_code}",
            status_code=r.status_code,
        )

    if not isinstance(body, dict):
        raise ExtractionError("Extraction service returned an invalid response")
    return body


def extract_json_object(text: str) -> Dict[str, Any]:
    """Decode the first balanced ``{...}`` object embedded in free text."""
    start = text.find("{")
    if start == -1:
        raise ExtractionError("Could not extract transaction data from PDF")

    try:
        obj, _ = json.JSONDecoder().raw_decode(text, start)
    except json.JSONDecodeError:
        raise ExtractionError("Failed to parse AI response as JSON")
    return obj


def read_extraction_payload(response: Dict[str, Any]) -> ExtractionPayload:
    """Pull the statement payload out of a service response.

    The service answers either with a structured ``data`` object or with
    ``text_output`` that embeds the JSON object.
    """
    data = response.get("data")
    text_output = response.get("text_output")

    if isinstance(data, dict):
        raw = data
    elif isinstance(text_output, str) and text_output.strip():
        raw = extract_json_object(text_output)
    else:
        raise ExtractionError("No transaction data returned from AI")

    try:
        return ExtractionPayload.model_validate(raw)
    except ValidationError as e:
        raise ExtractionError(
            f"AI response did not match the expected schema ({e.error_count()} errors)"
        )


def normalize_extracted(raw: Any, row_number: int) -> RowOutcome:
    """Validate one extracted transaction into a RowOutcome."""
    if not isinstance(raw, dict):
        return RowOutcome(warning=f"Row {row_number}: Expected a transaction object")

    try:
        tx = ExtractedTransaction.model_validate(raw)
    except ValidationError as e:
        fields = sorted({str(err["loc"][0]) for err in e.errors() if err["loc"]})
        return RowOutcome(
            warning=f"Row {row_number}: Missing or invalid fields: {', '.join(fields)}"
        )

    date = parse_iso_datetime(tx.date)
    if date is None:
        return RowOutcome(warning=f'Row {row_number}: Invalid date "{tx.date}"')

    if not math.isfinite(tx.amount):
        return RowOutcome(warning=f"Row {row_number}: Invalid amount")

    amount = tx.amount
    kind = (tx.type or "").strip().lower()
    if kind == "debit" and amount > 0:
        amount = -amount
    elif kind == "credit" and amount < 0:
        amount = abs(amount)

    if amount == 0:
        return RowOutcome()

    return RowOutcome(
        transaction=ParsedTransaction(
            date=date,
            description=(tx.description or "").strip() or "No description",
            amount=amount,
            balance=tx.balance,
            reference=(tx.reference or "").strip() or None,
            raw_fields={str(k): str(v) for k, v in raw.items() if v is not None},
        )
    )


def parse_document(
    artifact: RawInput,
    bank_hint: Optional[str] = None,
    client: Optional[ExtractionClient] = None,
) -> ParseResult:
    """
    Parse an unstructured (PDF) statement through the extraction service.

    Service failures and malformed responses fail the whole parse; only
    individual transactions inside a good response degrade to warnings.
    """
    client = client or ExtractionClient()

    try:
        response = client.generate(
            artifact.name,
            artifact.read_bytes(),
            artifact.media_type or "application/pdf",
            build_prompt(bank_hint),
        )
        payload = read_extraction_payload(response)
    except ExtractionError as e:
        logger.warning(
            "document_extraction_failed", error=e.detail, status_code=e.status_code
        )
        return ParseResult.failure(e.detail)

    if not payload.success or payload.transactions is None:
        return ParseResult.failure(
            payload.error or "AI could not extract transactions from PDF"
        )

    transactions: List[ParsedTransaction] = []
    warnings: List[str] = []
    for i, raw in enumerate(payload.transactions, start=1):
        outcome = normalize_extracted(raw, i)
        if outcome.transaction is not None:
            transactions.append(outcome.transaction)
        elif outcome.warning is not None:
            warnings.append(outcome.warning)

    logger.info(
        "document_parse_complete",
        transactions=len(transactions),
        warnings=len(warnings),
    )

    return ParseResult.from_transactions(
        transactions,
        bank_name=payload.bank_name or bank_hint,
        account_number=payload.account_number,
        warnings=warnings,
    )

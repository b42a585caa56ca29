"""
Statement dispatcher - classify an upload, enforce the size ceiling and
route it to the matching parser.

parse_statement never raises: every failure comes back as a ParseResult
with success=False and an error message.
"""

from typing import NamedTuple, Optional

import structlog

from .core.config import get_settings
from .core.errors import RejectedInputError
from .csv_parser import parse_csv
from .document_parser import ExtractionClient, parse_document
from .excel_parser import parse_excel
from .models import FileKind, ParseResult, RawInput

logger = structlog.get_logger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
XLS_MEDIA_TYPE = "application/vnd.ms-excel"

UNSUPPORTED_TYPE_ERROR = (
    "Unsupported file type. Please upload a CSV, Excel (xlsx/xls), or PDF file."
)


class ValidationResult(NamedTuple):
    valid: bool
    error: Optional[str] = None


def classify(artifact: RawInput) -> Optional[FileKind]:
    """Detect the file kind from its extension or declared media type."""
    name = (artifact.name or "").lower()
    media_type = (artifact.media_type or "").lower()

    if name.endswith(".csv") or media_type == "text/csv":
        return FileKind.CSV
    if name.endswith(".xlsx") or media_type == XLSX_MEDIA_TYPE:
        return FileKind.XLSX
    if name.endswith(".xls") or media_type == XLS_MEDIA_TYPE:
        return FileKind.XLS
    if name.endswith(".pdf") or media_type == "application/pdf":
        return FileKind.PDF
    return None


def validate(artifact: RawInput) -> ValidationResult:
    """Reject oversized or unrecognized uploads before any parsing."""
    max_bytes = get_settings().MAX_UPLOAD_BYTES

    if artifact.size > max_bytes:
        size_mb = artifact.size / 1024 / 1024
        limit_mb = max_bytes / 1024 / 1024
        limit = f"{limit_mb:.0f}" if limit_mb.is_integer() else f"{limit_mb:.1f}"
        return ValidationResult(
            valid=False,
            error=(
                f"File size ({size_mb:.1f}MB) exceeds maximum allowed size "
                f"({limit}MB)"
            ),
        )

    if classify(artifact) is None:
        return ValidationResult(valid=False, error=UNSUPPORTED_TYPE_ERROR)

    return ValidationResult(valid=True)


def _route(
    artifact: RawInput,
    kind: Optional[FileKind],
    bank_hint: Optional[str],
    extraction_client: Optional[ExtractionClient],
) -> ParseResult:
    if kind == FileKind.CSV:
        return parse_csv(artifact.read_text(), bank_hint)

    if kind is not None and kind.is_spreadsheet:
        return parse_excel(artifact.read_bytes(), bank_hint, password=artifact.password)

    if kind == FileKind.PDF:
        return parse_document(artifact, bank_hint, client=extraction_client)

    raise RejectedInputError("Unsupported file type")


def parse_statement(
    artifact: RawInput,
    bank_hint: Optional[str] = None,
    *,
    extraction_client: Optional[ExtractionClient] = None,
) -> ParseResult:
    """
    Parse an uploaded bank statement into canonical transactions.

    Args:
        artifact: The uploaded file
        bank_hint: Bank key or name overriding format detection
        extraction_client: Client for the PDF extraction service (optional)

    Returns:
        ParseResult; inspect ``success``, ``warnings`` and ``error``
    """
    log = logger.bind(filename=artifact.name, size=artifact.size)

    try:
        validation = validate(artifact)
        if not validation.valid:
            log.info("statement_rejected", error=validation.error)
            return ParseResult.failure(validation.error)

        kind = classify(artifact)
        log = log.bind(kind=kind.value)
        result = _route(artifact, kind, bank_hint, extraction_client)
    except Exception as e:
        log.error("statement_parse_failed", error=str(e), exc_info=True)
        return ParseResult.failure(str(e) or "Failed to parse file")

    if result.success:
        log.info(
            "statement_parsed",
            bank=result.bank_name,
            transactions=len(result.transactions),
            warnings=len(result.warnings or []),
        )
    else:
        log.info("statement_parse_unsuccessful", error=result.error)
    return result

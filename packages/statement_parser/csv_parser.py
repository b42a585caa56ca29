"""
CSV statement parser - delimiter sniffing, pandas tokenizing, then the
shared tabular pipeline.
"""

import io
from typing import List, Optional

import pandas as pd
import structlog

from .core.errors import StatementError
from .models import ParseResult
from .tabular import parse_table

logger = structlog.get_logger(__name__)

# Candidate separators; on a tie the earlier one (comma) wins
DELIMITERS = (",", ";", "\t", "|")

INSUFFICIENT_DATA_ERROR = "File is empty or has insufficient data"
UNREADABLE_ERROR = "Could not read CSV file"


def detect_delimiter(header_line: str) -> str:
    """Pick the separator that occurs most often in the header line."""
    best_delimiter = ","
    max_count = 0

    for delimiter in DELIMITERS:
        count = header_line.count(delimiter)
        if count > max_count:
            max_count = count
            best_delimiter = delimiter

    return best_delimiter


def _read_options(delimiter: str) -> dict:
    return dict(
        sep=delimiter,
        header=None,
        dtype=str,
        keep_default_na=False,
        skip_blank_lines=True,
        quotechar='"',
        doublequote=True,
        engine="python",
    )


def read_rows(text: str, delimiter: str) -> List[List[Optional[str]]]:
    """Tokenize delimited text, header row included.

    Blank lines are skipped. Cells are trimmed; rows longer than the first
    row are cut to its width and shorter ones padded with None.
    """
    options = _read_options(delimiter)
    first_line = next(line for line in text.splitlines() if line.strip())
    width = pd.read_csv(io.StringIO(first_line), **options).shape[1]

    frame = pd.read_csv(
        io.StringIO(text), on_bad_lines=lambda fields: fields[:width], **options
    )
    frame = frame.astype(object).where(frame.notna(), None)

    return [
        [None if cell is None else str(cell).strip() for cell in row]
        for row in frame.values.tolist()
    ]


def parse_csv(content: str, bank_hint: Optional[str] = None) -> ParseResult:
    """
    Parse a delimited-text bank statement.

    The first non-blank line is the header. Warnings number the non-blank
    lines from 1 (the header), so the first data row is row 2.

    Args:
        content: Decoded file text
        bank_hint: Bank key or name (gtbank, access, firstbank, uba, zenith)

    Returns:
        ParseResult; structural problems give success=False
    """
    text = content.lstrip("\ufeff")
    if not text.strip():
        return ParseResult.failure(INSUFFICIENT_DATA_ERROR)

    header_line = next(line for line in text.splitlines() if line.strip())
    delimiter = detect_delimiter(header_line)

    try:
        rows = read_rows(text, delimiter)
    except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        logger.info("csv_read_failed", error=str(e))
        return ParseResult.failure(UNREADABLE_ERROR)

    if len(rows) < 2:
        return ParseResult.failure(INSUFFICIENT_DATA_ERROR)

    headers = ["" if cell is None else cell for cell in rows[0]]
    logger.debug("csv_header_found", delimiter=delimiter, columns=len(headers))

    data_rows = ((i + 1, rows[i]) for i in range(1, len(rows)))

    try:
        return parse_table(headers, data_rows, bank_hint=bank_hint)
    except StatementError as e:
        return ParseResult.failure(e.detail)

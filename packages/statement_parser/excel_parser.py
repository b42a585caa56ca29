import io
from typing import Dict, List, Optional, Sequence, Tuple

import msoffcrypto
import pandas as pd
import structlog

from .core.errors import RejectedInputError, StatementError, StructuralError
from .models import ParseResult
from .normalizers import is_blank
from .tabular import parse_table

logger = structlog.get_logger(__name__)

# OLE2 Compound Document magic bytes; legacy .xls and encrypted Office files share this container
_OLE2_MAGIC = b"\xD0\xCF\x11\xE0\xA1\xB1\x1A\xE1"

# Only the top of a sheet is searched for the header row
HEADER_SCAN_ROWS = 10

HEADER_DATE_TOKENS = ("date", "trans date", "transaction date", "posted", "value date")
HEADER_DESCRIPTION_TOKENS = ("description", "narration", "details", "remarks", "memo")

TRANSACTION_SHEET_KEYWORDS = ("transaction", "statement", "account", "history", "ledger")

NO_HEADER_ERROR = "Could not find header row with date and description columns"


def _is_ole2(file_content: bytes) -> bool:
    """Check if file starts with the OLE2 magic bytes."""
    return file_content[:8] == _OLE2_MAGIC


def _open_workbook(file_content: bytes, password: Optional[str]) -> io.BytesIO:
    """Return a readable workbook stream, decrypting it when needed."""
    if not _is_ole2(file_content):
        # Plain .xlsx (ZIP-based OOXML)
        return io.BytesIO(file_content)

    office_file = msoffcrypto.OfficeFile(io.BytesIO(file_content))
    if not office_file.is_encrypted():
        # Legacy .xls
        return io.BytesIO(file_content)

    if not password:
        raise RejectedInputError("Password required")

    decrypted_workbook = io.BytesIO()
    try:
        office_file.load_key(password=password)
        office_file.decrypt(decrypted_workbook)
    except Exception as e:
        msg = str(e).lower()
        if "password" in msg or "decrypt" in msg or "key" in msg:
            raise RejectedInputError("Invalid password")
        raise RejectedInputError(f"Failed to decrypt file: {e}")

    decrypted_workbook.seek(0)
    return decrypted_workbook


def read_sheets(file_content: bytes, password: Optional[str] = None) -> Dict[str, List[list]]:
    """Read every sheet as raw rows, keeping typed cells (dates, numbers).

    Empty cells come back as None.
    """
    workbook = _open_workbook(file_content, password)
    frames = pd.read_excel(workbook, sheet_name=None, header=None, dtype=object)

    sheets = {}
    for name, frame in frames.items():
        frame = frame.astype(object).where(frame.notna(), None)
        sheets[str(name)] = frame.values.tolist()
    return sheets


def find_transaction_sheet(sheet_names: Sequence[str]) -> Optional[str]:
    """First sheet whose name suggests transaction data, else the first sheet."""
    for name in sheet_names:
        lower_name = name.lower()
        if any(keyword in lower_name for keyword in TRANSACTION_SHEET_KEYWORDS):
            return name
    return sheet_names[0] if sheet_names else None


def _header_cells(row: Sequence[object]) -> List[str]:
    return ["" if is_blank(cell) else str(cell).strip() for cell in row]


def find_header_row(rows: Sequence[Sequence[object]]) -> Tuple[int, List[str]]:
    """
    Locate the header row.

    Scans the first HEADER_SCAN_ROWS rows for one mentioning both a date
    column and a description column; otherwise falls back to the first
    non-empty row. Returns (-1, []) when every row is empty.
    """
    for i, row in enumerate(rows[:HEADER_SCAN_ROWS]):
        if not row:
            continue
        cells = [cell.lower() for cell in _header_cells(row)]

        has_date = any(token in cell for token in HEADER_DATE_TOKENS for cell in cells)
        has_desc = any(
            token in cell for token in HEADER_DESCRIPTION_TOKENS for cell in cells
        )
        if has_date and has_desc:
            return i, _header_cells(row)

    for i, row in enumerate(rows):
        if row and any(not is_blank(cell) for cell in row):
            return i, _header_cells(row)

    return -1, []


def parse_excel(
    file_content: bytes, bank_hint: Optional[str] = None, password: Optional[str] = None
) -> ParseResult:
    """
    Parse an Excel bank statement (.xlsx or .xls).

    Args:
        file_content: Workbook bytes
        bank_hint: Bank key or name overriding header detection
        password: Password for encrypted workbooks

    Returns:
        ParseResult; warnings refer to 1-based sheet row numbers
    """
    try:
        sheets = read_sheets(file_content, password=password)

        sheet_name = find_transaction_sheet(list(sheets))
        if sheet_name is None:
            raise StructuralError("Excel file contains no sheets")

        rows = sheets[sheet_name]
        if len(rows) < 2:
            raise StructuralError("Sheet is empty or has insufficient data")

        header_row_idx, headers = find_header_row(rows)
        if header_row_idx == -1 or not headers:
            raise StructuralError(NO_HEADER_ERROR)

        logger.debug("excel_header_found", sheet=sheet_name, row=header_row_idx + 1)

        data_rows = (
            (i + 1, rows[i]) for i in range(header_row_idx + 1, len(rows))
        )
        return parse_table(headers, data_rows, bank_hint=bank_hint)

    except StatementError as e:
        logger.info("excel_parse_failed", error=e.detail)
        return ParseResult.failure(e.detail)

"""
Shared tabular pipeline used by the CSV and Excel parsers.

Given a header row and the data rows after it: pick a bank profile, map the
columns, turn each row into a transaction (or a warning), and assemble the
ParseResult. Rows that fail are skipped with a warning; only a missing
column mapping aborts the parse.
"""

from typing import Iterable, List, NamedTuple, Optional, Sequence

import structlog

from .column_mapper import map_columns
from .core.errors import StructuralError
from .models import ColumnMapping, ParsedTransaction, ParseResult
from .normalizers import is_blank, net_amount, parse_amount, parse_date
from .profiles import BankFormatProfile, resolve_profile

logger = structlog.get_logger(__name__)

MISSING_COLUMNS_ERROR = "Could not identify required columns (date, description, amount)"


class RowOutcome(NamedTuple):
    """Result of one data row.

    ``transaction`` set: keep it. ``warning`` set: skipped with a warning.
    Both None: dropped silently (blank description or zero amount).
    """

    transaction: Optional[ParsedTransaction] = None
    warning: Optional[str] = None


def _cell(row: Sequence[object], index: Optional[int]):
    if index is None or index < 0 or index >= len(row):
        return None
    return row[index]


def _text(value) -> str:
    return "" if is_blank(value) else str(value).strip()


def build_transaction(
    row: Sequence[object],
    mapping: ColumnMapping,
    profile: BankFormatProfile,
    headers: Sequence[str],
) -> Optional[ParsedTransaction]:
    """Build one transaction from a data row.

    Raises ValueError for rows that cannot be normalized. Returns None for
    rows that should be dropped without a warning.
    """
    raw_date = _cell(row, mapping.date_index)
    date = parse_date(raw_date, profile.date_formats)
    if date is None:
        raise ValueError(f"Invalid date: {_text(raw_date)}")

    description = _text(_cell(row, mapping.description_index))
    if not description:
        return None

    amount_cell = _cell(row, mapping.amount_index)
    if mapping.has_amount and not is_blank(amount_cell):
        amount = parse_amount(amount_cell)
    elif mapping.has_credit_debit:
        amount = net_amount(
            _cell(row, mapping.credit_index), _cell(row, mapping.debit_index)
        )
    else:
        raise ValueError("Could not determine transaction amount")

    if amount == 0:
        return None

    balance_cell = _cell(row, mapping.balance_index)
    balance = None if is_blank(balance_cell) else parse_amount(balance_cell)

    reference = _text(_cell(row, mapping.reference_index)) or None

    raw_fields = {}
    for index, header in enumerate(headers):
        value = _cell(row, index)
        if not is_blank(value):
            raw_fields[header] = str(value)

    return ParsedTransaction(
        date=date,
        description=description,
        amount=amount,
        balance=balance,
        reference=reference,
        raw_fields=raw_fields,
    )


def parse_row(
    row: Sequence[object],
    row_number: int,
    mapping: ColumnMapping,
    profile: BankFormatProfile,
    headers: Sequence[str],
) -> RowOutcome:
    """Build a row, turning any failure into a ``Row <n>: <reason>`` warning."""
    try:
        return RowOutcome(transaction=build_transaction(row, mapping, profile, headers))
    except Exception as e:
        message = str(e) or "Parse error"
        return RowOutcome(warning=f"Row {row_number}: {message}")


def is_empty_row(row: Sequence[object]) -> bool:
    return all(is_blank(cell) for cell in row)


def parse_table(
    headers: Sequence[str],
    rows: Iterable[tuple],
    bank_hint: Optional[str] = None,
) -> ParseResult:
    """Parse data rows against a header row.

    Args:
        headers: Header cells, already stripped.
        rows: ``(row_number, cells)`` pairs; row_number is what warnings show.
        bank_hint: Optional bank key/name that bypasses format detection.

    Raises:
        StructuralError: when the required columns cannot be mapped.
    """
    headers = list(headers)
    profile = resolve_profile(headers, bank_hint)

    mapping = map_columns(headers, profile)
    if mapping is None:
        logger.info("column_mapping_failed", profile=profile.key, headers=headers)
        raise StructuralError(MISSING_COLUMNS_ERROR)

    transactions: List[ParsedTransaction] = []
    warnings: List[str] = []
    seen = 0

    for row_number, cells in rows:
        if not cells or is_empty_row(cells):
            continue
        seen += 1

        outcome = parse_row(cells, row_number, mapping, profile, headers)
        if outcome.transaction is not None:
            transactions.append(outcome.transaction)
        elif outcome.warning is not None:
            logger.debug("row_skipped", warning=outcome.warning)
            warnings.append(outcome.warning)

    logger.info(
        "tabular_parse_complete",
        profile=profile.key,
        rows=seen,
        transactions=len(transactions),
        warnings=len(warnings),
    )

    return ParseResult.from_transactions(
        transactions, bank_name=profile.name, warnings=warnings
    )

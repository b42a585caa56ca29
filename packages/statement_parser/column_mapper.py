"""Resolve logical statement columns against a header row."""

from typing import Optional, Sequence

from .models import ColumnMapping
from .profiles import BankFormatProfile, normalize_headers

# Statement layouts rarely agree on the reference column, so it is not
# part of the bank profiles.
REFERENCE_PATTERNS = ("reference", "ref", "transaction id", "txn id", "trans ref")


def find_column_index(headers: Sequence[str], patterns: Optional[Sequence[str]]) -> int:
    """Index of the first header containing a pattern, trying patterns in order.

    The first matching pattern wins, not the best match. Returns -1 when
    nothing matches (or when there are no patterns).
    """
    if not patterns:
        return -1

    for pattern in patterns:
        needle = pattern.lower()
        for index, cell in enumerate(headers):
            if needle in cell:
                return index
    return -1


def _optional(index: int) -> Optional[int]:
    return index if index != -1 else None


def map_columns(
    headers: Sequence[object], profile: BankFormatProfile
) -> Optional[ColumnMapping]:
    """Map a header row with ``profile``'s patterns.

    Returns None unless date and description resolve, and either an amount
    column or both credit and debit columns resolve.
    """
    normalized = normalize_headers(headers)

    date_index = find_column_index(normalized, profile.date_patterns)
    description_index = find_column_index(normalized, profile.description_patterns)
    amount_index = find_column_index(normalized, profile.amount_patterns)
    credit_index = find_column_index(normalized, profile.credit_patterns)
    debit_index = find_column_index(normalized, profile.debit_patterns)
    balance_index = find_column_index(normalized, profile.balance_patterns)
    reference_index = find_column_index(normalized, REFERENCE_PATTERNS)

    if date_index == -1 or description_index == -1:
        return None

    if amount_index == -1 and (credit_index == -1 or debit_index == -1):
        return None

    return ColumnMapping(
        date_index=date_index,
        description_index=description_index,
        amount_index=amount_index,
        credit_index=_optional(credit_index),
        debit_index=_optional(debit_index),
        balance_index=_optional(balance_index),
        reference_index=_optional(reference_index),
    )

"""
Field normalizers - turn raw statement cells into typed dates and signed amounts.
"""

import math
import numbers
import re
from datetime import date, datetime, timedelta, timezone
from typing import Optional, Sequence

import pandas as pd

# Spreadsheet serial dates count days from this epoch
SPREADSHEET_EPOCH = datetime(1899, 12, 30)

MONTHS = {
    "jan": 1,
    "feb": 2,
    "mar": 3,
    "apr": 4,
    "may": 5,
    "jun": 6,
    "jul": 7,
    "aug": 8,
    "sep": 9,
    "oct": 10,
    "nov": 11,
    "dec": 12,
}

# (regex, group order) tried in sequence after the ISO parse fails
DATE_PATTERNS = [
    (re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$"), "dmy"),  # DD/MM/YYYY
    (re.compile(r"^(\d{1,2})-(\d{1,2})-(\d{4})$"), "dmy"),  # DD-MM-YYYY
    (re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$"), "ymd"),  # YYYY-MM-DD
    (re.compile(r"^(\d{1,2})-([A-Za-z]{3})-(\d{4})$"), "dmy"),  # DD-MMM-YYYY
    (re.compile(r"^(\d{1,2})\s+([A-Za-z]{3})\s+(\d{4})$"), "dmy"),  # DD MMM YYYY
]

# Naira is frequently typed as a plain "N" in exported statements
_CURRENCY_RE = re.compile(r"[₦$€£¥₹N]")
_MARKER_RE = re.compile(r"DR|CR|debit|credit", re.IGNORECASE)
_NOISE_RE = re.compile(r"[,\s()]")


def is_blank(value) -> bool:
    """True for missing cells: None, NaN/NaT, or whitespace-only strings."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def parse_iso_datetime(text: str) -> Optional[datetime]:
    """Strict ISO 8601 parse. Aware values are converted to naive UTC."""
    cleaned = text.strip()
    if cleaned.endswith(("Z", "z")):
        cleaned = cleaned[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(cleaned)
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _from_serial(value: float) -> Optional[datetime]:
    if math.isnan(value) or math.isinf(value):
        return None
    try:
        return SPREADSHEET_EPOCH + timedelta(days=value)
    except OverflowError:
        return None


def _match_patterns(text: str) -> Optional[datetime]:
    for pattern, order in DATE_PATTERNS:
        match = pattern.match(text)
        if not match:
            continue

        first, middle, last = match.groups()
        if order == "ymd":
            year, month, day = int(first), int(middle), int(last)
        else:
            day, year = int(first), int(last)
            if middle.isalpha():
                month = MONTHS.get(middle.lower())
                if month is None:
                    continue
            else:
                month = int(middle)

        try:
            return datetime(year, month, day)
        except ValueError:
            # e.g. 31/02/2024 - try the next pattern
            continue

    return None


def parse_date(value, formats: Sequence[str] = ()) -> Optional[datetime]:
    """Parse a statement date cell.

    Accepts native datetimes (spreadsheet date cells), numeric spreadsheet
    serials and strings. Strings go through ISO first, then the fixed
    DD/MM/YYYY, DD-MM-YYYY, YYYY-MM-DD, DD-MMM-YYYY and DD MMM YYYY patterns.
    ``formats`` names the profile's accepted formats; the pattern list itself
    does not change with it.

    Returns None when nothing matches.
    """
    if is_blank(value):
        return None

    if isinstance(value, datetime):
        if isinstance(value, pd.Timestamp):
            value = value.to_pydatetime()
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)

    if isinstance(value, numbers.Real) and not isinstance(value, bool):
        return _from_serial(float(value))

    if not isinstance(value, str):
        return None

    cleaned = value.strip()
    return parse_iso_datetime(cleaned) or _match_patterns(cleaned)


def parse_amount(value) -> float:
    """Parse an amount cell into a signed float.

    Negative when the text starts with '-' or '(' or mentions DR/debit.
    A value that already parsed negative is never flipped again.
    Blank or unparseable input gives 0.0.
    """
    if is_blank(value):
        return 0.0

    if isinstance(value, numbers.Real) and not isinstance(value, bool):
        return float(value)

    text = str(value).strip()
    lowered = text.lower()
    is_negative = (
        text.startswith("-")
        or text.startswith("(")
        or "dr" in lowered
        or "debit" in lowered
    )

    cleaned = _CURRENCY_RE.sub("", text)
    cleaned = _NOISE_RE.sub("", cleaned)
    cleaned = _MARKER_RE.sub("", cleaned).strip()

    if not cleaned or cleaned == "-":
        return 0.0

    try:
        amount = float(cleaned)
    except ValueError:
        return 0.0

    if math.isnan(amount) or math.isinf(amount):
        return 0.0

    return -amount if is_negative and amount > 0 else amount


def net_amount(credit, debit) -> float:
    """Signed amount from a credit/debit column pair (blank cells count as 0)."""
    return parse_amount(credit) - parse_amount(debit)

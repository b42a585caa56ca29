"""
Bank format profiles - known statement layouts and header-based detection.

Supports: GTBank, Access Bank, First Bank, UBA, Zenith Bank, and a generic
fallback layout.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable, List, Mapping, Optional, Tuple

import structlog

logger = structlog.get_logger(__name__)

GENERIC_KEY = "generic"

# Minimum header score for a bank-specific profile to win over generic
MATCH_THRESHOLD = 2


@dataclass(frozen=True)
class BankFormatProfile:
    """Header patterns and date formats of one statement layout."""

    key: str
    name: str
    date_patterns: Tuple[str, ...]
    description_patterns: Tuple[str, ...]
    amount_patterns: Tuple[str, ...]
    credit_patterns: Optional[Tuple[str, ...]] = None
    debit_patterns: Optional[Tuple[str, ...]] = None
    balance_patterns: Optional[Tuple[str, ...]] = None
    date_formats: Tuple[str, ...] = ()

    def __post_init__(self):
        if not self.date_patterns or not self.description_patterns:
            raise ValueError(
                f"Profile {self.key!r} needs date and description patterns"
            )

    @property
    def is_generic(self) -> bool:
        return self.key == GENERIC_KEY


_PROFILES = (
    BankFormatProfile(
        key="gtbank",
        name="GTBank",
        date_patterns=("Transaction Date", "Date", "Txn Date"),
        description_patterns=("Description", "Narration", "Details"),
        amount_patterns=("Amount",),
        credit_patterns=("Credit", "CR"),
        debit_patterns=("Debit", "DR"),
        balance_patterns=("Balance", "Running Balance"),
        date_formats=("DD-MMM-YYYY", "DD/MM/YYYY", "YYYY-MM-DD"),
    ),
    BankFormatProfile(
        key="access",
        name="Access Bank",
        date_patterns=("Trans Date", "Transaction Date", "Date"),
        description_patterns=("Narration", "Description"),
        amount_patterns=("Amount",),
        credit_patterns=("Credit",),
        debit_patterns=("Debit",),
        balance_patterns=("Balance",),
        date_formats=("DD-MMM-YYYY", "DD/MM/YYYY"),
    ),
    BankFormatProfile(
        key="firstbank",
        name="First Bank",
        date_patterns=("Date", "Trans Date", "Value Date"),
        description_patterns=("Narration", "Description", "Remarks"),
        amount_patterns=("Amount",),
        credit_patterns=("Credit", "CR Amount"),
        debit_patterns=("Debit", "DR Amount"),
        balance_patterns=("Balance", "Book Balance"),
        date_formats=("DD/MM/YYYY", "DD-MM-YYYY"),
    ),
    BankFormatProfile(
        key="uba",
        name="UBA",
        date_patterns=("Trans Date", "Date", "Posted Date"),
        description_patterns=("Narration", "Description"),
        amount_patterns=("Amount",),
        credit_patterns=("Credit",),
        debit_patterns=("Debit",),
        balance_patterns=("Balance",),
        date_formats=("DD-MMM-YYYY", "DD/MM/YYYY"),
    ),
    BankFormatProfile(
        key="zenith",
        name="Zenith Bank",
        date_patterns=("Transaction Date", "Date", "Value Date"),
        description_patterns=("Description", "Narration"),
        amount_patterns=("Amount",),
        credit_patterns=("Credit", "CR"),
        debit_patterns=("Debit", "DR"),
        balance_patterns=("Balance",),
        date_formats=("DD/MM/YYYY", "DD-MMM-YYYY"),
    ),
    BankFormatProfile(
        key=GENERIC_KEY,
        name="Generic",
        date_patterns=(
            "Date",
            "Trans Date",
            "Transaction Date",
            "Posted Date",
            "Value Date",
        ),
        description_patterns=("Description", "Narration", "Details", "Remarks", "Memo"),
        amount_patterns=("Amount", "Transaction Amount"),
        credit_patterns=("Credit", "CR", "Deposit", "Money In"),
        debit_patterns=("Debit", "DR", "Withdrawal", "Money Out"),
        balance_patterns=("Balance", "Running Balance", "Available Balance"),
        date_formats=("DD/MM/YYYY", "MM/DD/YYYY", "YYYY-MM-DD", "DD-MMM-YYYY", "DD-MM-YYYY"),
    ),
)

# Read-only after import; detection walks it in this order
BANK_FORMAT_PROFILES: Mapping[str, BankFormatProfile] = MappingProxyType(
    {profile.key: profile for profile in _PROFILES}
)

GENERIC_PROFILE = BANK_FORMAT_PROFILES[GENERIC_KEY]


def normalize_headers(headers: Iterable[object]) -> List[str]:
    """Lower-case and trim header cells for substring matching."""
    return ["" if h is None else str(h).lower().strip() for h in headers]


class BankFormatDetector:
    """Detects the bank format from a header row."""

    @staticmethod
    def score(headers: Iterable[object], profile: BankFormatProfile) -> int:
        """One point per date/description pattern found in any header cell."""
        normalized = normalize_headers(headers)
        score = 0
        for pattern in profile.date_patterns + profile.description_patterns:
            needle = pattern.lower()
            if any(needle in cell for cell in normalized):
                score += 1
        return score

    @classmethod
    def detect_from_headers(cls, headers: Iterable[object]) -> BankFormatProfile:
        """Return the first bank profile scoring at least MATCH_THRESHOLD."""
        headers = list(headers)
        for profile in BANK_FORMAT_PROFILES.values():
            if profile.is_generic:
                continue
            if cls.score(headers, profile) >= MATCH_THRESHOLD:
                return profile
        return GENERIC_PROFILE


def get_profile(bank_hint: Optional[str]) -> BankFormatProfile:
    """Look up a profile by key or display name, defaulting to generic."""
    if not bank_hint or not bank_hint.strip():
        return GENERIC_PROFILE

    wanted = bank_hint.strip().lower()
    if wanted in BANK_FORMAT_PROFILES:
        return BANK_FORMAT_PROFILES[wanted]

    for profile in BANK_FORMAT_PROFILES.values():
        if profile.name.lower() == wanted:
            return profile

    logger.info("bank_hint_unknown", bank_hint=bank_hint)
    return GENERIC_PROFILE


def resolve_profile(
    headers: Iterable[object], bank_hint: Optional[str] = None
) -> BankFormatProfile:
    """Pick the profile for a header row: the caller's hint wins over detection."""
    if bank_hint:
        return get_profile(bank_hint)
    return BankFormatDetector.detect_from_headers(headers)

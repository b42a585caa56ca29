"""
Statement data model - uploaded artifact, column mapping, parsed transactions
and the unified parse result shared by every extractor.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

# Tried in order; legacy bank exports are often Windows-1252 or Latin-1
TEXT_ENCODINGS = ("utf-8-sig", "cp1252", "latin-1")


class FileKind(str, Enum):
    """Artifact kinds the dispatcher knows how to route."""

    CSV = "csv"
    XLSX = "xlsx"
    XLS = "xls"
    PDF = "pdf"

    @property
    def is_spreadsheet(self) -> bool:
        return self in (FileKind.XLSX, FileKind.XLS)


@dataclass
class RawInput:
    """An uploaded statement file, owned by the call that parses it."""

    name: str
    media_type: str
    content: Union[str, bytes]
    size: Optional[int] = None
    password: Optional[str] = None  # encrypted workbooks only

    def __post_init__(self):
        if self.size is None:
            self.size = len(self.read_bytes())

    def read_text(self) -> str:
        """Decode the content for the delimited-text parser, without a BOM."""
        if isinstance(self.content, str):
            return self.content.lstrip("\ufeff")

        for encoding in TEXT_ENCODINGS:
            try:
                return self.content.decode(encoding)
            except UnicodeDecodeError:
                continue

        raise ValueError("Could not decode file with any known encoding")

    def read_bytes(self) -> bytes:
        if isinstance(self.content, bytes):
            return self.content
        return self.content.encode("utf-8")


@dataclass(frozen=True)
class ColumnMapping:
    """Zero-based positions of the logical columns in a header row.

    Either ``amount_index`` is resolved, or both ``credit_index`` and
    ``debit_index`` are. Anything else is rejected at construction.
    """

    date_index: int
    description_index: int
    amount_index: int = -1
    credit_index: Optional[int] = None
    debit_index: Optional[int] = None
    balance_index: Optional[int] = None
    reference_index: Optional[int] = None

    def __post_init__(self):
        if self.date_index < 0 or self.description_index < 0:
            raise ValueError("Date and description columns are required")
        if self.amount_index < 0 and not self.has_credit_debit:
            raise ValueError("An amount column or a credit/debit pair is required")

    @property
    def has_amount(self) -> bool:
        return self.amount_index >= 0

    @property
    def has_credit_debit(self) -> bool:
        return self.credit_index is not None and self.debit_index is not None


@dataclass
class ParsedTransaction:
    """Canonical transaction: positive amounts are money in, negative money out."""

    date: datetime
    description: str
    amount: float
    balance: Optional[float] = None
    reference: Optional[str] = None
    raw_fields: Dict[str, str] = field(default_factory=dict)

    @property
    def transaction_type(self) -> str:
        return "credit" if self.amount > 0 else "debit"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-ready dictionary."""
        return {
            "date": self.date.isoformat(),
            "description": self.description,
            "amount": self.amount,
            "type": self.transaction_type,
            "balance": self.balance,
            "reference": self.reference,
            "raw_fields": dict(self.raw_fields),
        }


@dataclass
class ParseResult:
    """Outcome of one parse. A failed result never carries transactions."""

    success: bool
    transactions: List[ParsedTransaction] = field(default_factory=list)
    bank_name: Optional[str] = None
    account_number: Optional[str] = None
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None
    warnings: Optional[List[str]] = None
    error: Optional[str] = None

    def __post_init__(self):
        if not self.success and self.transactions:
            raise ValueError("A failed parse result cannot carry transactions")

    @classmethod
    def failure(cls, error: str) -> "ParseResult":
        return cls(success=False, transactions=[], error=error)

    @classmethod
    def from_transactions(
        cls,
        transactions: List[ParsedTransaction],
        bank_name: Optional[str] = None,
        account_number: Optional[str] = None,
        warnings: Optional[List[str]] = None,
    ) -> "ParseResult":
        """Build a successful result, deriving the statement period.

        The period comes from a sorted copy; ``transactions`` keeps row order.
        """
        dates = sorted(t.date for t in transactions)
        return cls(
            success=True,
            transactions=list(transactions),
            bank_name=bank_name,
            account_number=account_number,
            period_start=dates[0] if dates else None,
            period_end=dates[-1] if dates else None,
            warnings=list(warnings) if warnings else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-ready dictionary for the review layer."""
        return {
            "success": self.success,
            "transactions": [t.to_dict() for t in self.transactions],
            "bank_name": self.bank_name,
            "account_number": self.account_number,
            "period_start": self.period_start.isoformat() if self.period_start else None,
            "period_end": self.period_end.isoformat() if self.period_end else None,
            "warnings": self.warnings,
            "error": self.error,
        }

"""
Statement Parser

Bank statement ingestion: CSV, Excel and PDF statements normalized into
signed transaction records.
"""

__version__ = "0.1.0"

from .dispatcher import classify, parse_statement, validate
from .models import FileKind, ParsedTransaction, ParseResult, RawInput
from .profiles import BANK_FORMAT_PROFILES, BankFormatProfile

__all__ = [
    "parse_statement",
    "classify",
    "validate",
    "FileKind",
    "RawInput",
    "ParsedTransaction",
    "ParseResult",
    "BankFormatProfile",
    "BANK_FORMAT_PROFILES",
]

"""Error types raised inside the statement parsers.

None of these cross the dispatcher: extractors and the dispatcher turn
them into a failed ParseResult carrying ``detail`` as its error message.
"""

from typing import Optional


class StatementError(Exception):
    """Base statement parsing error."""

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(detail)


class RejectedInputError(StatementError):
    """Artifact refused before parsing (too large, unknown type)."""


class StructuralError(StatementError):
    """Header row or required columns could not be resolved."""


class ExtractionError(StatementError):
    """The document extraction service failed or answered garbage."""

    def __init__(self, detail: str, status_code: Optional[int] = None):
        super().__init__(detail)
        self.status_code = status_code

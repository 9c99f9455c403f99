from __future__ import annotations

from collections.abc import Sequence

"""Exception hierarchy for the dealer sales import pipeline.

Structural errors (ParseError, SchemaError) abort a run before any row-level
work. Row-level problems are never raised; they are collected as
``validation_errors`` on each row and surfaced in the preview.
"""

__all__ = [
    "SalesImportError",
    "ParseError",
    "SchemaError",
    "ReconciliationError",
    "InvalidTransitionError",
    "NoValidRowsError",
]


class SalesImportError(Exception):
    """Base class for import pipeline errors."""


class ParseError(SalesImportError):
    """Raised when a sheet cannot be decoded or holds no data rows."""


class SchemaError(SalesImportError):
    """Raised when required columns are missing from the header row."""

    def __init__(self, missing_columns: Sequence[str]) -> None:
        self.missing_columns = list(missing_columns)
        super().__init__(f"Missing required columns: {', '.join(self.missing_columns)}")


class ReconciliationError(SalesImportError):
    """Raised for an unknown unmatched-dealer group or an unknown dealer choice."""


class InvalidTransitionError(SalesImportError):
    """Raised when an import session operation is called from the wrong step."""


class NoValidRowsError(SalesImportError):
    """Raised when commit is requested but no row passed validation."""

    def __init__(self) -> None:
        super().__init__("No valid sales to import. Please fix validation errors.")

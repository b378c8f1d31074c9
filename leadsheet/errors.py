from __future__ import annotations

from collections.abc import Iterable

"""Error taxonomy shared by the store adapters and the engines.

- ConfigurationError: required column(s) absent from a header row. Fatal, no write.
- MissingSourceError: named table does not exist. Fatal, no write.
- StoreError: a table could not be read or written at all. Fatal.
- IncompleteDataWarning: rows left without country/region after every fallback.
  Not fatal; surfaced as a count and as Missing_GeoMapping rows.
- CheckpointResumeAmbiguity: documented only. A batch re-run after an interrupted
  append reprocesses the last batch (at-least-once); deduplicate the output to recover.
"""

__all__ = [
    "LeadsheetError",
    "ConfigurationError",
    "MissingSourceError",
    "StoreError",
    "IncompleteDataWarning",
    "CheckpointResumeAmbiguity",
]


class LeadsheetError(Exception):
    """Base class for fatal run errors."""


class ConfigurationError(LeadsheetError):
    """Raised when required columns are missing from a table header."""

    def __init__(self, missing_columns: Iterable[str], table: str | None = None) -> None:
        self.missing_columns = list(missing_columns)
        self.table = table
        where = f" in table '{table}'" if table else ""
        super().__init__(f"missing required columns{where}: {self.missing_columns}")


class MissingSourceError(LeadsheetError):
    """Raised when a named table does not exist in the store."""

    def __init__(self, table: str, workbook: str | None = None) -> None:
        self.table = table
        self.workbook = workbook
        where = f" in workbook '{workbook}'" if workbook else ""
        super().__init__(f"table not found: {table}{where}")


class StoreError(LeadsheetError):
    """Raised when a table cannot be read or written."""


class IncompleteDataWarning(UserWarning):
    """Rows that could not be fully resolved to a country and region."""


class CheckpointResumeAmbiguity(LeadsheetError):
    """Stale or partial batch checkpoint.

    Never raised automatically: the recovery policy is to re-run the last batch
    and deduplicate the output afterwards.
    """

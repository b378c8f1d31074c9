from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any

from ..models.table import Table

"""Tabular store contract.

A store is a named collection of tables (sheets). Reads and writes are whole
table operations; `append_rows` adds data rows after the last used row.
Row and column indices passed to `set_cell_background` are 0-based positions
in the data area (the header row is not counted).
"""

__all__ = [
    "TableStore",
]


class TableStore(ABC):

    @abstractmethod
    def list_tables(self) -> list[str]:
        """Table names in workbook order."""

    @abstractmethod
    def table_exists(self, name: str) -> bool: ...

    @abstractmethod
    def read_table(self, name: str) -> Table:
        """Raises MissingSourceError when the table does not exist."""

    @abstractmethod
    def write_table(self, name: str, table: Table) -> None:
        """Replace the whole used range (header + rows), creating the table if needed."""

    @abstractmethod
    def append_rows(self, name: str, rows: Sequence[Sequence[Any]]) -> None:
        """Raises MissingSourceError when the table does not exist."""

    @abstractmethod
    def create_table(self, name: str) -> None:
        """Create an empty table. No-op when it already exists."""

    @abstractmethod
    def set_cell_background(self, name: str, row_index: int, col_index: int, color_hex: str) -> None: ...

    def set_backgrounds(self, name: str, cells: Sequence[tuple[int, int]], color_hex: str) -> None:
        """Bulk variant; stores override when they can batch the writes."""
        for row_index, col_index in cells:
            self.set_cell_background(name, row_index, col_index, color_hex)

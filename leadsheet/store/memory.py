from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from ..errors import MissingSourceError
from ..models.table import Table
from .base import TableStore


class MemoryTableStore(TableStore):
    """Dict-backed store. Tables keep insertion order like sheets in a workbook."""

    def __init__(self, tables: Sequence[Table] | None = None) -> None:
        self._tables: dict[str, Table] = {}
        self.backgrounds: dict[str, dict[tuple[int, int], str]] = {}
        for t in tables or []:
            self._tables[t.name] = t.copy()

    def list_tables(self) -> list[str]:
        return list(self._tables)

    def table_exists(self, name: str) -> bool:
        return name in self._tables

    def read_table(self, name: str) -> Table:
        if name not in self._tables:
            raise MissingSourceError(name)
        return self._tables[name].copy()

    def write_table(self, name: str, table: Table) -> None:
        self._tables[name] = table.copy(name=name)
        self.backgrounds.pop(name, None)

    def append_rows(self, name: str, rows: Sequence[Sequence[Any]]) -> None:
        if name not in self._tables:
            raise MissingSourceError(name)
        current = self._tables[name]
        self._tables[name] = Table(name=name, columns=current.columns, rows=current.rows + [list(r) for r in rows])

    def create_table(self, name: str) -> None:
        self._tables.setdefault(name, Table(name=name, columns=[], rows=[]))

    def set_cell_background(self, name: str, row_index: int, col_index: int, color_hex: str) -> None:
        if name not in self._tables:
            raise MissingSourceError(name)
        self.backgrounds.setdefault(name, {})[(row_index, col_index)] = color_hex

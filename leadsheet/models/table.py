from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from ..errors import ConfigurationError

"""Table model: ordered header + ordered positional rows.

A Table mirrors one sheet's used range: the first row is the header row and
every following row is data. Rows are kept positional (list per row) so that
header names can repeat or be blank in raw sources without losing cells.

Invariant: every row has exactly `len(columns)` cells (padded with "" or
truncated on construction).
"""

__all__ = [
    "BLANK",
    "Table",
    "is_blank",
    "cell_text",
    "count_non_blank",
]

BLANK = ""


def is_blank(value: Any) -> bool:
    """True for None, NaN, and strings that are empty after stripping."""
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    if isinstance(value, str):
        return value.strip() == ""
    return False


def cell_text(value: Any) -> str:
    """Trimmed string form of a cell value; blank cells become ""."""
    if is_blank(value):
        return BLANK
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def count_non_blank(row: Iterable[Any]) -> int:
    return sum(1 for v in row if not is_blank(v))


def _fit(row: Sequence[Any], width: int) -> list[Any]:
    cells = list(row)
    if len(cells) < width:
        cells.extend([BLANK] * (width - len(cells)))
    elif len(cells) > width:
        del cells[width:]
    return cells


@dataclass
class Table:
    name: str
    columns: list[str]
    rows: list[list[Any]] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.columns = list(self.columns)
        width = len(self.columns)
        self.rows = [_fit(r, width) for r in self.rows]

    @property
    def width(self) -> int:
        return len(self.columns)

    def __len__(self) -> int:
        return len(self.rows)

    def find_column(self, name: str, *, case_sensitive: bool = True) -> int | None:
        """Position of the first header equal to `name` (trimmed), or None."""
        target = name.strip() if case_sensitive else name.strip().lower()
        for idx, header in enumerate(self.columns):
            h = str(header).strip()
            if not case_sensitive:
                h = h.lower()
            if h == target:
                return idx
        return None

    def require_columns(self, names: Iterable[str]) -> dict[str, int]:
        """Resolve every name to its position or raise with the full list of missing names."""
        resolved: dict[str, int] = {}
        missing: list[str] = []
        for name in names:
            idx = self.find_column(name)
            if idx is None:
                missing.append(name)
            else:
                resolved[name] = idx
        if missing:
            raise ConfigurationError(missing, table=self.name)
        return resolved

    def copy(self, name: str | None = None) -> Table:
        return Table(name=name or self.name, columns=list(self.columns), rows=[list(r) for r in self.rows])

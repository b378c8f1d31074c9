from __future__ import annotations

from typing import Any

import pandas as pd

from ..models.table import BLANK, Table, is_blank

"""Raw frame -> Table normalization shared by the file-backed stores.

The first row of the frame is the header row, every following row is data:
1. Header cells are stringified and stripped (NaN header -> "")
2. Data cells: NaN -> "" ; strings and numbers kept as read
3. Trailing columns whose header and data are all blank are cut
   (a sheet's used range ends at the last non-blank column)
4. Trailing fully blank rows are cut; blank rows in the middle are kept
   (skipping them is the caller's decision)
"""

__all__ = [
    "normalize_frame",
]


def normalize_frame(df: pd.DataFrame, name: str) -> Table:
    if df.shape[0] == 0 or df.shape[1] == 0:
        return Table(name=name, columns=[], rows=[])

    raw_rows: list[list[Any]] = []
    for values in df.itertuples(index=False, name=None):
        raw_rows.append([BLANK if _is_na(v) else v for v in values])

    header = ["" if is_blank(c) else str(c).strip() for c in raw_rows[0]]
    data = raw_rows[1:]

    width = len(header)
    while width > 0 and header[width - 1] == "" and all(is_blank(r[width - 1]) for r in data):
        width -= 1

    while data and all(is_blank(v) for v in data[-1][:width]):
        data.pop()

    return Table(name=name, columns=header[:width], rows=[r[:width] for r in data])


def _is_na(value: Any) -> bool:
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False

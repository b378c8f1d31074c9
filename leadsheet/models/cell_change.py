from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from typing import Any

"""CellChange model for the geo change log.

One record per cell rewritten by a resolution step. Serialized as one JSON
object per line with a fixed key set.
"""

__all__ = [
    "CellChange",
]


@dataclass(frozen=True)
class CellChange:
    """Structured record of a single cell rewrite.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        table: Table the cell belongs to
        row: 1-based sheet row number (header row is 1, first data row is 2)
        column: Header name of the cell
        old_value: Value before the run
        new_value: Value written back
        step: Resolution step that last wrote the cell (UPPER_SNAKE)
    """
    timestamp: str
    table: str
    row: int
    column: str
    old_value: Any
    new_value: Any
    step: str

    @staticmethod
    def create(table: str, row: int, column: str, old_value: Any, new_value: Any, step: str) -> CellChange:
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return CellChange(
            timestamp=ts,
            table=table,
            row=row,
            column=column,
            old_value=old_value,
            new_value=new_value,
            step=step,
        )

    def to_json_line(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=False, default=str)

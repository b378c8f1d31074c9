from __future__ import annotations

import json
from dataclasses import dataclass, replace
from datetime import UTC, datetime

"""BatchCheckpoint value object for the incremental combine.

Persisted between invocations through a string key-value store under the
property names the spreadsheet macros used, so an interrupted run can resume
from a checkpoint written by either side.
"""

__all__ = [
    "BatchCheckpoint",
    "CHECKPOINT_KEYS",
]

KEY_ALL_HEADERS = "allHeaders"
KEY_CURSOR = "lastProcessedIndex"
KEY_ROWS = "combinedRowsCount"
KEY_STARTED = "startTime"
CHECKPOINT_KEYS = (KEY_ALL_HEADERS, KEY_CURSOR, KEY_ROWS, KEY_STARTED)


@dataclass(frozen=True)
class BatchCheckpoint:
    all_headers: tuple[str, ...] = ()
    cursor: int = 0  # sources[:cursor] 処理済
    rows_combined: int = 0
    started_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.cursor < 0:
            raise ValueError(f"cursor must be >= 0, got {self.cursor}")
        if self.rows_combined < 0:
            raise ValueError(f"rows_combined must be >= 0, got {self.rows_combined}")

    @property
    def is_fresh(self) -> bool:
        return self.cursor == 0

    def advance(self, new_cursor: int, added_rows: int) -> BatchCheckpoint:
        return replace(self, cursor=new_cursor, rows_combined=self.rows_combined + added_rows)

    def to_properties(self) -> dict[str, str]:
        started = self.started_at or datetime.now(UTC)
        return {
            KEY_ALL_HEADERS: json.dumps(list(self.all_headers), ensure_ascii=False),
            KEY_CURSOR: str(self.cursor),
            KEY_ROWS: str(self.rows_combined),
            KEY_STARTED: str(int(started.timestamp() * 1000)),
        }

    @staticmethod
    def from_properties(props: dict[str, str | None]) -> BatchCheckpoint:
        """Rebuild from stored strings. Absent or empty values fall back to a fresh state."""
        headers_raw = props.get(KEY_ALL_HEADERS) or "[]"
        try:
            headers = json.loads(headers_raw)
        except json.JSONDecodeError:
            headers = []
        cursor = _int_or_zero(props.get(KEY_CURSOR))
        rows = _int_or_zero(props.get(KEY_ROWS))
        started_raw = props.get(KEY_STARTED)
        started_at = None
        if started_raw:
            try:
                started_at = datetime.fromtimestamp(int(started_raw) / 1000, tz=UTC)
            except ValueError:
                started_at = None
        return BatchCheckpoint(
            all_headers=tuple(str(h) for h in headers),
            cursor=cursor,
            rows_combined=rows,
            started_at=started_at,
        )


def _int_or_zero(raw: str | None) -> int:
    if not raw:
        return 0
    try:
        return max(0, int(float(raw)))
    except ValueError:
        return 0

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

from ..models.cell_change import CellChange

"""Cell change log buffering.

- JSON Lines, fixed key set (see CellChange)
- One `logs/changes-YYYYMMDD-HHMMSS.log` (UTC) per run, created on first flush
- Records are buffered in memory and written in one go at the end of the run
"""

__all__ = [
    "CellChange",
    "ChangeLogBuffer",
]

LOGS_DIR = Path("./logs")
TIMESTAMP_FMT = "%Y%m%d-%H%M%S"


class ChangeLogBuffer:
    """In-memory buffer for cell changes. flush() appends JSON Lines to the run's file.

    Single-threaded use only (one command per process).
    """

    def __init__(self, logs_dir: Path | None = None) -> None:
        self._records: list[CellChange] = []
        self._file_path: Path | None = None
        self._logs_dir = logs_dir or LOGS_DIR

    @property
    def file_path(self) -> Path:
        if self._file_path is None:
            self._logs_dir.mkdir(parents=True, exist_ok=True)
            stamp = datetime.now(UTC).strftime(TIMESTAMP_FMT)
            self._file_path = self._logs_dir / f"changes-{stamp}.log"
        return self._file_path

    def append(self, record: CellChange) -> None:
        self._records.append(record)

    def __len__(self) -> int:  # pragma: no cover (trivial)
        return len(self._records)

    def flush(self) -> Path | None:
        """Write buffered records. Returns the file path, or None when nothing was buffered."""
        if not self._records:
            return None
        fp = self.file_path
        with fp.open("a", encoding="utf-8") as f:
            for r in self._records:
                f.write(r.to_json_line() + "\n")
        self._records.clear()
        return fp

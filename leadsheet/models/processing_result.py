from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .geo_record import MissingGeoEntry
from .table import Table

"""Result models returned by the engines and the orchestration layer.

These carry the counts that end up on the SUMMARY line of each command.
"""


@dataclass(frozen=True)
class DedupResult:
    kept_rows: list[list[Any]]
    removed_count: int  # 同一キーで置換/却下された行数
    dropped_blank_keys: int = 0  # DROP ポリシーで除外した空キー行数


@dataclass(frozen=True)
class UnionResult:
    """Header union plus every source row projected onto it."""
    headers: list[str]
    rows: list[list[Any]]
    source_tables: list[str]
    skipped_tables: list[str] = field(default_factory=list)  # 列ゼロのテーブル


@dataclass(frozen=True)
class MergeResult:
    output_table: str
    source_tables: list[str]
    total_columns: int
    combined_rows: int  # 投影後 (dedup 前)
    removed_duplicates: int
    dropped_blank_keys: int
    written_rows: int  # 出力に書いた (append モードでは新規のみ)
    skipped_existing: int
    elapsed_seconds: float


@dataclass(frozen=True)
class GeoResult:
    """Outcome of one geo resolution pass over a lead table."""
    table: Table
    changed_cells: list[tuple[int, int]]  # (data row index, column index)
    rows_changed: int
    rows_swapped: int
    missing_entries: list[MissingGeoEntry]
    rows_complete: int = 0
    rows_flagged: int = 0  # 国/地域が欠けたままの行 (既知の欠損も含む)
    cell_steps: dict[tuple[int, int], str] = field(default_factory=dict)  # 最後に書いたステップ名


@dataclass(frozen=True)
class BatchResult:
    """Outcome of one batch-combine invocation."""
    processed_tables: list[str]
    pending_tables: list[str]
    batch_tables: list[str]
    appended_rows: int
    rows_combined: int
    cursor: int
    total_sources: int
    is_done: bool
    started_at: datetime | None = None
    elapsed_seconds: float | None = None  # 完了時のみ


@dataclass(frozen=True)
class MasterMappingResult:
    output_table: str
    records: int
    source_tables: list[str]
    skipped_sources: list[str]


@dataclass(frozen=True)
class ExtractGeoResult:
    output_table: str
    records: int
    missing_country: int


@dataclass(frozen=True)
class AutofillResult:
    table: str
    key_column: str
    value_column: str
    filled_cells: list[tuple[int, int]]


@dataclass(frozen=True)
class MissingDetailsResult:
    output_table: str
    columns: int
    depth: int  # 最長の列の値の数
    conflicts: int

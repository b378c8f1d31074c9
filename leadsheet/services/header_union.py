from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from ..models.config_models import HeaderSpec
from ..models.processing_result import UnionResult
from ..models.table import BLANK, Table, is_blank

"""Header union engine.

union_headers(): ordered union of header names across tables, first seen wins
the position. project_row(): re-project one source row onto the union, blank
for columns the source does not have.

Header matching:
- no alias table: exact string match on the trimmed header (optionally case-folded)
- alias table: each source header is mapped to its canonical output name first.
  Per canonical column the output name itself is tried before its aliases,
  first match wins, comparison is trimmed + case-insensitive. Source headers
  claimed by no canonical column pass through unchanged unless canonical_only.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "HeaderResolver",
    "union_headers",
    "project_row",
    "is_empty_row",
    "union_tables",
    "column_matrix",
]


def _fold(name: str) -> str:
    return name.strip().lower()


class HeaderResolver:
    """Maps a table's raw headers to output column names."""

    def __init__(
        self,
        aliases: Sequence[HeaderSpec] = (),
        *,
        case_sensitive: bool = True,
        canonical_only: bool = False,
    ) -> None:
        self.aliases = tuple(aliases)
        self.case_sensitive = case_sensitive
        self.canonical_only = canonical_only and bool(self.aliases)

    def key(self, name: str) -> str:
        """Identity used to decide whether two output names are the same column."""
        return name.strip() if self.case_sensitive else _fold(name)

    def output_names(self, columns: Sequence[Any]) -> list[str | None]:
        """Output name for every source position (None = column not carried over)."""
        raw = ["" if is_blank(c) else str(c).strip() for c in columns]
        out: list[str | None] = [None] * len(raw)
        claimed: set[int] = set()
        for spec in self.aliases:
            for candidate in (spec.output, *spec.aliases):
                idx = next(
                    (i for i, h in enumerate(raw) if h and i not in claimed and _fold(h) == _fold(candidate)),
                    None,
                )
                if idx is not None:
                    out[idx] = spec.output
                    claimed.add(idx)
                    break
        if not self.canonical_only:
            for i, h in enumerate(raw):
                if i not in claimed and h:
                    out[i] = h
        return out

    def source_index(self, columns: Sequence[Any]) -> dict[str, int]:
        """Output key -> first source position carrying it."""
        index: dict[str, int] = {}
        for pos, name in enumerate(self.output_names(columns)):
            if name is not None:
                index.setdefault(self.key(name), pos)
        return index


def union_headers(tables: Sequence[Table], resolver: HeaderResolver | None = None) -> list[str]:
    """Ordered union of output column names over `tables`.

    Tables without columns contribute nothing. With canonical_only the union is
    the canonical column list in configured order.
    """
    resolver = resolver or HeaderResolver()
    if resolver.canonical_only:
        return [spec.output for spec in resolver.aliases]
    seen: set[str] = set()
    union: list[str] = []
    for table in tables:
        for name in resolver.output_names(table.columns):
            if name is None:
                continue
            k = resolver.key(name)
            if k not in seen:
                seen.add(k)
                union.append(name)
    return union


def project_row(row: Sequence[Any], source_index: dict[str, int], union: Sequence[str]) -> list[Any]:
    """Cells of `row` in `union` order; blank where the source has no such column.

    `source_index` and `union` must use the same key space (see HeaderResolver.key).
    """
    out: list[Any] = []
    for h in union:
        pos = source_index.get(h)
        if pos is None or pos >= len(row):
            out.append(BLANK)
        else:
            out.append(row[pos])
    return out


def is_empty_row(row: Sequence[Any]) -> bool:
    return all(is_blank(v) for v in row)


def project_table(
    table: Table,
    union: Sequence[str],
    resolver: HeaderResolver,
    *,
    skip_empty_rows: bool,
) -> list[list[Any]]:
    source_index = resolver.source_index(table.columns)
    union_keys = [resolver.key(h) for h in union]
    rows: list[list[Any]] = []
    for row in table.rows:
        if skip_empty_rows and is_empty_row(row):
            continue
        rows.append(project_row(row, source_index, union_keys))
    return rows


def union_tables(
    tables: Sequence[Table],
    resolver: HeaderResolver | None = None,
    *,
    skip_empty_rows: bool = True,
    headers: Sequence[str] | None = None,
) -> UnionResult:
    """Union the headers of `tables` and project every row onto them.

    `headers` overrides the computed union (used by the batch controller, which
    fixes the union before the first batch).
    """
    resolver = resolver or HeaderResolver()
    usable = [t for t in tables if t.width > 0]
    skipped = [t.name for t in tables if t.width == 0]
    for name in skipped:
        logger.debug("table=%s has no columns, skipped", name)
    union = list(headers) if headers is not None else union_headers(usable, resolver)
    rows: list[list[Any]] = []
    for table in usable:
        projected = project_table(table, union, resolver, skip_empty_rows=skip_empty_rows)
        logger.debug("table=%s projected_rows=%d", table.name, len(projected))
        rows.extend(projected)
    return UnionResult(
        headers=union,
        rows=rows,
        source_tables=[t.name for t in usable],
        skipped_tables=skipped,
    )


def column_matrix(tables: Sequence[Table], name: str = "All_Sheet_Columns") -> Table:
    """One row per non-empty table: [table name, header1, header2, ...]."""
    rows = [[t.name, *t.columns] for t in tables if t.width > 0]
    width = max((len(r) for r in rows), default=1)
    columns = ["Sheet Name"] + [f"Column {i}" for i in range(1, width)]
    return Table(name=name, columns=columns, rows=rows)

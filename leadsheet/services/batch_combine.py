from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from datetime import UTC, datetime

from ..models.checkpoint import BatchCheckpoint
from ..models.processing_result import BatchResult
from ..models.table import Table
from ..store.base import TableStore
from .header_union import HeaderResolver, union_headers, union_tables

"""Batch checkpoint controller: combine many tables a few at a time.

Each invocation processes sources[cursor:cursor + batch_size] and appends the
projected rows to the output table. The first invocation (cursor == 0) scans
every source for headers and rewrites the output table with the full union,
so later batches only ever append.

Delivery is at-least-once: if the process dies after the append but before
the caller persists the returned checkpoint, the next run repeats that batch.
Run the merge dedup over the output when exactness matters.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "eligible_sources",
    "run_batch",
    "format_duration",
]


def eligible_sources(
    table_names: Iterable[str],
    *,
    excluded_names: Iterable[str] = (),
    excluded_markers: Sequence[str] = (),
    output_table: str | None = None,
) -> list[str]:
    """Source tables in store order minus exclusions.

    A table is excluded when its name is listed, when it contains any marker
    (case-insensitive substring), or when it is the output table itself.
    """
    excluded = set(excluded_names)
    if output_table:
        excluded.add(output_table)
    markers = [m.lower() for m in excluded_markers if m]
    out: list[str] = []
    for name in table_names:
        if name in excluded:
            continue
        lowered = name.lower()
        if any(m in lowered for m in markers):
            continue
        out.append(name)
    return out


def format_duration(seconds: float) -> str:
    """'2 mins 5 secs', '1 min', '0 secs'."""
    total = max(0, int(seconds))
    minutes, secs = divmod(total, 60)
    parts: list[str] = []
    if minutes > 0:
        parts.append(f"{minutes} min{'s' if minutes > 1 else ''}")
    if secs > 0 or minutes == 0:
        parts.append(f"{secs} sec{'s' if secs != 1 else ''}")
    return " ".join(parts)


def run_batch(
    store: TableStore,
    sources: Sequence[str],
    batch_size: int,
    checkpoint: BatchCheckpoint,
    *,
    output_table: str = "CombinedData",
    resolver: HeaderResolver | None = None,
    now: Callable[[], datetime] | None = None,
) -> tuple[BatchCheckpoint, bool, BatchResult]:
    """One invocation of the batch combine.

    Returns (updated checkpoint, is_done, result). Persisting or deleting the
    checkpoint is the caller's job.
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be >= 1, got {batch_size}")
    clock = now or (lambda: datetime.now(UTC))
    resolver = resolver or HeaderResolver()

    cursor = min(checkpoint.cursor, len(sources))
    end = min(cursor + batch_size, len(sources))
    batch = list(sources[cursor:end])
    loaded: dict[str, Table] = {}

    if checkpoint.is_fresh:
        for name in sources:
            loaded[name] = store.read_table(name)
        headers = union_headers([loaded[n] for n in sources], resolver)
        store.write_table(output_table, Table(name=output_table, columns=headers))
        checkpoint = BatchCheckpoint(all_headers=tuple(headers), started_at=clock())
        logger.info("batch start sources=%d columns=%d", len(sources), len(headers))
    elif not checkpoint.all_headers:
        # 途中再開でヘッダ情報が欠落: 既存出力のヘッダを優先
        if store.table_exists(output_table):
            headers = store.read_table(output_table).columns
        else:
            headers = union_headers([store.read_table(n) for n in sources], resolver)
            store.write_table(output_table, Table(name=output_table, columns=headers))
        checkpoint = BatchCheckpoint(
            all_headers=tuple(headers),
            cursor=cursor,
            rows_combined=checkpoint.rows_combined,
            started_at=checkpoint.started_at,
        )
        logger.warning("checkpoint had no headers, resumed with %d columns", len(headers))
    elif not store.table_exists(output_table):
        store.write_table(output_table, Table(name=output_table, columns=list(checkpoint.all_headers)))

    tables = [loaded[name] if name in loaded else store.read_table(name) for name in batch]
    union = union_tables(tables, resolver, skip_empty_rows=True, headers=checkpoint.all_headers)
    if union.rows:
        store.append_rows(output_table, union.rows)
    logger.info("batch tables=%s appended_rows=%d", batch, len(union.rows))

    checkpoint = checkpoint.advance(end, len(union.rows))
    is_done = end >= len(sources)

    elapsed = None
    if is_done and checkpoint.started_at is not None:
        elapsed = (clock() - checkpoint.started_at).total_seconds()

    result = BatchResult(
        processed_tables=list(sources[:end]),
        pending_tables=list(sources[end:]),
        batch_tables=batch,
        appended_rows=len(union.rows),
        rows_combined=checkpoint.rows_combined,
        cursor=end,
        total_sources=len(sources),
        is_done=is_done,
        started_at=checkpoint.started_at,
        elapsed_seconds=elapsed,
    )
    return checkpoint, is_done, result

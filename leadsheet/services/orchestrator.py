from __future__ import annotations

import logging
import time
import warnings
from collections.abc import Sequence
from pathlib import Path
from typing import Protocol

from ..errors import ConfigurationError, IncompleteDataWarning, MissingSourceError, StoreError
from ..logging.change_log import ChangeLogBuffer
from ..models.cell_change import CellChange
from ..models.checkpoint import CHECKPOINT_KEYS, BatchCheckpoint
from ..models.config_models import AppConfig, MergeConfig, MergeSource, WriteMode
from ..models.processing_result import (
    AutofillResult,
    BatchResult,
    ExtractGeoResult,
    GeoResult,
    MasterMappingResult,
    MergeResult,
    MissingDetailsResult,
)
from ..models.table import Table, cell_text
from ..store import open_store
from ..store.base import TableStore
from ..store.kv import KeyValueStore
from .batch_combine import eligible_sources, format_duration, run_batch
from .dedup import deduplicate, filter_new_keys, resolve_key_column
from .geo_mapping import (
    MISSING_COUNTRY_COLOR,
    build_master_mapping,
    extract_geo_lookup,
    normalize_regions,
)
from .geo_resolution import GeoIndex, missing_keys_from_table, resolve_table
from .header_union import HeaderResolver, column_matrix, project_row, union_tables
from .lead_checks import autofill_by_key, missing_details_report
from .notifications import LoggingNotifier
from .progress import ProgressTracker

"""Command orchestration.

Each run_* function reads what it needs from the store, resolves every
required column, runs the engine and only then writes. Column or table
errors therefore abort before the first write.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "Notifier",
    "MISSING_NOTE_HEADER",
    "run_merge",
    "run_geo",
    "run_combine_batch",
    "run_master_mapping",
    "run_extract_geo",
    "run_normalize_regions",
    "run_autofill",
    "run_missing_details",
    "run_column_matrix",
    "inspect_tables",
]

MISSING_NOTE_HEADER = "Notes"


class Notifier(Protocol):
    def toast(self, message: str, title: str = "", duration_seconds: float | None = None) -> None: ...

    def alert(self, message: str) -> bool: ...


def _resolver(merge: MergeConfig) -> HeaderResolver:
    return HeaderResolver(
        merge.column_aliases,
        case_sensitive=merge.case_sensitive_headers,
        canonical_only=merge.canonical_only,
    )


def _read_tables(store: TableStore, names: Sequence[str], description: str) -> list[Table]:
    tables: list[Table] = []
    with ProgressTracker(len(names), description=description) as progress:
        for name in names:
            progress.start_table(name)
            table = store.read_table(name)
            tables.append(table)
            progress.set_postfix(rows=len(table))
            progress.finish_table()
    return tables


def _read_merge_sources(store: TableStore, sources: Sequence[MergeSource]) -> list[Table]:
    """Read configured merge sources. Every workbook and table is checked before the first read."""
    stores: dict[str, TableStore] = {}
    for src in sources:
        if src.workbook is None or src.workbook in stores:
            continue
        if not Path(src.workbook).exists():
            raise StoreError(f"source workbook not found: {src.workbook}")
        stores[src.workbook] = open_store(src.workbook)

    resolved: list[tuple[MergeSource, TableStore]] = []
    for src in sources:
        source_store = stores[src.workbook] if src.workbook else store
        if not source_store.table_exists(src.table):
            raise MissingSourceError(src.table, workbook=src.workbook)
        resolved.append((src, source_store))

    tables: list[Table] = []
    with ProgressTracker(len(resolved), description="Merging sources") as progress:
        for src, source_store in resolved:
            progress.start_table(src.label)
            table = source_store.read_table(src.table).copy(name=src.label)
            tables.append(table)
            progress.set_postfix(rows=len(table))
            progress.finish_table()
    return tables


def run_merge(cfg: AppConfig, store: TableStore, notifier: Notifier | None = None) -> MergeResult:
    """Union the source tables, deduplicate and write the output table.

    Sources are `merge.sources` when configured (tables of other workbooks
    included), otherwise every eligible table of `store`.
    """
    notifier = notifier or LoggingNotifier()
    merge = cfg.merge
    start = time.perf_counter()

    if merge.sources:
        notifier.toast(f"merging {len(merge.sources)} configured sources", "merge")
        tables = _read_merge_sources(store, merge.sources)
    else:
        sources = eligible_sources(
            store.list_tables(),
            excluded_names=merge.excluded_table_names,
            excluded_markers=merge.excluded_name_markers,
            output_table=merge.output_table,
        )
        notifier.toast(f"merging {len(sources)} tables", "merge")
        tables = _read_tables(store, sources, "Merging tables")
    resolver = _resolver(merge)
    union = union_tables(tables, resolver, skip_empty_rows=merge.skip_empty_rows)

    rows = union.rows
    removed = 0
    dropped = 0
    key_idx: int | None = None
    if not merge.allow_duplicates:
        try:
            key_idx = resolve_key_column(union.headers, merge.dedup_key)
        except ConfigurationError as e:
            raise ConfigurationError(e.missing_columns, table=merge.output_table) from e
        dedup = deduplicate(rows, union.headers, union.headers[key_idx], merge.blank_key_policy)
        rows, removed, dropped = dedup.kept_rows, dedup.removed_count, dedup.dropped_blank_keys

    skipped_existing = 0
    if merge.write_mode is WriteMode.APPEND and store.table_exists(merge.output_table):
        existing = store.read_table(merge.output_table)
        if existing.width == 0:
            store.write_table(merge.output_table, Table(merge.output_table, union.headers, rows))
            written = len(rows)
        else:
            out_key = existing.find_column(merge.dedup_key, case_sensitive=merge.case_sensitive_headers)
            if out_key is None:
                raise ConfigurationError([merge.dedup_key], table=merge.output_table)
            # 既存出力の列順に合わせて投影
            union_index = {resolver.key(h): i for i, h in enumerate(union.headers)}
            projected = [project_row(r, union_index, [resolver.key(str(c)) for c in existing.columns]) for r in rows]
            fresh, skipped_existing = filter_new_keys(projected, out_key, (r[out_key] for r in existing.rows))
            if fresh:
                store.append_rows(merge.output_table, fresh)
            written = len(fresh)
            existing_keys = {resolver.key(str(c)) for c in existing.columns}
            dropped_columns = [h for h in union.headers if resolver.key(h) not in existing_keys]
            if dropped_columns:
                logger.warning(
                    "output table=%s lacks columns %s; those values were not appended",
                    merge.output_table,
                    dropped_columns,
                )
    else:
        store.write_table(merge.output_table, Table(merge.output_table, union.headers, rows))
        written = len(rows)

    elapsed = time.perf_counter() - start
    notifier.alert(
        f"merge completed\n"
        f"rows written: {written}\n"
        f"duplicates removed: {removed}\n"
        f"columns merged: {len(union.headers)}"
    )
    return MergeResult(
        output_table=merge.output_table,
        source_tables=union.source_tables,
        total_columns=len(union.headers),
        combined_rows=len(union.rows),
        removed_duplicates=removed,
        dropped_blank_keys=dropped,
        written_rows=written,
        skipped_existing=skipped_existing,
        elapsed_seconds=elapsed,
    )


def run_geo(
    cfg: AppConfig,
    store: TableStore,
    notifier: Notifier | None = None,
    *,
    change_log: ChangeLogBuffer | None = None,
) -> GeoResult:
    """Geo resolution over the lead table, written back in one bulk write."""
    notifier = notifier or LoggingNotifier()
    geo = cfg.geo

    lead = store.read_table(geo.lead_table)
    mappings = [store.read_table(name) for name in geo.mapping_tables]
    notifier.toast("geo normalization started", "geo")

    index = GeoIndex.build(mappings, geo.columns)
    known: set[str] = set()
    if geo.track_missing and not geo.clear_missing_before_append and store.table_exists(geo.missing_table):
        known = missing_keys_from_table(store.read_table(geo.missing_table))
    result = resolve_table(lead, index, geo.columns, gate=geo.swap_gate, known_missing_keys=known)

    store.write_table(geo.lead_table, result.table)
    if geo.highlight_changes and result.changed_cells:
        store.set_backgrounds(geo.lead_table, result.changed_cells, geo.highlight_color)

    if geo.track_missing and result.missing_entries:
        _write_missing(store, cfg, [e.as_row() for e in result.missing_entries])

    if result.rows_flagged:
        warnings.warn(
            f"{result.rows_flagged} rows still lack country or region"
            f" ({len(result.missing_entries)} new missing entries)",
            IncompleteDataWarning,
            stacklevel=2,
        )

    if geo.change_log or change_log is not None:
        buffer = change_log or ChangeLogBuffer()
        for r, c in result.changed_cells:
            buffer.append(
                CellChange.create(
                    table=geo.lead_table,
                    row=r + 2,
                    column=lead.columns[c],
                    old_value=lead.rows[r][c],
                    new_value=result.table.rows[r][c],
                    step=result.cell_steps.get((r, c), ""),
                )
            )
        path = buffer.flush()
        if path is not None:
            logger.info("change log written: %s", path)

    notifier.alert(
        f"geo normalization done\n"
        f"rows changed: {result.rows_changed}\n"
        f"swaps applied: {result.rows_swapped}\n"
        f"rows still missing country or region: {result.rows_flagged}\n"
        f"missing rows logged: {len(result.missing_entries)}"
    )
    return result


def _write_missing(store: TableStore, cfg: AppConfig, rows: list[list[str]]) -> None:
    geo = cfg.geo
    if geo.clear_missing_before_append or not store.table_exists(geo.missing_table):
        store.write_table(
            geo.missing_table,
            Table(geo.missing_table, [*geo.columns.as_list(), MISSING_NOTE_HEADER], rows),
        )
        return
    existing = store.read_table(geo.missing_table)
    if existing.width == 0:
        store.write_table(
            geo.missing_table,
            Table(geo.missing_table, [*geo.columns.as_list(), MISSING_NOTE_HEADER], rows),
        )
    else:
        store.append_rows(geo.missing_table, rows)


def run_combine_batch(
    cfg: AppConfig,
    store: TableStore,
    kv: KeyValueStore,
    notifier: Notifier | None = None,
) -> BatchResult:
    """One batch of the incremental combine. The checkpoint lives in `kv`."""
    notifier = notifier or LoggingNotifier()
    batch = cfg.batch

    sources = eligible_sources(
        store.list_tables(),
        excluded_names=batch.excluded_table_names,
        excluded_markers=batch.excluded_name_markers,
        output_table=batch.output_table,
    )
    checkpoint = BatchCheckpoint.from_properties(kv.get_many(CHECKPOINT_KEYS))
    if checkpoint.cursor > len(sources):
        logger.warning(
            "checkpoint cursor=%d beyond %d sources, clamped",
            checkpoint.cursor,
            len(sources),
        )
    notifier.toast("batch combining data", "combine-batch")

    checkpoint, is_done, result = run_batch(
        store,
        sources,
        batch.batch_size,
        checkpoint,
        output_table=batch.output_table,
    )

    if is_done:
        kv.delete_many(CHECKPOINT_KEYS)
        notifier.alert(
            "all batches processed\n"
            f"time taken: {format_duration(result.elapsed_seconds or 0)}\n"
            f"rows combined: {result.rows_combined}"
        )
    else:
        kv.set_many(checkpoint.to_properties())
        lines = [
            f"processed tables: {result.cursor - len(result.batch_tables)} to {result.cursor - 1}",
            "run combine-batch again to continue",
            f"rows combined so far: {result.rows_combined}",
            "processed:",
            *(f"  {name}" for name in result.processed_tables),
            "pending:",
            *(f"  {name}" for name in result.pending_tables),
        ]
        notifier.alert("\n".join(lines))
    return result


def run_master_mapping(cfg: AppConfig, store: TableStore, notifier: Notifier | None = None) -> MasterMappingResult:
    notifier = notifier or LoggingNotifier()
    mm = cfg.master_mapping
    tables = {s.table: store.read_table(s.table) for s in mm.sources if store.table_exists(s.table)}
    table, used, skipped = build_master_mapping(
        tables,
        mm.sources,
        output_table=mm.output_table,
        columns=cfg.geo.columns,
        unknown_region=mm.unknown_region,
    )
    store.write_table(mm.output_table, table)
    notifier.alert(f"{mm.output_table} created with {len(table)} unique mappings")
    return MasterMappingResult(
        output_table=mm.output_table,
        records=len(table),
        source_tables=used,
        skipped_sources=skipped,
    )


def run_extract_geo(
    cfg: AppConfig,
    store: TableStore,
    notifier: Notifier | None = None,
    *,
    output_table: str = "Geo_LookupData",
) -> ExtractGeoResult:
    notifier = notifier or LoggingNotifier()
    lead = store.read_table(cfg.geo.lead_table)
    table, missing_rows = extract_geo_lookup(
        lead,
        cfg.geo.columns,
        cfg.country_regions,
        output_table=output_table,
        unknown_region=cfg.master_mapping.unknown_region,
    )
    store.write_table(output_table, table)
    if missing_rows:
        cells = [(r, c) for r in missing_rows for c in range(table.width)]
        store.set_backgrounds(output_table, cells, MISSING_COUNTRY_COLOR)
    notifier.alert(
        f"{output_table} ready with {len(table)} unique rows\n"
        f"{len(missing_rows)} rows have missing country"
    )
    return ExtractGeoResult(output_table=output_table, records=len(table), missing_country=len(missing_rows))


def run_normalize_regions(cfg: AppConfig, store: TableStore, notifier: Notifier | None = None) -> int:
    """Returns the number of region cells rewritten."""
    notifier = notifier or LoggingNotifier()
    lead = store.read_table(cfg.geo.lead_table)
    table, changed = normalize_regions(lead, cfg.geo.columns.region, cfg.region_aliases)
    if changed:
        store.write_table(cfg.geo.lead_table, table)
    notifier.alert(f"region values normalized in {cfg.geo.lead_table}: {len(changed)} updated")
    return len(changed)


def run_autofill(cfg: AppConfig, store: TableStore, notifier: Notifier | None = None) -> AutofillResult:
    """Fill blank values from rows sharing the same key and highlight the filled cells."""
    notifier = notifier or LoggingNotifier()
    af = cfg.autofill
    lead = store.read_table(af.table)
    notifier.toast("auto-filling missing values by key", "autofill")
    table, filled = autofill_by_key(lead, af.key_column, af.value_column)
    if filled:
        store.write_table(af.table, table)
        store.set_backgrounds(af.table, filled, af.highlight_color)
    notifier.alert(f"auto-filled {len(filled)} missing '{af.value_column}' values by '{af.key_column}'")
    return AutofillResult(
        table=af.table,
        key_column=af.key_column,
        value_column=af.value_column,
        filled_cells=filled,
    )


def run_missing_details(cfg: AppConfig, store: TableStore, notifier: Notifier | None = None) -> MissingDetailsResult:
    """Write the missing-details report. The output table is replaced on every run."""
    notifier = notifier or LoggingNotifier()
    md = cfg.missing_details
    lead = store.read_table(md.table)
    report, conflicts = missing_details_report(lead, md.column_sets, md.output_table)
    store.write_table(md.output_table, report)
    notifier.alert(
        f"missing details reported in {md.output_table}\n"
        f"columns: {report.width}\n"
        f"conflicting keys: {conflicts}"
    )
    return MissingDetailsResult(
        output_table=md.output_table,
        columns=report.width,
        depth=len(report),
        conflicts=conflicts,
    )


def run_column_matrix(
    cfg: AppConfig,
    store: TableStore,
    *,
    output_table: str = "All_Sheet_Columns",
) -> Table:
    """Write one row per eligible table listing its headers."""
    names = eligible_sources(
        store.list_tables(),
        excluded_names=cfg.merge.excluded_table_names,
        excluded_markers=cfg.merge.excluded_name_markers,
        output_table=output_table,
    )
    matrix = column_matrix(_read_tables(store, names, "Reading headers"), name=output_table)
    store.write_table(output_table, matrix)
    return matrix


def inspect_tables(store: TableStore, *, sample_rows: int = 3) -> list[str]:
    """Human readable lines: each table's columns and first rows."""
    lines: list[str] = []
    for name in store.list_tables():
        table = store.read_table(name)
        lines.append(f"TABLE: {name} rows={len(table)} cols={table.columns}")
        for row in table.rows[:sample_rows]:
            lines.append(f"  {[cell_text(v) for v in row]}")
    return lines

from __future__ import annotations

from ..models.processing_result import (
    AutofillResult,
    BatchResult,
    ExtractGeoResult,
    GeoResult,
    MasterMappingResult,
    MergeResult,
    MissingDetailsResult,
)

"""SUMMARY line rendering.

Every command ends with exactly one line of the form

    SUMMARY command=<name> key=value key=value ...

Values never contain spaces; table lists are comma-joined.
"""

__all__ = [
    "format_seconds",
    "render_summary",
    "render_merge_summary",
    "render_geo_summary",
    "render_batch_summary",
    "render_master_mapping_summary",
    "render_extract_geo_summary",
    "render_autofill_summary",
    "render_missing_details_summary",
]


def format_seconds(value: float | None) -> str:
    """Integral values without decimals, others with at most 3, never scientific."""
    if value is None:
        return "-"
    if value == int(value):
        return str(int(value))
    text = f"{value:.3f}".rstrip("0").rstrip(".")
    return text or "0"


def render_summary(command: str, **fields: object) -> str:
    parts = [f"SUMMARY command={command}"]
    for key, value in fields.items():
        text = str(value).replace(" ", "_")
        parts.append(f"{key}={text}")
    return " ".join(parts)


def render_merge_summary(result: MergeResult) -> str:
    """SUMMARY command=merge output=X tables=N columns=N rows=N duplicates_removed=N
    blank_keys_dropped=N written=N skipped_existing=N elapsed_sec=S"""
    return render_summary(
        "merge",
        output=result.output_table,
        tables=len(result.source_tables),
        columns=result.total_columns,
        rows=result.combined_rows,
        duplicates_removed=result.removed_duplicates,
        blank_keys_dropped=result.dropped_blank_keys,
        written=result.written_rows,
        skipped_existing=result.skipped_existing,
        elapsed_sec=format_seconds(result.elapsed_seconds),
    )


def render_geo_summary(result: GeoResult, elapsed_seconds: float) -> str:
    return render_summary(
        "geo",
        table=result.table.name,
        rows=len(result.table.rows),
        rows_changed=result.rows_changed,
        rows_swapped=result.rows_swapped,
        cells_changed=len(result.changed_cells),
        complete=result.rows_complete,
        missing=result.rows_flagged,
        missing_logged=len(result.missing_entries),
        elapsed_sec=format_seconds(elapsed_seconds),
    )


def render_batch_summary(result: BatchResult) -> str:
    return render_summary(
        "combine-batch",
        status="done" if result.is_done else "pending",
        cursor=f"{result.cursor}/{result.total_sources}",
        batch_tables=len(result.batch_tables),
        appended_rows=result.appended_rows,
        rows_combined=result.rows_combined,
        pending_tables=len(result.pending_tables),
        elapsed_sec=format_seconds(result.elapsed_seconds),
    )


def render_master_mapping_summary(result: MasterMappingResult) -> str:
    return render_summary(
        "master-mapping",
        output=result.output_table,
        records=result.records,
        sources=len(result.source_tables),
        skipped_sources=len(result.skipped_sources),
    )


def render_extract_geo_summary(result: ExtractGeoResult) -> str:
    return render_summary(
        "extract-geo",
        output=result.output_table,
        records=result.records,
        missing_country=result.missing_country,
    )


def render_autofill_summary(result: AutofillResult) -> str:
    return render_summary(
        "autofill",
        table=result.table,
        key=result.key_column,
        column=result.value_column,
        filled=len(result.filled_cells),
    )


def render_missing_details_summary(result: MissingDetailsResult) -> str:
    return render_summary(
        "missing-details",
        output=result.output_table,
        columns=result.columns,
        rows=result.depth,
        conflicts=result.conflicts,
    )

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any

from ..errors import ConfigurationError
from ..models.config_models import BlankKeyPolicy
from ..models.processing_result import DedupResult
from ..models.table import cell_text, count_non_blank

"""Deduplication engine.

Rows sharing a normalized key (trimmed, lowercased) collapse to the most
complete one: the row with the most non-blank cells. Ties keep the row seen
first. The kept row takes the position of the first row of its group.

Blank keys are never deduplicated; BlankKeyPolicy decides whether such rows
pass through (KEEP) or are excluded (DROP).
"""

__all__ = [
    "normalize_key",
    "resolve_key_column",
    "deduplicate",
    "filter_new_keys",
]


def normalize_key(value: Any) -> str:
    return cell_text(value).lower()


def resolve_key_column(headers: Sequence[str], key_column: str) -> int:
    """Position of `key_column` in `headers`.

    Exact match wins; otherwise a single case-insensitive match is accepted.
    Zero or several candidates raise ConfigurationError.
    """
    exact = [i for i, h in enumerate(headers) if str(h).strip() == key_column.strip()]
    if len(exact) == 1:
        return exact[0]
    folded = [i for i, h in enumerate(headers) if str(h).strip().lower() == key_column.strip().lower()]
    if len(folded) == 1:
        return folded[0]
    if not folded:
        raise ConfigurationError([key_column])
    raise ConfigurationError(
        [f"{key_column} (ambiguous: {[headers[i] for i in folded]})"]
    )


def deduplicate(
    rows: Sequence[Sequence[Any]],
    headers: Sequence[str],
    key_column: str,
    policy: BlankKeyPolicy = BlankKeyPolicy.KEEP,
) -> DedupResult:
    """Collapse rows sharing `key_column` to their most complete member.

    removed_count counts every row of a group that is not kept (displaced or
    rejected). Blank-key rows dropped under DROP are counted separately.
    """
    key_idx = resolve_key_column(headers, key_column)

    slots: list[list[Any]] = []
    scores: list[int] = []
    slot_by_key: dict[str, int] = {}
    removed = 0
    dropped_blank = 0

    for row in rows:
        key = normalize_key(row[key_idx]) if key_idx < len(row) else ""
        if not key:
            if policy is BlankKeyPolicy.DROP:
                dropped_blank += 1
                continue
            slots.append(list(row))
            scores.append(-1)  # 空キー行は比較対象外
            continue

        score = count_non_blank(row)
        slot = slot_by_key.get(key)
        if slot is None:
            slot_by_key[key] = len(slots)
            slots.append(list(row))
            scores.append(score)
            continue

        removed += 1
        if score > scores[slot]:
            slots[slot] = list(row)
            scores[slot] = score

    return DedupResult(kept_rows=slots, removed_count=removed, dropped_blank_keys=dropped_blank)


def filter_new_keys(
    rows: Sequence[Sequence[Any]],
    key_idx: int,
    existing_keys: Iterable[Any],
) -> tuple[list[list[Any]], int]:
    """Rows whose key is not already present in `existing_keys`.

    Blank-key rows always pass. Returns (rows to append, skipped count).
    """
    existing = {normalize_key(k) for k in existing_keys}
    existing.discard("")
    kept: list[list[Any]] = []
    skipped = 0
    for row in rows:
        key = normalize_key(row[key_idx])
        if key and key in existing:
            skipped += 1
            continue
        kept.append(list(row))
    return kept, skipped

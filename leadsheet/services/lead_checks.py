from __future__ import annotations

import logging
from collections.abc import Sequence

from ..models.config_models import ColumnSet
from ..models.table import Table, cell_text

"""Quality checks over a cleaned lead table.

autofill_by_key(): fill blank values from other rows sharing the same key
  (e.g. Company Country from Company City). The first non-blank value seen
  for a key wins; keys compare trimmed and case-sensitive.
missing_details_report(): one column per finding, listing the distinct values
  that lack a partner value, plus keys mapped to more than one value.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "autofill_by_key",
    "missing_details_report",
]


def autofill_by_key(
    table: Table,
    key_column: str,
    value_column: str,
) -> tuple[Table, list[tuple[int, int]]]:
    """Returns a new table and the (row, column) positions that were filled."""
    idx = table.require_columns([key_column, value_column])
    k, v = idx[key_column], idx[value_column]

    lookup: dict[str, str] = {}
    for row in table.rows:
        key, value = cell_text(row[k]), cell_text(row[v])
        if key and value:
            lookup.setdefault(key, value)

    out = table.copy()
    filled: list[tuple[int, int]] = []
    for r, row in enumerate(out.rows):
        key = cell_text(row[k])
        if key and not cell_text(row[v]) and key in lookup:
            row[v] = lookup[key]
            filled.append((r, v))
    logger.debug("table=%s keys=%d filled=%d", table.name, len(lookup), len(filled))
    return out, filled


def _check_set(table: Table, column_set: ColumnSet) -> tuple[dict[str, list[str]], list[str]]:
    names = [column_set.key, column_set.value]
    if column_set.value2:
        names.append(column_set.value2)
    idx = table.require_columns(names)
    k, v = idx[column_set.key], idx[column_set.value]
    v2 = idx.get(column_set.value2) if column_set.value2 else None

    missing_value: set[str] = set()
    missing_value2: set[str] = set()
    missing_key: set[str] = set()
    missing_key_for_value2: set[str] = set()
    seen: dict[str, set[str]] = {}

    for row in table.rows:
        key, value = cell_text(row[k]), cell_text(row[v])
        value2 = cell_text(row[v2]) if v2 is not None else ""
        if key and not value:
            missing_value.add(key)
        if v2 is not None and key and value and not value2:
            missing_value2.add(f"{key}||{value}")
        if value and not key:
            missing_key.add(value)
        if v2 is not None and value2 and (not key or not value):
            missing_key_for_value2.add(value2)
        if key:
            values = seen.setdefault(key, set())
            if value:
                values.add(value)

    found = {f"{column_set.key} - missing {column_set.value}": sorted(missing_value)}
    if column_set.value2:
        found[f"{column_set.key} + {column_set.value} - missing {column_set.value2}"] = sorted(missing_value2)
    found[f"{column_set.value} - missing {column_set.key}"] = sorted(missing_key)
    if column_set.value2:
        found[f"{column_set.value2} - missing {column_set.key} or {column_set.value}"] = sorted(
            missing_key_for_value2
        )
    conflicts = sorted(key for key, values in seen.items() if len(values) > 1)
    return found, conflicts


def missing_details_report(
    table: Table,
    column_sets: Sequence[ColumnSet],
    output_table: str = "MissingDetails",
) -> tuple[Table, int]:
    """Build the missing-details table and return it with the number of conflicting keys.

    Columns come in configured order: every "missing" column of every set first,
    then one "Conflicting mappings (key)" column per set that has conflicts.
    Each column lists its values sorted; shorter columns are padded with blanks.
    A set naming an absent column raises ConfigurationError.
    """
    found: dict[str, list[str]] = {}
    conflicts: dict[str, list[str]] = {}
    for column_set in column_sets:
        missing, conflicting = _check_set(table, column_set)
        found.update(missing)
        if conflicting:
            conflicts[f"Conflicting mappings ({column_set.key})"] = conflicting

    lists = {**found, **conflicts}
    depth = max((len(values) for values in lists.values()), default=0)
    rows = [
        [values[i] if i < len(values) else "" for values in lists.values()]
        for i in range(depth)
    ]
    n_conflicts = sum(len(values) for values in conflicts.values())
    logger.debug("table=%s columns=%d depth=%d conflicts=%d", table.name, len(lists), depth, n_conflicts)
    return Table(name=output_table, columns=list(lists), rows=rows), n_conflicts

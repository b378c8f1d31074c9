from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from leadsheet.models.checkpoint import BatchCheckpoint
from leadsheet.models.table import Table
from leadsheet.services.batch_combine import eligible_sources, format_duration, run_batch
from leadsheet.store import MemoryTableStore


def _sources(n: int) -> list[Table]:
    tables = []
    for i in range(n):
        columns = ["Email", f"Extra{i}"] if i == n - 1 else ["Email"]
        rows = [[f"user{i}@x", "late"]] if i == n - 1 else [[f"user{i}@x"], [""]]
        tables.append(Table(f"S{i}", columns, rows))
    return tables


class _Clock:
    def __init__(self) -> None:
        self.now = datetime(2024, 1, 1, 9, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=65)
        return self.now


def test_seven_sources_batch_of_three():
    store = MemoryTableStore(_sources(7))
    names = [f"S{i}" for i in range(7)]
    clock = _Clock()

    cp, done, result = run_batch(store, names, 3, BatchCheckpoint(), now=clock)
    assert (cp.cursor, done) == (3, False)
    assert result.batch_tables == ["S0", "S1", "S2"]
    assert result.pending_tables == ["S3", "S4", "S5", "S6"]
    # header union covers the last source although it is not in this batch
    assert cp.all_headers == ("Email", "Extra6")
    assert store.read_table("CombinedData").columns == ["Email", "Extra6"]

    cp, done, result = run_batch(store, names, 3, cp, now=clock)
    assert (cp.cursor, done) == (6, False)
    assert result.processed_tables == names[:6]

    cp, done, result = run_batch(store, names, 3, cp, now=clock)
    assert (cp.cursor, done) == (7, True)
    assert result.batch_tables == ["S6"]
    assert result.rows_combined == 7
    assert result.elapsed_seconds == 65

    combined = store.read_table("CombinedData")
    assert len(combined) == 7
    assert combined.rows[0] == ["user0@x", ""]
    assert combined.rows[-1] == ["user6@x", "late"]


def test_resume_uses_stored_headers_and_appends():
    store = MemoryTableStore(_sources(3))
    store.write_table("CombinedData", Table("CombinedData", ["Email", "Extra2"], [["user0@x", ""]]))
    checkpoint = BatchCheckpoint(all_headers=("Email", "Extra2"), cursor=1, rows_combined=1)

    cp, done, result = run_batch(store, ["S0", "S1", "S2"], 5, checkpoint)
    assert done is True
    assert cp.rows_combined == 3
    assert [r[0] for r in store.read_table("CombinedData").rows] == ["user0@x", "user1@x", "user2@x"]
    assert result.appended_rows == 2


def test_resume_without_headers_reads_them_from_the_output():
    store = MemoryTableStore(_sources(2))
    store.write_table("CombinedData", Table("CombinedData", ["Email", "Extra1"], [["user0@x", ""]]))
    cp, done, _ = run_batch(store, ["S0", "S1"], 1, BatchCheckpoint(cursor=1, rows_combined=1))
    assert cp.all_headers == ("Email", "Extra1")
    assert done is True
    assert len(store.read_table("CombinedData")) == 2


def test_cursor_beyond_sources_is_clamped():
    store = MemoryTableStore(_sources(2))
    store.write_table("CombinedData", Table("CombinedData", ["Email", "Extra1"], []))
    cp, done, result = run_batch(store, ["S0", "S1"], 3, BatchCheckpoint(all_headers=("Email",), cursor=9))
    assert done is True
    assert cp.cursor == 2
    assert result.appended_rows == 0


def test_no_sources_is_done_immediately():
    store = MemoryTableStore()
    cp, done, result = run_batch(store, [], 3, BatchCheckpoint())
    assert done is True
    assert result.total_sources == 0
    assert store.table_exists("CombinedData")


def test_batch_size_must_be_positive():
    with pytest.raises(ValueError):
        run_batch(MemoryTableStore(), [], 0, BatchCheckpoint())


def test_eligible_sources_exclusions():
    names = ["Leads", "Old ❌ Leads", "CombinedData", "Analytics", "EU"]
    assert eligible_sources(
        names,
        excluded_names=["Analytics"],
        excluded_markers=["❌"],
        output_table="CombinedData",
    ) == ["Leads", "EU"]
    assert eligible_sources(["Leads_OLD", "Fresh"], excluded_markers=["old"]) == ["Fresh"]


@pytest.mark.parametrize(
    "seconds, expected",
    [
        (0, "0 secs"),
        (1, "1 sec"),
        (59.9, "59 secs"),
        (60, "1 min"),
        (61, "1 min 1 sec"),
        (125, "2 mins 5 secs"),
    ],
)
def test_format_duration(seconds, expected):
    assert format_duration(seconds) == expected

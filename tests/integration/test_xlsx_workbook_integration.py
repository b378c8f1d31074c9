from __future__ import annotations

from pathlib import Path

import pytest
from openpyxl import Workbook, load_workbook

from leadsheet.cli import main as cli_main
from leadsheet.store import CsvDirectoryStore

"""End-to-end CLI runs against a real .xlsx workbook (openpyxl)."""

GEO = ["Company City", "Company State", "Company Country", "Region"]


def _make_workbook(path: Path, sheets: dict[str, list[list[object]]]) -> Path:
    wb = Workbook()
    wb.remove(wb.active)
    for name, rows in sheets.items():
        ws = wb.create_sheet(name)
        for row in rows:
            ws.append(row)
    wb.save(path)
    return path


@pytest.fixture
def lead_workbook(temp_workdir: Path, write_config) -> Path:
    return _make_workbook(
        temp_workdir / "data" / "leads.xlsx",
        {
            "EU Leads": [
                ["Email", *GEO],
                ["a@x.com", "paris", None, "France", None],
                ["b@x.com", "India", None, "Mumbai", None],
            ],
            "Old ❌": [["Email"], ["old@x.com"]],
            "Master_GeoMapping": [
                GEO,
                ["Paris", None, "France", "Europe"],
                ["Mumbai", "Maharashtra", "India", "Asia-Pacific"],
            ],
        },
    )


def _summary(out: str) -> str:
    lines = [line for line in out.splitlines() if line.startswith("SUMMARY ")]
    assert len(lines) == 1, out
    return lines[0]


def test_merge_and_geo_on_workbook(lead_workbook: Path, capsys):
    wb_arg = ["--workbook", str(lead_workbook)]

    assert cli_main([*wb_arg, "merge"]) == 0
    line = _summary(capsys.readouterr().out)
    assert "tables=1" in line
    assert "written=2" in line

    wb = load_workbook(lead_workbook)
    assert wb.sheetnames == ["EU Leads", "Old ❌", "Master_GeoMapping", "Lead_CleanedData"]

    assert cli_main([*wb_arg, "geo"]) == 0
    line = _summary(capsys.readouterr().out)
    assert "rows_swapped=1" in line
    assert "missing=0" in line

    wb = load_workbook(lead_workbook)
    ws = wb["Lead_CleanedData"]
    values = [[c.value for c in row] for row in ws.iter_rows(min_row=2, max_row=3)]
    assert values[0][1] == "Paris"
    assert values[0][4] == "Europe"
    assert values[1][1:] == ["Mumbai", "Maharashtra", "India", "Asia-Pacific"]

    # 変更セルのみ塗り
    assert ws["B2"].fill.fill_type == "solid"
    assert ws["B2"].fill.fgColor.rgb.endswith("FF9195")
    assert ws["E2"].fill.fill_type == "solid"
    assert ws["A2"].fill.fill_type is None
    assert ws["D2"].fill.fill_type is None
    assert all(ws.cell(row=3, column=c).fill.fill_type == "solid" for c in range(2, 6))
    assert "Missing_GeoMapping" not in wb.sheetnames


def test_geo_missing_mapping_sheet_leaves_workbook_untouched(lead_workbook: Path, capsys):
    wb_arg = ["--workbook", str(lead_workbook)]
    assert cli_main([*wb_arg, "merge"]) == 0
    wb = load_workbook(lead_workbook)
    del wb["Master_GeoMapping"]
    wb.save(lead_workbook)
    before = lead_workbook.read_bytes()
    capsys.readouterr()

    assert cli_main([*wb_arg, "geo"]) == 1
    assert "ERROR geo: table not found: Master_GeoMapping" in capsys.readouterr().out
    assert lead_workbook.read_bytes() == before


SOURCES_CONFIG = """workbook: ./data
merge:
  sources:
    - table: EU Leads
      workbook: ./data/leads.xlsx
    - table: Leads
      workbook: ./partner
"""


def test_merge_from_workbook_and_csv_sources(lead_workbook: Path, capsys):
    root = lead_workbook.parent.parent
    (root / "config" / "leadsheet.yml").write_text(SOURCES_CONFIG, encoding="utf-8")
    (root / "partner").mkdir()
    (root / "partner" / "Leads.csv").write_text("Email,Company City\nc@x.com,Austin\nA@x.com,\n", encoding="utf-8")
    before = lead_workbook.read_bytes()

    assert cli_main(["merge"]) == 0
    line = _summary(capsys.readouterr().out)
    assert "tables=2" in line
    assert "duplicates_removed=1" in line
    assert "written=3" in line

    lead = CsvDirectoryStore(root / "data").read_table("Lead_CleanedData")
    assert lead.columns == ["Email", *GEO]
    assert [r[0] for r in lead.rows] == ["a@x.com", "b@x.com", "c@x.com"]
    # ソースのブックは読むだけ
    assert lead_workbook.read_bytes() == before


def test_merge_source_workbook_missing_table(lead_workbook: Path, capsys):
    root = lead_workbook.parent.parent
    (root / "config" / "leadsheet.yml").write_text(
        "workbook: ./data\nmerge:\n  sources:\n    - table: Nope\n      workbook: ./data/leads.xlsx\n",
        encoding="utf-8",
    )
    assert cli_main(["merge"]) == 1
    assert "ERROR merge: table not found: Nope in workbook './data/leads.xlsx'" in capsys.readouterr().out
    assert not (root / "data" / "Lead_CleanedData.csv").exists()

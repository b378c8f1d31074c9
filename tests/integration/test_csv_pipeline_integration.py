from __future__ import annotations

import json
import re
from pathlib import Path

from leadsheet.cli import main as cli_main
from leadsheet.store import CsvDirectoryStore

"""End-to-end CLI runs over a directory of CSV tables.

merge -> geo -> columns on one data directory, then the batch combine and the
mapping helpers on their own data sets.
"""

GEO = "Company City,Company State,Company Country,Region"


def _csv(data_dir: Path, name: str, text: str) -> None:
    (data_dir / f"{name}.csv").write_text(text, encoding="utf-8")


def _summary(out: str) -> str:
    lines = [line for line in out.splitlines() if line.startswith("SUMMARY ")]
    assert len(lines) == 1, out
    return lines[0]


def _field(line: str, key: str) -> str:
    m = re.search(rf"\b{key}=(\S+)", line)
    assert m, line
    return m.group(1)


def test_merge_then_geo_then_columns(temp_workdir: Path, write_config, capsys):
    data = temp_workdir / "data"
    _csv(data, "EU_Leads", f"Email,{GEO}\na@x.com,paris,,France,\nb@x.com,India,,Mumbai,\n")
    _csv(data, "US_Leads", "Email,Company City,Company Country\nA@x.com,Paris,France\nc@x.com,Atlantis,\n")
    _csv(data, "Master_GeoMapping", f"{GEO}\nParis,,France,Europe\nMumbai,Maharashtra,India,Asia-Pacific\n")

    assert cli_main(["merge"]) == 0
    line = _summary(capsys.readouterr().out)
    assert _field(line, "tables") == "2"
    assert _field(line, "columns") == "5"
    assert _field(line, "rows") == "4"
    assert _field(line, "duplicates_removed") == "1"
    assert _field(line, "written") == "3"

    store = CsvDirectoryStore(data)
    lead = store.read_table("Lead_CleanedData")
    assert lead.columns == ["Email", "Company City", "Company State", "Company Country", "Region"]
    assert [r[0] for r in lead.rows] == ["a@x.com", "b@x.com", "c@x.com"]

    assert cli_main(["geo"]) == 0
    out = capsys.readouterr().out
    line = _summary(out)
    assert _field(line, "rows_changed") == "2"
    assert _field(line, "rows_swapped") == "1"
    assert _field(line, "cells_changed") == "6"
    assert _field(line, "complete") == "2"
    assert _field(line, "missing") == "1"
    assert _field(line, "missing_logged") == "1"
    assert "WARN 1 rows still lack country or region (1 new missing entries)" in out

    lead = store.read_table("Lead_CleanedData")
    assert lead.rows == [
        ["a@x.com", "Paris", "", "France", "Europe"],
        ["b@x.com", "Mumbai", "Maharashtra", "India", "Asia-Pacific"],
        ["c@x.com", "Atlantis", "", "", ""],
    ]
    highlights = json.loads((data / "Lead_CleanedData.highlights.json").read_text(encoding="utf-8"))
    assert set(highlights) == {"0,1", "0,4", "1,1", "1,2", "1,3", "1,4"}
    assert set(highlights.values()) == {"#ff9195"}

    missing = store.read_table("Missing_GeoMapping")
    assert missing.columns == ["Company City", "Company State", "Company Country", "Region", "Notes"]
    assert missing.rows == [["Atlantis", "", "", "", "Missing Country, Missing Region"]]

    # 2 回目は何も変えない
    assert cli_main(["geo"]) == 0
    line = _summary(capsys.readouterr().out)
    assert _field(line, "rows_changed") == "0"
    assert _field(line, "cells_changed") == "0"
    assert not (data / "Lead_CleanedData.highlights.json").exists()
    assert len(store.read_table("Missing_GeoMapping")) == 1

    assert cli_main(["columns"]) == 0
    line = _summary(capsys.readouterr().out)
    assert line == "SUMMARY command=columns output=All_Sheet_Columns tables=3"
    matrix = store.read_table("All_Sheet_Columns")
    assert [r[0] for r in matrix.rows] == ["EU_Leads", "Lead_CleanedData", "US_Leads"]


def test_combine_batch_resumes_across_invocations(temp_workdir: Path, write_config, capsys):
    data = temp_workdir / "data"
    _csv(data, "S1", "Email,Name\n1@x,One\n")
    _csv(data, "S2", "Email,Phone\n2@x,222\n,\n")
    _csv(data, "S3", "Name,Email\nThree,3@x\n")
    _csv(data, "S4", "Email\n4@x\n4b@x\n")
    _csv(data, "S5 ❌", "Email\nskip@x\n")

    codes = []
    lines = []
    for _ in range(2):
        codes.append(cli_main(["combine-batch"]))
        lines.append(_summary(capsys.readouterr().out))
    assert codes == [3, 0]
    assert _field(lines[0], "cursor") == "2/4"
    assert _field(lines[1], "cursor") == "4/4"
    assert _field(lines[1], "status") == "done"
    assert _field(lines[1], "rows_combined") == "5"
    assert not (temp_workdir / ".leadsheet_checkpoint.json").exists()

    combined = CsvDirectoryStore(data).read_table("CombinedData")
    assert combined.columns == ["Email", "Name", "Phone"]
    assert combined.rows == [
        ["1@x", "One", ""],
        ["2@x", "", "222"],
        ["3@x", "Three", ""],
        ["4@x", "", ""],
        ["4b@x", "", ""],
    ]


MAPPING_CONFIG = """workbook: ./data
geo:
  lead_table: Lead_CleanedData
master_mapping:
  output_table: Master_GeoMapping
  sources:
    - table: CityStateCountryRegionMapping
    - table: Geo_LookupData
    - table: CityStateCountryMapping
      region: null
"""


def test_mapping_helpers(temp_workdir: Path, capsys):
    (temp_workdir / "config" / "leadsheet.yml").write_text(MAPPING_CONFIG, encoding="utf-8")
    data = temp_workdir / "data"
    _csv(data, "Lead_CleanedData", f"Email,{GEO}\n1@x,Berlin,,Germany,emea\n2@x,Pune,Maharashtra,,\n1b@x,Berlin,,Germany,EMEA\n")
    _csv(data, "CityStateCountryRegionMapping", f"{GEO}\nBerlin,Berlin,Germany,Europe\n")
    _csv(data, "CityStateCountryMapping", "Company City,Company State,Company Country\nOsaka,Osaka,Japan\n")

    assert cli_main(["extract-geo"]) == 0
    assert _summary(capsys.readouterr().out) == (
        "SUMMARY command=extract-geo output=Geo_LookupData records=2 missing_country=1"
    )
    store = CsvDirectoryStore(data)
    assert store.read_table("Geo_LookupData").rows == [
        ["Berlin", "", "Germany", "Europe"],
        ["Pune", "Maharashtra", "", "Other"],
    ]
    assert store.read_backgrounds("Geo_LookupData") == {(1, c): "#fff2cc" for c in range(4)}

    assert cli_main(["master-mapping"]) == 0
    line = _summary(capsys.readouterr().out)
    assert line == "SUMMARY command=master-mapping output=Master_GeoMapping records=2 sources=3 skipped_sources=0"
    assert store.read_table("Master_GeoMapping").rows == [
        ["Berlin", "Berlin", "Germany", "Europe"],
        ["Osaka", "Osaka", "Japan", "Other"],
    ]

    assert cli_main(["normalize-regions"]) == 0
    line = _summary(capsys.readouterr().out)
    assert _field(line, "updated") == "2"
    assert [r[4] for r in store.read_table("Lead_CleanedData").rows] == ["Europe", "", "Europe"]


def test_inspect_prints_tables(temp_workdir: Path, write_config, capsys):
    _csv(temp_workdir / "data", "Leads", "Email,City\na@x,Paris\nb@x,Rome\n")
    assert cli_main(["inspect", "--rows", "1"]) == 0
    out = capsys.readouterr().out
    assert "TABLE: Leads rows=2 cols=['Email', 'City']" in out
    assert "  ['a@x', 'Paris']" in out
    assert "b@x" not in out
    assert _summary(out) == "SUMMARY command=inspect tables=1"


def test_autofill_then_missing_details(temp_workdir: Path, write_config, capsys):
    data = temp_workdir / "data"
    _csv(
        data,
        "Lead_CleanedData",
        f"Email,{GEO}\n1@x,Austin,Texas,United States,\n2@x,Austin,Texas,,\n3@x,Dallas,Texas,,\n4@x,,,Japan,\n",
    )

    assert cli_main(["autofill"]) == 0
    line = _summary(capsys.readouterr().out)
    assert line == (
        "SUMMARY command=autofill table=Lead_CleanedData key=Company_City column=Company_Country filled=1"
    )
    store = CsvDirectoryStore(data)
    assert [r[3] for r in store.read_table("Lead_CleanedData").rows] == ["United States", "United States", "", "Japan"]
    assert store.read_backgrounds("Lead_CleanedData") == {(1, 3): "#f4cccc"}

    assert cli_main(["missing-details"]) == 0
    line = _summary(capsys.readouterr().out)
    assert line == "SUMMARY command=missing-details output=MissingDetails columns=5 rows=1 conflicts=1"
    report = store.read_table("MissingDetails")
    assert report.rows == [["", "Texas||Dallas", "", "Japan", "Texas"]]

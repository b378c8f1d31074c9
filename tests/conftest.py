# Shared pytest fixtures
from __future__ import annotations

from pathlib import Path

import pytest

from leadsheet.logging.init import reset_logging
from leadsheet.models.table import Table

GEO_HEADERS = ["Company City", "Company State", "Company Country", "Region"]


@pytest.fixture(autouse=True)
def _clean_logging():
    reset_logging()
    yield
    reset_logging()


@pytest.fixture()
def temp_workdir(tmp_path: Path, monkeypatch) -> Path:
    (tmp_path / "config").mkdir()
    (tmp_path / "data").mkdir()
    (tmp_path / "logs").mkdir()
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("LEADSHEET_CONFIG", raising=False)
    return tmp_path


@pytest.fixture()
def sample_config_yaml() -> str:
    return """workbook: ./data
merge:
  output_table: Lead_CleanedData
  excluded_tables: [Master_GeoMapping, Missing_GeoMapping]
  dedup_key: Email
  blank_key_policy: drop
geo:
  lead_table: Lead_CleanedData
  mapping_tables: [Master_GeoMapping]
batch:
  output_table: CombinedData
  batch_size: 2
  checkpoint_file: .leadsheet_checkpoint.json
  excluded_tables: [Lead_CleanedData, Master_GeoMapping, Missing_GeoMapping]
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "leadsheet.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def make_mapping():
    def _make(rows: list[list[str]], name: str = "Master_GeoMapping") -> Table:
        return Table(name=name, columns=list(GEO_HEADERS), rows=rows)

    return _make


@pytest.fixture()
def make_lead():
    """Lead table: Email followed by the four geo columns."""

    def _make(rows: list[list[str]], name: str = "Lead_CleanedData") -> Table:
        return Table(name=name, columns=["Email", *GEO_HEADERS], rows=rows)

    return _make


@pytest.fixture()
def mapping_table(make_mapping) -> Table:
    return make_mapping(
        [
            ["Paris", "", "France", "Europe"],
            ["Mumbai", "Maharashtra", "India", "Asia-Pacific"],
            ["Austin", "Texas", "United States", "North America"],
            ["Toronto", "Ontario", "Canada", ""],
        ]
    )

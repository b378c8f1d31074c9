from __future__ import annotations

from pathlib import Path

import pytest

from leadsheet.config.loader import ConfigError, build_config, load_config
from leadsheet.models.config_models import (
    BlankKeyPolicy,
    ColumnSet,
    HeaderSpec,
    MappingSource,
    MergeSource,
    SwapGate,
    WriteMode,
)


def test_load_config_success(write_config: Path):
    cfg = load_config(write_config)
    assert cfg.workbook == "./data"
    assert cfg.merge.output_table == "Lead_CleanedData"
    assert cfg.merge.excluded_table_names == frozenset({"Master_GeoMapping", "Missing_GeoMapping"})
    assert cfg.merge.blank_key_policy is BlankKeyPolicy.DROP
    assert cfg.batch.batch_size == 2
    assert cfg.geo.mapping_tables == ("Master_GeoMapping",)


def test_defaults_follow_the_lead_workbooks():
    cfg = build_config({"workbook": "book.xlsx"})
    assert cfg.merge.dedup_key == "Email"
    assert cfg.merge.excluded_name_markers == ("❌",)
    assert cfg.merge.write_mode is WriteMode.OVERWRITE
    assert cfg.geo.swap_gate is SwapGate.MISPLACED
    assert cfg.geo.highlight_color == "#ff9195"
    assert cfg.geo.missing_table == "Missing_GeoMapping"
    assert cfg.geo.columns.as_list() == ["Company City", "Company State", "Company Country", "Region"]
    assert cfg.batch.output_table == "CombinedData"
    assert cfg.batch.batch_size == 3
    assert cfg.master_mapping.unknown_region == "Other"
    assert cfg.region_aliases["apac"] == "Asia-Pacific"
    assert cfg.country_regions["Germany"] == "Europe"


def test_sections_are_parsed():
    cfg = build_config(
        {
            "workbook": "data",
            "merge": {
                "columns": [{"output": "Email", "aliases": ["E-mail"]}, {"output": "Region"}],
                "canonical_only": True,
                "case_sensitive_headers": False,
                "blank_key_policy": "keep",
                "write_mode": "append",
            },
            "geo": {"swap_gate": "detected", "columns": {"city": "City"}},
            "master_mapping": {"sources": [{"table": "A"}, {"table": "B", "region": None}]},
            "region_aliases": {" EMEA ": "Europe"},
        }
    )
    assert cfg.merge.column_aliases == (HeaderSpec("Email", ("E-mail",)), HeaderSpec("Region", ()))
    assert cfg.merge.canonical_only is True
    assert cfg.merge.case_sensitive_headers is False
    assert cfg.merge.blank_key_policy is BlankKeyPolicy.KEEP
    assert cfg.merge.write_mode is WriteMode.APPEND
    assert cfg.geo.swap_gate is SwapGate.DETECTED
    assert cfg.geo.columns.city == "City"
    assert cfg.geo.columns.state == "Company State"
    assert cfg.master_mapping.sources == (MappingSource("A"), MappingSource("B", region=None))
    assert cfg.region_aliases == {"emea": "Europe"}


def test_merge_sources_and_lead_checks_sections():
    cfg = build_config(
        {
            "workbook": "data",
            "merge": {"sources": [{"table": "Leads", "workbook": "eu.xlsx"}, {"table": "Local"}]},
            "autofill": {"key_column": "City", "value_column": "Country"},
            "missing_details": {"column_sets": [{"key": "City", "value": "Country"}]},
        }
    )
    assert cfg.merge.sources == (MergeSource("Leads", "eu.xlsx"), MergeSource("Local"))
    assert [s.label for s in cfg.merge.sources] == ["eu.xlsx:Leads", "Local"]
    assert cfg.autofill.table == "Lead_CleanedData"
    assert (cfg.autofill.key_column, cfg.autofill.value_column) == ("City", "Country")
    assert cfg.missing_details.column_sets == (ColumnSet("City", "Country"),)
    assert build_config({"workbook": "x"}).merge.sources == ()


def test_missing_file(tmp_path: Path):
    with pytest.raises(ConfigError, match="config file not found"):
        load_config(tmp_path / "nope.yml")


def test_invalid_yaml(tmp_path: Path):
    p = tmp_path / "bad.yml"
    p.write_text("workbook: [unclosed\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="invalid yaml"):
        load_config(p)


def test_top_level_must_be_mapping(tmp_path: Path):
    p = tmp_path / "list.yml"
    p.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="config validation failed"):
        load_config(p)


@pytest.mark.parametrize(
    "data",
    [
        {},
        {"workbook": ""},
        {"workbook": "x", "unknown": 1},
        {"workbook": "x", "merge": {"blank_key_policy": "maybe"}},
        {"workbook": "x", "geo": {"highlight_color": "red"}},
        {"workbook": "x", "geo": {"mapping_tables": []}},
        {"workbook": "x", "batch": {"batch_size": 0}},
        {"workbook": "x", "master_mapping": {"sources": [{"city": "City"}]}},
        {"workbook": "x", "merge": {"sources": [{"workbook": "a.xlsx"}]}},
        {"workbook": "x", "autofill": {"highlight_color": "pink"}},
        {"workbook": "x", "missing_details": {"column_sets": []}},
    ],
)
def test_schema_violations(data):
    with pytest.raises(ConfigError, match="config validation failed"):
        build_config(data)

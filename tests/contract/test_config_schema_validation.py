from __future__ import annotations

import json
from pathlib import Path

import jsonschema
import pytest
import yaml
from jsonschema.exceptions import ValidationError

from leadsheet.config.loader import SCHEMA_PATH, load_config
from leadsheet.services.batch_combine import eligible_sources

"""Config schema contract test: the shipped sample config and schema agree."""

PROJECT_ROOT = Path(__file__).resolve().parents[2]
SAMPLE_CONFIG = PROJECT_ROOT / "config" / "leadsheet.yml"


def _schema() -> dict:
    return json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))


def test_schema_is_valid_draft7():
    jsonschema.Draft7Validator.check_schema(_schema())


def test_sample_config_validates():
    data = yaml.safe_load(SAMPLE_CONFIG.read_text(encoding="utf-8"))
    jsonschema.validate(data, _schema())


def test_sample_config_loads():
    cfg = load_config(SAMPLE_CONFIG)
    assert cfg.merge.output_table == "Lead_CleanedData"
    assert cfg.batch.batch_size == 3
    assert cfg.master_mapping.sources[-1].region is None
    assert cfg.merge.sources == ()
    assert cfg.autofill.highlight_color == "#f4cccc"
    assert cfg.missing_details.column_sets[0].value2 == "Company Country"


@pytest.mark.parametrize(
    "config",
    [
        {"workbook": "x", "merge": {"blank_key_policy": "maybe"}},
        {"workbook": "x", "merge": {"columns": [{"aliases": ["E-mail"]}]}},
        {"workbook": "x", "geo": {"columns": {"town": "City"}}},
        {"workbook": "x", "batch": {"batch_size": "3"}},
        {"workbook": "x", "region_aliases": {"emea": 1}},
    ],
)
def test_schema_rejects(config):
    with pytest.raises(ValidationError):
        jsonschema.validate(config, _schema())


def test_sample_batch_markers_keep_similar_names():
    cfg = load_config(SAMPLE_CONFIG)
    names = ["Golden_Leads", "Holdings", "Leads_old", "Leads ❌", "CombinedData_Copy", "Analytics", "EU Leads"]
    kept = eligible_sources(
        names,
        excluded_names=cfg.batch.excluded_table_names,
        excluded_markers=cfg.batch.excluded_name_markers,
        output_table=cfg.batch.output_table,
    )
    assert kept == ["Golden_Leads", "Holdings", "EU Leads"]

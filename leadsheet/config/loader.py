from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from ..models.config_models import (
    AppConfig,
    AutofillConfig,
    BatchConfig,
    BlankKeyPolicy,
    ColumnSet,
    GeoColumns,
    GeoConfig,
    HeaderSpec,
    MappingSource,
    MasterMappingConfig,
    MergeConfig,
    MergeSource,
    MissingDetailsConfig,
    SwapGate,
    WriteMode,
)
from ..services.geo_mapping import DEFAULT_COUNTRY_REGIONS, DEFAULT_REGION_ALIASES

"""Config loader.

Responsibilities:
- Load the YAML config (config/leadsheet.yml by default)
- Validate it against config_schema.json shipped next to this module
- Apply defaults and build the frozen AppConfig
"""

__all__ = [
    "DEFAULT_CONFIG_PATH",
    "SCHEMA_PATH",
    "ConfigError",
    "load_config",
    "build_config",
]

DEFAULT_CONFIG_PATH = Path("config/leadsheet.yml")
SCHEMA_PATH = Path(__file__).with_name("config_schema.json")


class ConfigError(Exception):
    pass


def _validate_config_schema(data: Any) -> None:
    """Validate raw config data against the JSON schema.

    Raises:
        ConfigError: schema file missing or not JSON, or the data fails validation.
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")
    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"config validation failed: {e.message}") from e


def _merge_section(raw: dict[str, Any]) -> MergeConfig:
    defaults = MergeConfig()
    aliases = tuple(
        HeaderSpec(output=c["output"], aliases=tuple(c.get("aliases", ())))
        for c in raw.get("columns", [])
    )
    sources = tuple(MergeSource(table=s["table"], workbook=s.get("workbook")) for s in raw.get("sources", []))
    return MergeConfig(
        output_table=raw.get("output_table", defaults.output_table),
        sources=sources,
        excluded_table_names=frozenset(raw.get("excluded_tables", defaults.excluded_table_names)),
        excluded_name_markers=tuple(raw.get("excluded_markers", defaults.excluded_name_markers)),
        column_aliases=aliases,
        canonical_only=raw.get("canonical_only", defaults.canonical_only),
        dedup_key=raw.get("dedup_key", defaults.dedup_key),
        allow_duplicates=raw.get("allow_duplicates", defaults.allow_duplicates),
        blank_key_policy=BlankKeyPolicy(raw.get("blank_key_policy", defaults.blank_key_policy.value)),
        case_sensitive_headers=raw.get("case_sensitive_headers", defaults.case_sensitive_headers),
        skip_empty_rows=raw.get("skip_empty_rows", defaults.skip_empty_rows),
        write_mode=WriteMode(raw.get("write_mode", defaults.write_mode.value)),
    )


def _geo_section(raw: dict[str, Any]) -> GeoConfig:
    defaults = GeoConfig()
    cols = raw.get("columns", {})
    return GeoConfig(
        lead_table=raw.get("lead_table", defaults.lead_table),
        mapping_tables=tuple(raw.get("mapping_tables", defaults.mapping_tables)),
        columns=GeoColumns(
            city=cols.get("city", defaults.columns.city),
            state=cols.get("state", defaults.columns.state),
            country=cols.get("country", defaults.columns.country),
            region=cols.get("region", defaults.columns.region),
        ),
        swap_gate=SwapGate(raw.get("swap_gate", defaults.swap_gate.value)),
        highlight_changes=raw.get("highlight_changes", defaults.highlight_changes),
        highlight_color=raw.get("highlight_color", defaults.highlight_color),
        track_missing=raw.get("track_missing", defaults.track_missing),
        missing_table=raw.get("missing_table", defaults.missing_table),
        clear_missing_before_append=raw.get("clear_missing_before_append", defaults.clear_missing_before_append),
        change_log=raw.get("change_log", defaults.change_log),
    )


def _batch_section(raw: dict[str, Any]) -> BatchConfig:
    defaults = BatchConfig()
    return BatchConfig(
        output_table=raw.get("output_table", defaults.output_table),
        batch_size=raw.get("batch_size", defaults.batch_size),
        checkpoint_file=raw.get("checkpoint_file", defaults.checkpoint_file),
        excluded_table_names=frozenset(raw.get("excluded_tables", defaults.excluded_table_names)),
        excluded_name_markers=tuple(raw.get("excluded_markers", defaults.excluded_name_markers)),
    )


def _master_mapping_section(raw: dict[str, Any]) -> MasterMappingConfig:
    defaults = MasterMappingConfig()
    sources = []
    for s in raw.get("sources", []):
        base = MappingSource(table=s["table"])
        sources.append(
            MappingSource(
                table=s["table"],
                city=s.get("city", base.city),
                state=s.get("state", base.state),
                country=s.get("country", base.country),
                region=s.get("region", base.region),  # null = 地域列なし
            )
        )
    return MasterMappingConfig(
        output_table=raw.get("output_table", defaults.output_table),
        sources=tuple(sources),
        unknown_region=raw.get("unknown_region", defaults.unknown_region),
    )


def _autofill_section(raw: dict[str, Any]) -> AutofillConfig:
    defaults = AutofillConfig()
    return AutofillConfig(
        table=raw.get("table", defaults.table),
        key_column=raw.get("key_column", defaults.key_column),
        value_column=raw.get("value_column", defaults.value_column),
        highlight_color=raw.get("highlight_color", defaults.highlight_color),
    )


def _missing_details_section(raw: dict[str, Any]) -> MissingDetailsConfig:
    defaults = MissingDetailsConfig()
    sets = raw.get("column_sets")
    return MissingDetailsConfig(
        table=raw.get("table", defaults.table),
        output_table=raw.get("output_table", defaults.output_table),
        column_sets=(
            tuple(ColumnSet(key=s["key"], value=s["value"], value2=s.get("value2")) for s in sets)
            if sets
            else defaults.column_sets
        ),
    )


def build_config(data: dict[str, Any]) -> AppConfig:
    """Validated raw mapping -> AppConfig."""
    _validate_config_schema(data)
    region_aliases = data.get("region_aliases")
    country_regions = data.get("country_regions")
    return AppConfig(
        workbook=data["workbook"],
        merge=_merge_section(data.get("merge") or {}),
        geo=_geo_section(data.get("geo") or {}),
        batch=_batch_section(data.get("batch") or {}),
        master_mapping=_master_mapping_section(data.get("master_mapping") or {}),
        autofill=_autofill_section(data.get("autofill") or {}),
        missing_details=_missing_details_section(data.get("missing_details") or {}),
        region_aliases={k.strip().lower(): v for k, v in (region_aliases or DEFAULT_REGION_ALIASES).items()},
        country_regions=dict(country_regions or DEFAULT_COUNTRY_REGIONS),
    )


def load_config(path: Path) -> AppConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"config validation failed: top level must be a mapping, got {type(data).__name__}")
    return build_config(data)

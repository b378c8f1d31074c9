from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

"""Config dataclasses for the leadsheet commands.

Built by leadsheet.config.loader from the YAML file after schema validation.
Every section has defaults matching the sheet names used by the lead workbooks.
"""

__all__ = [
    "BlankKeyPolicy",
    "SwapGate",
    "WriteMode",
    "HeaderSpec",
    "MergeSource",
    "MergeConfig",
    "GeoColumns",
    "GeoConfig",
    "BatchConfig",
    "MappingSource",
    "MasterMappingConfig",
    "AutofillConfig",
    "ColumnSet",
    "MissingDetailsConfig",
    "AppConfig",
]


class BlankKeyPolicy(Enum):
    """What deduplication does with rows whose key cell is blank.

    KEEP: pass through untouched (external merge behaviour).
    DROP: exclude from the output (lead cleaning behaviour).
    """
    KEEP = "keep"
    DROP = "drop"


class SwapGate(Enum):
    """Gate that decides whether role repair may move values between geo fields.

    MISPLACED: at least two detected values must sit in the wrong slot (default).
    DETECTED: at least two fields with any detected role. Superseded; kept for
    reproducing older outputs only.
    """
    MISPLACED = "misplaced"
    DETECTED = "detected"


class WriteMode(Enum):
    OVERWRITE = "overwrite"
    APPEND = "append"  # keep existing output, append rows with unseen keys only


@dataclass(frozen=True)
class HeaderSpec:
    """Canonical output column and the source header names accepted for it."""
    output: str
    aliases: tuple[str, ...] = ()


@dataclass(frozen=True)
class MergeSource:
    """One table to merge. `workbook` None means the workbook being processed."""
    table: str
    workbook: str | None = None

    @property
    def label(self) -> str:
        return f"{self.workbook}:{self.table}" if self.workbook else self.table


@dataclass(frozen=True)
class MergeConfig:
    output_table: str = "Lead_CleanedData"
    sources: tuple[MergeSource, ...] = ()  # 空なら作業ブック内の全テーブル
    excluded_table_names: frozenset[str] = frozenset()
    excluded_name_markers: tuple[str, ...] = ("❌",)  # 部分一致 (大小文字無視)
    column_aliases: tuple[HeaderSpec, ...] = ()  # 空なら全ヘッダの和集合
    canonical_only: bool = False  # True: 別名表の列のみ出力
    dedup_key: str = "Email"
    allow_duplicates: bool = False
    blank_key_policy: BlankKeyPolicy = BlankKeyPolicy.DROP
    case_sensitive_headers: bool = True
    skip_empty_rows: bool = True
    write_mode: WriteMode = WriteMode.OVERWRITE


@dataclass(frozen=True)
class GeoColumns:
    city: str = "Company City"
    state: str = "Company State"
    country: str = "Company Country"
    region: str = "Region"

    def as_list(self) -> list[str]:
        return [self.city, self.state, self.country, self.region]


@dataclass(frozen=True)
class GeoConfig:
    lead_table: str = "Lead_CleanedData"
    mapping_tables: tuple[str, ...] = ("Master_GeoMapping",)  # 先頭ほど優先
    columns: GeoColumns = field(default_factory=GeoColumns)
    swap_gate: SwapGate = SwapGate.MISPLACED
    highlight_changes: bool = True
    highlight_color: str = "#ff9195"
    track_missing: bool = True
    missing_table: str = "Missing_GeoMapping"
    clear_missing_before_append: bool = True
    change_log: bool = False


@dataclass(frozen=True)
class BatchConfig:
    output_table: str = "CombinedData"
    batch_size: int = 3
    checkpoint_file: str = ".leadsheet_checkpoint.json"
    excluded_table_names: frozenset[str] = frozenset()
    excluded_name_markers: tuple[str, ...] = ("❌",)


@dataclass(frozen=True)
class MappingSource:
    """One input of the master mapping builder. `columns.region` may be None."""
    table: str
    city: str = "Company City"
    state: str = "Company State"
    country: str = "Company Country"
    region: str | None = "Region"


@dataclass(frozen=True)
class MasterMappingConfig:
    output_table: str = "Master_GeoMapping"
    sources: tuple[MappingSource, ...] = ()
    unknown_region: str = "Other"


@dataclass(frozen=True)
class AutofillConfig:
    """Fill blank `value_column` cells from other rows sharing the same `key_column` value."""
    table: str = "Lead_CleanedData"
    key_column: str = "Company City"
    value_column: str = "Company Country"
    highlight_color: str = "#f4cccc"


@dataclass(frozen=True)
class ColumnSet:
    """Key column plus one or two dependent columns checked by the missing-details report."""
    key: str
    value: str
    value2: str | None = None


@dataclass(frozen=True)
class MissingDetailsConfig:
    table: str = "Lead_CleanedData"
    output_table: str = "MissingDetails"
    column_sets: tuple[ColumnSet, ...] = (ColumnSet("Company State", "Company City", "Company Country"),)


@dataclass(frozen=True)
class AppConfig:
    """Root configuration object."""
    workbook: str  # CSV directory or .xlsx path
    merge: MergeConfig = field(default_factory=MergeConfig)
    geo: GeoConfig = field(default_factory=GeoConfig)
    batch: BatchConfig = field(default_factory=BatchConfig)
    master_mapping: MasterMappingConfig = field(default_factory=MasterMappingConfig)
    autofill: AutofillConfig = field(default_factory=AutofillConfig)
    missing_details: MissingDetailsConfig = field(default_factory=MissingDetailsConfig)
    region_aliases: dict[str, str] = field(default_factory=dict)  # lowercased variant -> region
    country_regions: dict[str, str] = field(default_factory=dict)  # country -> region (extract-geo)

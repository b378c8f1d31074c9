"""Domain models for the leadsheet tools.

Tables, configuration, geo records, batch checkpoints and result objects.
"""

from .checkpoint import BatchCheckpoint
from .config_models import (
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
from .geo_record import GeoRecord, GeoRole, GeoRow, MissingGeoEntry, RoleSet, RowState
from .table import Table, cell_text, count_non_blank, is_blank

__all__ = [
    # Tabular data
    "Table",
    "cell_text",
    "count_non_blank",
    "is_blank",
    # Configuration models
    "AppConfig",
    "AutofillConfig",
    "BatchConfig",
    "BlankKeyPolicy",
    "ColumnSet",
    "GeoColumns",
    "GeoConfig",
    "HeaderSpec",
    "MappingSource",
    "MasterMappingConfig",
    "MergeConfig",
    "MergeSource",
    "MissingDetailsConfig",
    "SwapGate",
    "WriteMode",
    # Geo models
    "GeoRecord",
    "GeoRole",
    "GeoRow",
    "MissingGeoEntry",
    "RoleSet",
    "RowState",
    # Batch
    "BatchCheckpoint",
]

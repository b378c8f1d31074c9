from __future__ import annotations

from pathlib import Path

from .base import TableStore
from .csv_store import CsvDirectoryStore
from .excel_store import ExcelWorkbookStore
from .kv import JsonFileKeyValueStore, KeyValueStore, MemoryKeyValueStore
from .memory import MemoryTableStore

__all__ = [
    "TableStore",
    "CsvDirectoryStore",
    "ExcelWorkbookStore",
    "MemoryTableStore",
    "KeyValueStore",
    "JsonFileKeyValueStore",
    "MemoryKeyValueStore",
    "open_store",
]

EXCEL_SUFFIXES = {".xlsx", ".xlsm"}


def open_store(path: str | Path) -> TableStore:
    """Workbook store for .xlsx/.xlsm paths, CSV directory store otherwise."""
    p = Path(path)
    if p.suffix.lower() in EXCEL_SUFFIXES:
        return ExcelWorkbookStore(p)
    return CsvDirectoryStore(p)

from __future__ import annotations

import logging
import os
import tempfile
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import pandas as pd
from openpyxl import Workbook, load_workbook
from openpyxl.styles import PatternFill

from ..errors import MissingSourceError, StoreError
from ..models.table import Table
from .base import TableStore
from .reader import normalize_frame

"""Excel workbook store (.xlsx / .xlsm).

Each worksheet is a table, row 1 is the header row.
Reads go through pandas (openpyxl engine) like the rest of the readers;
writes load the workbook with openpyxl, change it and save it atomically
(temp file in the same directory + os.replace).
"""

logger = logging.getLogger(__name__)


def _fill(color_hex: str) -> PatternFill:
    return PatternFill("solid", fgColor=color_hex.lstrip("#").upper())


class ExcelWorkbookStore(TableStore):

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def _load(self) -> Workbook:
        if not self.path.exists():
            wb = Workbook()
            # 新規ブックの既定シートは削除 (空ブックとして扱う)
            wb.remove(wb.active)
            return wb
        try:
            return load_workbook(self.path, keep_vba=self.path.suffix.lower() == ".xlsm")
        except Exception as e:
            raise StoreError(f"cannot open workbook {self.path}: {e}") from e

    def _save(self, wb: Workbook) -> None:
        if not wb.worksheets:
            wb.create_sheet("Sheet1")
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.stem}.", suffix=self.path.suffix, dir=str(self.path.parent))
        os.close(fd)
        temp_path = Path(tmp_name)
        try:
            wb.save(temp_path)
            os.replace(temp_path, self.path)
        except OSError as e:
            raise StoreError(f"cannot save workbook {self.path}: {e}") from e
        finally:
            if temp_path.exists():
                temp_path.unlink()

    def list_tables(self) -> list[str]:
        if not self.path.exists():
            return []
        return list(self._load().sheetnames)

    def table_exists(self, name: str) -> bool:
        return name in self.list_tables()

    def read_table(self, name: str) -> Table:
        if not self.table_exists(name):
            raise MissingSourceError(name)
        try:
            with pd.ExcelFile(self.path) as xls:
                df = xls.parse(name, header=None, dtype=object, keep_default_na=False, na_values=[])
        except Exception as e:
            raise StoreError(f"cannot read sheet '{name}' from {self.path}: {e}") from e
        return normalize_frame(df, name)

    def write_table(self, name: str, table: Table) -> None:
        wb = self._load()
        if name in wb.sheetnames:
            # 既存シートは位置を保ったまま作り直す (値と塗りを一括クリア)
            idx = wb.sheetnames.index(name)
            wb.remove(wb[name])
            ws = wb.create_sheet(name, idx)
        else:
            ws = wb.create_sheet(name)
        if table.width:
            ws.append(list(table.columns))
            for row in table.rows:
                ws.append(list(row))
            ws.freeze_panes = "A2"
        self._save(wb)
        logger.debug("xlsx write sheet=%s rows=%d cols=%d", name, len(table.rows), table.width)

    def append_rows(self, name: str, rows: Sequence[Sequence[Any]]) -> None:
        wb = self._load()
        if name not in wb.sheetnames:
            raise MissingSourceError(name)
        if not rows:
            return
        ws = wb[name]
        for row in rows:
            ws.append(list(row))
        self._save(wb)

    def create_table(self, name: str) -> None:
        wb = self._load()
        if name in wb.sheetnames:
            return
        wb.create_sheet(name)
        self._save(wb)

    def set_cell_background(self, name: str, row_index: int, col_index: int, color_hex: str) -> None:
        self.set_backgrounds(name, [(row_index, col_index)], color_hex)

    def set_backgrounds(self, name: str, cells: Sequence[tuple[int, int]], color_hex: str) -> None:
        wb = self._load()
        if name not in wb.sheetnames:
            raise MissingSourceError(name)
        ws = wb[name]
        fill = _fill(color_hex)
        for row_index, col_index in cells:
            # +2: 1-based かつヘッダ行の分
            ws.cell(row=row_index + 2, column=col_index + 1).fill = fill
        self._save(wb)

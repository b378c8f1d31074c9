from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import pandas as pd

from ..errors import MissingSourceError, StoreError
from ..models.table import Table
from .base import TableStore
from .reader import normalize_frame

"""CSV directory store.

Every `<name>.csv` file in the directory is one table, first line = header.
Tables are listed in file name order. Cell backgrounds cannot live in a CSV,
so they are kept in a `<name>.highlights.json` sidecar ({"row,col": "#hex"}),
cleared whenever the table is rewritten.
"""

logger = logging.getLogger(__name__)

CSV_SUFFIX = ".csv"
HIGHLIGHT_SUFFIX = ".highlights.json"


class CsvDirectoryStore(TableStore):

    def __init__(self, directory: Path, *, encoding: str = "utf-8") -> None:
        self.directory = Path(directory)
        self.encoding = encoding
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, name: str) -> Path:
        return self.directory / f"{name}{CSV_SUFFIX}"

    def _highlight_path(self, name: str) -> Path:
        return self.directory / f"{name}{HIGHLIGHT_SUFFIX}"

    def list_tables(self) -> list[str]:
        return sorted(p.stem for p in self.directory.iterdir() if p.is_file() and p.suffix == CSV_SUFFIX)

    def table_exists(self, name: str) -> bool:
        return self._path(name).is_file()

    def read_table(self, name: str) -> Table:
        path = self._path(name)
        if not path.is_file():
            raise MissingSourceError(name)
        try:
            df = pd.read_csv(
                path,
                header=None,
                dtype=str,
                keep_default_na=False,
                encoding=f"{self.encoding}-sig" if self.encoding == "utf-8" else self.encoding,
            )
        except pd.errors.EmptyDataError:
            return Table(name=name, columns=[], rows=[])
        except (pd.errors.ParserError, UnicodeDecodeError, OSError) as e:
            raise StoreError(f"cannot read table '{name}' ({path}): {e}") from e
        return normalize_frame(df, name)

    def write_table(self, name: str, table: Table) -> None:
        path = self._path(name)
        frame = pd.DataFrame([list(table.columns)] + [list(r) for r in table.rows])
        try:
            if table.width == 0:
                path.write_text("", encoding=self.encoding)
            else:
                frame.to_csv(path, header=False, index=False, encoding=self.encoding)
        except OSError as e:
            raise StoreError(f"cannot write table '{name}' ({path}): {e}") from e
        hp = self._highlight_path(name)
        if hp.exists():
            hp.unlink()
        logger.debug("csv write table=%s rows=%d cols=%d", name, len(table.rows), table.width)

    def append_rows(self, name: str, rows: Sequence[Sequence[Any]]) -> None:
        path = self._path(name)
        if not path.is_file():
            raise MissingSourceError(name)
        if not rows:
            return
        try:
            pd.DataFrame([list(r) for r in rows]).to_csv(
                path, mode="a", header=False, index=False, encoding=self.encoding
            )
        except OSError as e:
            raise StoreError(f"cannot append to table '{name}' ({path}): {e}") from e

    def create_table(self, name: str) -> None:
        path = self._path(name)
        if not path.exists():
            path.write_text("", encoding=self.encoding)

    def read_backgrounds(self, name: str) -> dict[tuple[int, int], str]:
        hp = self._highlight_path(name)
        if not hp.exists():
            return {}
        raw = json.loads(hp.read_text(encoding="utf-8"))
        out: dict[tuple[int, int], str] = {}
        for key, color in raw.items():
            r, c = key.split(",", 1)
            out[(int(r), int(c))] = color
        return out

    def set_cell_background(self, name: str, row_index: int, col_index: int, color_hex: str) -> None:
        self.set_backgrounds(name, [(row_index, col_index)], color_hex)

    def set_backgrounds(self, name: str, cells: Sequence[tuple[int, int]], color_hex: str) -> None:
        if not self.table_exists(name):
            raise MissingSourceError(name)
        current = self.read_backgrounds(name)
        for cell in cells:
            current[cell] = color_hex
        payload = {f"{r},{c}": color for (r, c), color in sorted(current.items())}
        self._highlight_path(name).write_text(json.dumps(payload, ensure_ascii=False, indent=1), encoding="utf-8")

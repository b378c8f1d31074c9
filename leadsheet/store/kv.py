from __future__ import annotations

import json
from abc import ABC, abstractmethod
from pathlib import Path

from ..errors import StoreError

"""String key-value stores for batch checkpoints."""

__all__ = [
    "KeyValueStore",
    "MemoryKeyValueStore",
    "JsonFileKeyValueStore",
]


class KeyValueStore(ABC):

    @abstractmethod
    def get(self, key: str) -> str | None: ...

    @abstractmethod
    def set(self, key: str, value: str) -> None: ...

    @abstractmethod
    def delete(self, key: str) -> None: ...

    def get_many(self, keys: tuple[str, ...]) -> dict[str, str | None]:
        return {k: self.get(k) for k in keys}

    def set_many(self, values: dict[str, str]) -> None:
        for k, v in values.items():
            self.set(k, v)

    def delete_many(self, keys: tuple[str, ...]) -> None:
        for k in keys:
            self.delete(k)


class MemoryKeyValueStore(KeyValueStore):

    def __init__(self) -> None:
        self.data: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = str(value)

    def delete(self, key: str) -> None:
        self.data.pop(key, None)


class JsonFileKeyValueStore(KeyValueStore):
    """One JSON object file; rewritten on every change. The file is removed once empty."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def _read(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except json.JSONDecodeError as e:
            raise StoreError(f"corrupt checkpoint file {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise StoreError(f"corrupt checkpoint file {self.path}: expected an object")
        return {str(k): str(v) for k, v in data.items()}

    def _write(self, data: dict[str, str]) -> None:
        if not data:
            if self.path.exists():
                self.path.unlink()
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")

    def get(self, key: str) -> str | None:
        return self._read().get(key)

    def set(self, key: str, value: str) -> None:
        self.set_many({key: value})

    def delete(self, key: str) -> None:
        self.delete_many((key,))

    def set_many(self, values: dict[str, str]) -> None:
        data = self._read()
        data.update({k: str(v) for k, v in values.items()})
        self._write(data)

    def delete_many(self, keys: tuple[str, ...]) -> None:
        data = self._read()
        for k in keys:
            data.pop(k, None)
        self._write(data)

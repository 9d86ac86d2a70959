"""
Local Key-Value Store Implementations

- InMemoryKeyValueStore: tests and ephemeral sessions
- JsonFileKeyValueStore: one JSON file per key under a data directory

TRADEOFFS:
- Whole-snapshot writes: fine for household volumes, no partial updates
- File writes go through a temporary file and an atomic rename, so a crash
  never leaves a half-written snapshot behind
"""

import os
from pathlib import Path
from typing import Optional

from finance_tracker.config import get_settings
from finance_tracker.services.storage.interface import KeyValueStore, StorageError


class InMemoryKeyValueStore(KeyValueStore):
    """Dictionary-backed store."""

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self._data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def clear(self) -> None:
        self._data.clear()

    def snapshot(self) -> dict[str, str]:
        """Copy of the raw contents, for inspection."""
        return dict(self._data)


class JsonFileKeyValueStore(KeyValueStore):
    """
    File-backed store.

    Each key lives in `<data_dir>/<prefix><key>.json`.
    """

    def __init__(
        self,
        data_dir: Optional[Path] = None,
        key_prefix: Optional[str] = None,
    ):
        settings = get_settings().local_store
        self._data_dir = Path(data_dir) if data_dir is not None else settings.data_dir
        self._prefix = key_prefix if key_prefix is not None else settings.key_prefix

    def _path_for(self, key: str) -> Path:
        return self._data_dir / f"{self._prefix}{key}.json"

    async def get(self, key: str) -> Optional[str]:
        path = self._path_for(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(f"Failed to read {key}: {e}")

    async def set(self, key: str, value: str) -> None:
        path = self._path_for(key)
        tmp_path = path.with_suffix(".json.tmp")
        try:
            self._data_dir.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(value, encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError as e:
            raise StorageError(f"Failed to write {key}: {e}")

    async def clear(self) -> None:
        if not self._data_dir.exists():
            return
        try:
            for path in self._data_dir.glob(f"{self._prefix}*.json"):
                path.unlink()
        except OSError as e:
            raise StorageError(f"Failed to clear local store: {e}")

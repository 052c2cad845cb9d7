"""
Local Key-Value Storage Implementations

Two backends that need no external service:

- InMemoryKeyValueStore: a dict. Used by tests and for demo sessions.
- JsonFileKeyValueStore: the whole store is one JSON document on disk.
  Every write rewrites the document to a temp file and renames it over
  the old one, so a crash leaves either the old or the new document and
  set_many is atomic.

TRADEOFFS:
- The JSON file is rewritten on every save (fine for personal data volumes)
- No cross-process locking: one active session per data file
"""

import asyncio
import copy
import json
import os
import tempfile
from pathlib import Path
from typing import Optional

from finan_ai.services.storage.interface import (
    JSONValue,
    KeyValueStoreInterface,
    StorageError,
)


class InMemoryKeyValueStore(KeyValueStoreInterface):
    """
    Dict-backed store.

    Values are deep-copied on the way in and out so callers never share
    mutable state with the store.
    """

    def __init__(self, initial: Optional[dict[str, JSONValue]] = None):
        self._data: dict[str, JSONValue] = copy.deepcopy(initial or {})

    async def get(self, key: str, default: JSONValue = None) -> JSONValue:
        if key not in self._data:
            return default
        return copy.deepcopy(self._data[key])

    async def set(self, key: str, value: JSONValue) -> None:
        self._data[key] = copy.deepcopy(value)

    async def set_many(self, values: dict[str, JSONValue]) -> None:
        # Copy everything first so a bad value can't leave a partial write
        staged = copy.deepcopy(values)
        self._data.update(staged)

    async def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    async def keys(self, prefix: str = "") -> list[str]:
        return sorted(k for k in self._data if k.startswith(prefix))


class JsonFileKeyValueStore(KeyValueStoreInterface):
    """
    Single-document JSON file store.

    The document is a JSON object mapping keys to values.
    """

    def __init__(self, path: str | Path):
        self._path = Path(path)
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> dict[str, JSONValue]:
        if not self._path.exists():
            return {}
        try:
            with self._path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise StorageError(f"Storage file is corrupt: {self._path}: {e}")
        except OSError as e:
            raise StorageError(f"Failed to read storage file {self._path}: {e}")

        if not isinstance(data, dict):
            raise StorageError(f"Storage file is not a JSON object: {self._path}")
        return data

    def _write(self, data: dict[str, JSONValue]) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                prefix=f".{self._path.name}.",
                dir=self._path.parent,
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, ensure_ascii=False, indent=2, sort_keys=True)
                os.replace(tmp_path, self._path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except (OSError, TypeError, ValueError) as e:
            raise StorageError(f"Failed to write storage file {self._path}: {e}")

    async def get(self, key: str, default: JSONValue = None) -> JSONValue:
        async with self._lock:
            return self._read().get(key, default)

    async def set(self, key: str, value: JSONValue) -> None:
        await self.set_many({key: value})

    async def set_many(self, values: dict[str, JSONValue]) -> None:
        async with self._lock:
            data = self._read()
            data.update(values)
            self._write(data)

    async def delete(self, key: str) -> bool:
        async with self._lock:
            data = self._read()
            if key not in data:
                return False
            del data[key]
            self._write(data)
            return True

    async def keys(self, prefix: str = "") -> list[str]:
        async with self._lock:
            return sorted(k for k in self._read() if k.startswith(prefix))

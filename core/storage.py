"""
Device key/value storage.

String values under caller-chosen keys, accessed asynchronously, the way the
mobile client's persistent storage behaves. Two backends:

- `MemoryStorage`: a dict; lost when the process exits (tests, API demo)
- `JsonFileStorage`: one JSON object on disk; survives process restarts
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional, Protocol

logger = logging.getLogger("storage")


class KeyValueStorage(Protocol):
    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str) -> None: ...

    async def remove(self, key: str) -> None: ...


class MemoryStorage:
    """Dictionary-backed storage."""

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self._data: dict[str, str] = dict(initial or {})
        self.writes = 0

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self.writes += 1
        self._data[key] = value

    async def remove(self, key: str) -> None:
        self.writes += 1
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)


class JsonFileStorage:
    """
    Storage persisted to a single JSON file.

    The whole file is rewritten on every `set`/`remove`. File I/O runs in a worker
    thread so the event loop is not blocked.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = asyncio.Lock()

    def _read_all(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            logger.error(f"Storage file {self.path} is corrupt, starting empty: {e}")
            return {}
        if not isinstance(data, dict):
            logger.error(f"Storage file {self.path} is not an object, starting empty")
            return {}
        return data

    def _write_all(self, data: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, "w") as f:
            json.dump(data, f)
        tmp_path.replace(self.path)

    async def get(self, key: str) -> Optional[str]:
        data = await asyncio.to_thread(self._read_all)
        return data.get(key)

    async def set(self, key: str, value: str) -> None:
        async with self._lock:
            data = await asyncio.to_thread(self._read_all)
            data[key] = value
            await asyncio.to_thread(self._write_all, data)

    async def remove(self, key: str) -> None:
        async with self._lock:
            data = await asyncio.to_thread(self._read_all)
            if key in data:
                del data[key]
                await asyncio.to_thread(self._write_all, data)


def create_storage(path: Optional[Path] = None) -> KeyValueStorage:
    """File-backed storage when a path is given, in-memory otherwise."""
    if path is None:
        return MemoryStorage()
    return JsonFileStorage(path)

"""Durable string key/value stores.

The queue and the credential cache only need ``get``/``set``/``remove`` on
string values, which is what the mobile platform's storage offers as well.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Protocol

from pyiotux.exceptions import IotuxStorageError

_logger = logging.getLogger(__name__)


class DurableStore(Protocol):
    """Structural store interface.

    Implementations raise :class:`IotuxStorageError` on failure; callers
    decide whether that is fatal.
    """

    async def get(self, key: str) -> str | None:
        ...

    async def set(self, key: str, value: str) -> None:
        ...

    async def remove(self, *keys: str) -> None:
        ...


class MemoryStore:
    """Process-local store.  Useful for tests and ephemeral clients."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> str | None:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def remove(self, *keys: str) -> None:
        for key in keys:
            self._data.pop(key, None)

    def dump(self) -> dict[str, str]:
        return dict(self._data)


class JsonFileStore:
    """Store persisted as one JSON object on disk.

    The file is read once, lazily, and rewritten atomically (temp file +
    rename) on every mutation.  Blocking file I/O runs in a worker thread.
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._data: dict[str, str] | None = None
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _read_file(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        text = self._path.read_text(encoding="utf-8")
        if not text.strip():
            return {}
        loaded = json.loads(text)
        if not isinstance(loaded, dict):
            raise ValueError("store root is not a JSON object")
        return {str(k): str(v) for k, v in loaded.items()}

    def _write_file(self, data: dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_text(json.dumps(data, separators=(",", ":")), encoding="utf-8")
        os.replace(tmp, self._path)

    async def _loaded(self) -> dict[str, str]:
        if self._data is None:
            try:
                self._data = await asyncio.to_thread(self._read_file)
            except (OSError, ValueError) as exc:
                raise IotuxStorageError(f"Cannot read store {self._path}: {exc}") from exc
            _logger.debug("Loaded %d keys from %s", len(self._data), self._path)
        return self._data

    async def _persist(self, data: dict[str, str], key: str) -> None:
        try:
            await asyncio.to_thread(self._write_file, dict(data))
        except OSError as exc:
            raise IotuxStorageError(f"Cannot write store {self._path}: {exc}", key=key) from exc

    async def get(self, key: str) -> str | None:
        async with self._lock:
            data = await self._loaded()
            return data.get(key)

    async def set(self, key: str, value: str) -> None:
        async with self._lock:
            data = await self._loaded()
            data[key] = value
            await self._persist(data, key)

    async def remove(self, *keys: str) -> None:
        async with self._lock:
            data = await self._loaded()
            removed = [key for key in keys if data.pop(key, None) is not None]
            if removed:
                await self._persist(data, ",".join(removed))

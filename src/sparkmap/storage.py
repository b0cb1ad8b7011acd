"""Local key-value persistence.

Used for the per-lot cooldown timestamps and the device identifier.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from pathlib import Path
from typing import Protocol

from sparkmap._constants import DEVICE_ID_KEY

_logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    """Structural interface for local string storage."""

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str) -> None: ...


class MemoryKeyValueStore:
    """Process-local store; contents are lost on exit."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> str | None:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value


class JsonFileKeyValueStore:
    """Store backed by a single JSON object on disk.

    File access runs in the default executor so the event loop is never
    blocked. A missing or unreadable file behaves like an empty store.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._lock = asyncio.Lock()

    def _read(self) -> dict[str, str]:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            _logger.warning("Ignoring corrupt key-value file %s", self._path)
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def _write(self, data: dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_text(json.dumps(data, sort_keys=True), encoding="utf-8")
        tmp.replace(self._path)

    async def get(self, key: str) -> str | None:
        loop = asyncio.get_running_loop()
        data = await loop.run_in_executor(None, self._read)
        return data.get(key)

    async def set(self, key: str, value: str) -> None:
        loop = asyncio.get_running_loop()
        async with self._lock:
            data = await loop.run_in_executor(None, self._read)
            data[key] = value
            await loop.run_in_executor(None, self._write, data)


async def get_device_id(store: KeyValueStore) -> str:
    """Return this device's identifier, generating and persisting one if needed."""
    existing = await store.get(DEVICE_ID_KEY)
    if existing:
        return existing
    device_id = str(uuid.uuid4())
    await store.set(DEVICE_ID_KEY, device_id)
    return device_id

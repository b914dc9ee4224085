"""Key-value backends for the persisted store.

Both backends expose the same async get/set/remove/clear surface and
have no multi-key transactions. Values are JSON-compatible and copied
through serialization, so callers never share mutable state with the
store.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Iterable, Protocol

from skillpulse.errors import StoreError
from skillpulse.fileio import read_json, write_json_atomic
from skillpulse.workspace import Settings, store_path

logger = logging.getLogger("skillpulse")


class KeyValueStore(Protocol):
    async def get(self, keys: Iterable[str] | None = None) -> dict[str, Any]: ...

    async def set(self, key: str, value: Any) -> None: ...

    async def remove(self, keys: Iterable[str]) -> None: ...

    async def clear(self) -> None: ...


def _copy(value: Any) -> Any:
    return json.loads(json.dumps(value))


class MemoryStore:
    """In-process store; every call suspends once before touching data.

    ``fail_keys`` makes ``set`` raise for those keys, to exercise partial
    joint writes.
    """

    def __init__(self, data: dict[str, Any] | None = None):
        self._data: dict[str, Any] = _copy(data) if data else {}
        self.fail_keys: set[str] = set()
        self.set_calls: list[str] = []

    async def get(self, keys: Iterable[str] | None = None) -> dict[str, Any]:
        await asyncio.sleep(0)
        if keys is None:
            return _copy(self._data)
        return {k: _copy(self._data[k]) for k in keys if k in self._data}

    async def set(self, key: str, value: Any) -> None:
        await asyncio.sleep(0)
        if key in self.fail_keys:
            raise StoreError(f"write failed for {key}")
        self.set_calls.append(key)
        self._data[key] = _copy(value)

    async def remove(self, keys: Iterable[str]) -> None:
        await asyncio.sleep(0)
        for k in keys:
            self._data.pop(k, None)

    async def clear(self) -> None:
        await asyncio.sleep(0)
        self._data.clear()

    def snapshot(self) -> dict[str, Any]:
        """Synchronous copy of the contents, for inspection."""
        return _copy(self._data)


class JsonFileStore:
    """Store persisted as one JSON document, rewritten atomically per call."""

    def __init__(self, path: Path):
        self.path = path
        self._lock = asyncio.Lock()

    def _load(self) -> dict[str, Any]:
        try:
            return read_json(self.path)
        except (OSError, ValueError) as e:
            raise StoreError(f"cannot read {self.path.name}: {e}") from e

    def _save(self, data: dict[str, Any]) -> None:
        try:
            write_json_atomic(self.path, data)
        except OSError as e:
            raise StoreError(f"cannot write {self.path.name}: {e}") from e

    async def get(self, keys: Iterable[str] | None = None) -> dict[str, Any]:
        data = await asyncio.to_thread(self._load)
        if keys is None:
            return data
        return {k: data[k] for k in keys if k in data}

    async def _update(self, mutate) -> None:
        # the file is one document, so single-key updates are serialized here
        async with self._lock:
            data = await asyncio.to_thread(self._load)
            mutate(data)
            await asyncio.to_thread(self._save, data)

    async def set(self, key: str, value: Any) -> None:
        await self._update(lambda data: data.__setitem__(key, _copy(value)))

    async def remove(self, keys: Iterable[str]) -> None:
        keys = list(keys)

        def drop(data: dict[str, Any]) -> None:
            for k in keys:
                data.pop(k, None)

        await self._update(drop)

    async def clear(self) -> None:
        await self._update(lambda data: data.clear())


def open_store(settings: Settings, root: Path | None = None) -> KeyValueStore:
    """Build the backend named in config.yaml."""
    if settings.store == "memory":
        logger.info("Using in-memory store; state is lost on exit")
        return MemoryStore()
    path = store_path(root)
    logger.info("Using file store at %s", path)
    return JsonFileStore(path)

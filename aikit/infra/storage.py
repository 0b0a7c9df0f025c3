"""Flat key/value storage for provider config and permission decisions.

Two backends share one async interface:
- InMemoryKeyValueStore: process-local dict (tests, ephemeral deployments)
- JsonFileKeyValueStore: single JSON object on disk, rewritten on every change
"""

import abc
import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)


class KeyValueStore(abc.ABC):
    """Async key/value contract used by the orchestrator."""

    def __init__(self) -> None:
        # Writes are exclusive; reads work on the current snapshot
        self._write_lock = asyncio.Lock()

    @abc.abstractmethod
    def _snapshot(self) -> Dict[str, Any]:
        """Return the live mapping (must not be mutated by callers)."""

    @abc.abstractmethod
    async def _commit(self, data: Dict[str, Any]) -> None:
        """Persist a new mapping."""

    async def get(self, key: str, default: Any = None) -> Any:
        return self._snapshot().get(key, default)

    async def get_many(self, keys: Iterable[str]) -> Dict[str, Any]:
        data = self._snapshot()
        return {key: data[key] for key in keys if key in data}

    async def keys(self, prefix: str = "") -> List[str]:
        return [key for key in self._snapshot() if key.startswith(prefix)]

    async def set(self, key: str, value: Any) -> None:
        await self.set_many({key: value})

    async def set_many(self, values: Dict[str, Any]) -> None:
        async with self._write_lock:
            data = dict(self._snapshot())
            data.update(values)
            await self._commit(data)

    async def delete(self, key: str) -> bool:
        """Delete a key. Returns True if it existed."""
        async with self._write_lock:
            data = dict(self._snapshot())
            if key not in data:
                return False
            del data[key]
            await self._commit(data)
            return True

    async def clear(self) -> None:
        async with self._write_lock:
            await self._commit({})


class InMemoryKeyValueStore(KeyValueStore):
    """Key/value store held in process memory."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None) -> None:
        super().__init__()
        self._data: Dict[str, Any] = dict(initial or {})

    def _snapshot(self) -> Dict[str, Any]:
        return self._data

    async def _commit(self, data: Dict[str, Any]) -> None:
        self._data = data


class JsonFileKeyValueStore(KeyValueStore):
    """Key/value store persisted as one JSON object."""

    def __init__(self, path: Path) -> None:
        super().__init__()
        self._path = Path(path)
        self._data: Dict[str, Any] = self._load_file(self._path)

    @property
    def path(self) -> Path:
        return self._path

    def _snapshot(self) -> Dict[str, Any]:
        return self._data

    async def _commit(self, data: Dict[str, Any]) -> None:
        await asyncio.to_thread(self._write_file, self._path, data)
        self._data = data

    @staticmethod
    def _load_file(path: Path) -> Dict[str, Any]:
        """Load the mapping from disk; a missing or unreadable file is empty."""
        if not path.exists():
            return {}
        try:
            data = json.loads(path.read_text())
            if isinstance(data, dict):
                return data
            logger.warning(f"Ignoring non-object store file {path}")
        except (json.JSONDecodeError, OSError):
            logger.warning(f"Failed to load {path}", exc_info=True)
        return {}

    @staticmethod
    def _write_file(path: Path, data: Dict[str, Any]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(data, indent=2, sort_keys=True) + "\n")
        tmp_path.replace(path)


def create_store(path: Optional[str]) -> KeyValueStore:
    """Build the configured store backend."""
    if path:
        logger.info(f"Using JSON key/value store at {path}")
        return JsonFileKeyValueStore(Path(path).expanduser())
    logger.info("Using in-memory key/value store")
    return InMemoryKeyValueStore()

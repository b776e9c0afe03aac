"""
src/context/store.py — key-value persistence

Keys are plain strings with prefix namespaces ("summary:<path>",
"analytics:token_usage", the chat history key). Values are JSON-serialisable.

Provides:
- KeyValueStore: the async contract the core depends on
- MemoryStore: process-local dict, used by tests and ephemeral sessions
- JsonFileStore: whole-file JSON map on disk (last writer wins)
"""


import asyncio
import json
import logging
from copy import deepcopy
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol


LOGGER = logging.getLogger(__name__)


class KeyValueStore(Protocol):

    async def get(self, key: str) -> Any: ...

    async def set(self, key: str, value: Any) -> None: ...

    async def list(self, prefix: str = "") -> List[str]: ...


class MemoryStore:

    def __init__(self, data: Optional[Dict[str, Any]] = None):

        self._data: Dict[str, Any] = deepcopy(data) if data else {}

    async def get(self, key: str) -> Any:

        return deepcopy(self._data.get(key))

    async def set(self, key: str, value: Any) -> None:

        self._data[key] = deepcopy(value)

    async def list(self, prefix: str = "") -> List[str]:

        return sorted(k for k in self._data if k.startswith(prefix))


class JsonFileStore:
    """
    Persist the whole map to a single JSON file.

    Every set() rewrites the file via a temp file + rename so a crash mid-write
    leaves the previous version intact. File I/O runs in a worker thread.
    """

    def __init__(self, path: Path):

        self.path = Path(path).expanduser()
        self._lock = asyncio.Lock()

    def _load(self) -> Dict[str, Any]:

        if not self.path.exists():
            return {}
        with self.path.open("r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Store file {self.path} does not hold a JSON object")

        return data

    def _dump(self, data: Dict[str, Any]) -> None:

        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with tmp.open("w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False, default=str)
        tmp.replace(self.path)

    async def get(self, key: str) -> Any:

        data = await asyncio.to_thread(self._load)

        return data.get(key)

    async def set(self, key: str, value: Any) -> None:

        async with self._lock:
            data = await asyncio.to_thread(self._load)
            data[key] = value
            await asyncio.to_thread(self._dump, data)
        LOGGER.debug("Stored key %s in %s", key, self.path)

    async def list(self, prefix: str = "") -> List[str]:

        data = await asyncio.to_thread(self._load)

        return sorted(k for k in data if k.startswith(prefix))

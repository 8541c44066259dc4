"""Simple memory-backed storage engine

This engine keeps values in a dict keyed by the full key string. It
implements only the minimal :class:`Engine` contract, so the store uses the
full-iteration fallback for listing and pagination. Data is lost when the
process exits; intended for tests and short-lived bots.
"""
from threading import RLock
from typing import AsyncIterator, Dict, Optional, Tuple

from .base import Engine, next_stamp


class MemoryEngine(Engine):
    def __init__(self):
        self._lock = RLock()
        # key -> (value, stamp)
        self._store: Dict[str, Tuple[str, int]] = {}

    async def has(self, key: str) -> bool:
        with self._lock:
            return key in self._store

    async def get(self, key: str, fallback: Optional[str] = None) -> Optional[str]:
        with self._lock:
            item = self._store.get(key)
        return item[0] if item is not None else fallback

    async def set(self, key: str, value: Optional[str]) -> bool:
        if value is None:
            await self.delete(key)
            return True
        with self._lock:
            self._store[key] = (value, next_stamp())
        return True

    async def delete(self, key: str) -> bool:
        with self._lock:
            return self._store.pop(key, None) is not None

    async def keys(self) -> AsyncIterator[str]:
        with self._lock:
            snapshot = list(self._store)
        for key in snapshot:
            yield key

    async def clear(self) -> bool:
        with self._lock:
            self._store.clear()
        return True

    async def modified(self, key: str) -> Optional[int]:
        with self._lock:
            item = self._store.get(key)
        return item[1] if item is not None else None

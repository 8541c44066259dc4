"""Storage engine interface definitions.

An engine is a flat, asynchronous string key/value medium. Engines know
nothing about records or JSON; the :class:`~chatstore_lib.storage.store.Store`
layers namespaces, serialization and pagination on top of them.

Two tiers are defined:

- :class:`Engine` is the required contract. A backend implements ``has``,
  ``get``, ``set``, ``delete`` and ``keys``; ``values``, ``entries`` and
  ``clear`` are derived from those unless the backend can do better.
- :class:`ScanEngine` adds ``scan(pattern)`` for backends able to filter
  keys server-side. The store checks for it with ``isinstance`` and falls
  back to iterating ``keys()`` otherwise.
"""
from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import AsyncIterator, List, Optional, Tuple

logger = logging.getLogger(__name__)

_clock_lock = threading.Lock()
_last_stamp = 0


def next_stamp() -> int:
    """Return a wall-clock stamp in nanoseconds, strictly increasing per process.

    Used as the recency of a write. Two writes issued back to back get
    distinct stamps even when the system clock is coarser than a nanosecond.
    """
    global _last_stamp
    with _clock_lock:
        now = time.time_ns()
        if now <= _last_stamp:
            now = _last_stamp + 1
        _last_stamp = now
        return now


class Engine(ABC):
    """Abstract storage engine.

    ``set`` and ``delete`` never raise for ordinary backend failures; they
    log the cause and return ``False``.
    """

    @abstractmethod
    async def has(self, key: str) -> bool:
        """Return True if `key` exists."""

    @abstractmethod
    async def get(self, key: str, fallback: Optional[str] = None) -> Optional[str]:
        """Return the value stored under `key`, or `fallback` when absent."""

    @abstractmethod
    async def set(self, key: str, value: Optional[str]) -> bool:
        """Store `value` under `key`. ``None`` deletes the key.

        Returns True on success, False on failure.
        """

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove `key`. Returns True if a key was removed."""

    @abstractmethod
    def keys(self) -> AsyncIterator[str]:
        """Lazily iterate over every key in the medium, in no particular order."""

    async def values(self) -> AsyncIterator[Optional[str]]:
        async for key in self.keys():
            yield await self.get(key)

    async def entries(self) -> AsyncIterator[Tuple[str, Optional[str]]]:
        async for key in self.keys():
            yield key, await self.get(key)

    async def clear(self) -> bool:
        """Remove everything. Returns True if the medium ends up empty."""
        # Collect first: deleting while a backend cursor is open is not safe everywhere.
        doomed = [key async for key in self.keys()]
        for key in doomed:
            await self.delete(key)
        async for _ in self.keys():
            return False
        return True

    async def modified(self, key: str) -> Optional[int]:
        """Recency stamp (ns) of the last write to `key`, None if unknown or absent.

        Engines that cannot track write order keep this default, in which
        case pagination degrades to ordering by key.
        """
        return None


class ScanEngine(Engine):
    """Engine that can filter keys by glob pattern on the backend side."""

    @abstractmethod
    async def scan(self, pattern: str) -> List[str]:
        """Return keys matching `pattern`, where ``*`` is the only metacharacter.

        A ``*`` may match across ``/`` (as Redis does) or only within its
        own segment (as a directory listing does); a final ``*`` segment
        always covers the whole subtree. Callers re-check each key's shape.
        """

"""Redis storage engine.

Keys are stored as plain Redis strings under ``{prefix}:{key}``. Write
recency is tracked in a companion sorted set ``{prefix}#modified`` scored
by a counter ``{prefix}#clock`` incremented on every write, since Redis
itself does not report when a key was last written. Scores are write
sequence numbers, not timestamps; they order writes across every client
sharing the prefix.

The engine takes an existing ``redis.asyncio`` client so the caller owns
connection setup and pooling.
"""
from __future__ import annotations

import logging
from typing import AsyncIterator, List, Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

from .base import ScanEngine

logger = logging.getLogger(__name__)

# Hint passed to SCAN; Redis may return more or fewer per round trip.
SCAN_COUNT = 100

_GLOB_SPECIAL = "\\?[]^"


def _escape_glob(text: str) -> str:
    """Escape Redis glob metacharacters other than ``*``."""
    return "".join("\\" + c if c in _GLOB_SPECIAL else c for c in text)


def _text(value) -> Optional[str]:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return value


class RedisEngine(ScanEngine):
    def __init__(self, client: Redis, prefix: str = "chatstore:default") -> None:
        self._client = client
        self._prefix = prefix
        self._stamps = f"{prefix}#modified"
        self._clock = f"{prefix}#clock"

    def _name(self, key: str) -> str:
        return f"{self._prefix}:{key}"

    def _strip(self, name) -> str:
        return _text(name)[len(self._prefix) + 1 :]

    def _match(self, pattern: str) -> str:
        return _escape_glob(self._prefix) + ":" + "*".join(_escape_glob(p) for p in pattern.split("*"))

    async def has(self, key: str) -> bool:
        return bool(await self._client.exists(self._name(key)))

    async def get(self, key: str, fallback: Optional[str] = None) -> Optional[str]:
        value = await self._client.get(self._name(key))
        return fallback if value is None else _text(value)

    async def set(self, key: str, value: Optional[str]) -> bool:
        if value is None:
            await self.delete(key)
            return not await self.has(key)
        try:
            await self._client.set(self._name(key), value)
            await self._client.zadd(self._stamps, {key: await self._client.incr(self._clock)})
        except RedisError:
            logger.warning("RedisEngine failed to write %s", key, exc_info=True)
            return False
        return True

    async def delete(self, key: str) -> bool:
        try:
            removed = await self._client.delete(self._name(key))
            await self._client.zrem(self._stamps, key)
        except RedisError:
            logger.warning("RedisEngine failed to delete %s", key, exc_info=True)
            return False
        return removed > 0

    async def keys(self) -> AsyncIterator[str]:
        async for name in self._client.scan_iter(match=self._match("*"), count=SCAN_COUNT):
            yield self._strip(name)

    async def scan(self, pattern: str) -> List[str]:
        # SCAN may report a key more than once.
        found = []
        seen = set()
        async for name in self._client.scan_iter(match=self._match(pattern), count=SCAN_COUNT):
            key = self._strip(name)
            if key not in seen:
                seen.add(key)
                found.append(key)
        return found

    async def clear(self) -> bool:
        try:
            names = [name async for name in self._client.scan_iter(match=self._match("*"), count=SCAN_COUNT)]
            if names:
                await self._client.delete(*names)
            await self._client.delete(self._stamps, self._clock)
        except RedisError:
            logger.warning("RedisEngine failed to clear prefix %s", self._prefix, exc_info=True)
            return False
        async for _ in self.keys():
            return False
        return True

    async def modified(self, key: str) -> Optional[int]:
        score = await self._client.zscore(self._stamps, key)
        return None if score is None else int(score)

"""Key discovery and recency-ordered pagination over any engine.

Two paths produce the same result:

- engines implementing :class:`ScanEngine` are asked for candidates with
  ``scan(pattern)``;
- any other engine is iterated once with ``keys()`` and filtered on the
  client side with the same glob.

Candidates are then narrowed with an optional ``accept`` predicate (the
store passes a key-shape check, since ``*`` may span ``/``), ordered by the
engine's recency stamp, newest first, with ties broken by key ascending,
and sliced ``[offset, offset + limit)``.

Neither path is isolated from concurrent writes: a key written or deleted
while candidates are collected may or may not be included.
"""
from __future__ import annotations

import logging
from typing import AsyncIterator, Callable, List, Optional

from .base import Engine, ScanEngine
from .keys import glob_regex

logger = logging.getLogger(__name__)

KeyFilter = Callable[[str], bool]


async def iter_matching(engine: Engine, pattern: str, accept: Optional[KeyFilter] = None) -> AsyncIterator[str]:
    """Lazily yield keys matching `pattern` (and `accept`, when given)."""
    if isinstance(engine, ScanEngine):
        for key in await engine.scan(pattern):
            if accept is None or accept(key):
                yield key
        return
    rx = glob_regex(pattern)
    async for key in engine.keys():
        if rx.match(key) and (accept is None or accept(key)):
            yield key


async def collect(engine: Engine, pattern: str, accept: Optional[KeyFilter] = None) -> List[str]:
    return [key async for key in iter_matching(engine, pattern, accept)]


async def order_by_recency(engine: Engine, keys: List[str]) -> List[str]:
    """Sort `keys` newest first; equal or unknown stamps fall back to key order."""
    stamps = {}
    for key in keys:
        stamp = await engine.modified(key)
        stamps[key] = stamp if stamp is not None else 0
    ordered = sorted(keys)
    # sorted() is stable, so keys with the same stamp stay in ascending order.
    ordered.sort(key=lambda k: stamps[k], reverse=True)
    return ordered


async def paginate_keys(
    engine: Engine,
    pattern: str,
    offset: int = 0,
    limit: int = 50,
    accept: Optional[KeyFilter] = None,
) -> List[str]:
    """Return the keys for one page, most recently written first.

    An `offset` past the end or a non-positive `limit` yield an empty page.
    """
    if offset < 0:
        raise ValueError(f"offset must be >= 0, got {offset}")
    if limit <= 0:
        return []
    candidates = await collect(engine, pattern, accept)
    if offset >= len(candidates):
        return []
    ordered = await order_by_recency(engine, candidates)
    page = ordered[offset : offset + limit]
    logger.debug(
        "paginate %s: %d candidate(s) via %s, returning %d",
        pattern,
        len(candidates),
        "scan" if isinstance(engine, ScanEngine) else "keys",
        len(page),
    )
    return page

"""File-backed storage engine.

Each key maps to a path under ``data_dir`` with one directory per
``/``-delimited key segment; the last segment is the file holding the value,
written verbatim as UTF-8 text::

    .store/contact/5491112345678%40s.whatsapp.net/index
    .store/chat/5491112345678%40s.whatsapp.net/message/3EB0A1/index
    .store/chat/5491112345678%40s.whatsapp.net/message/3EB0A1/content

Segments are percent-escaped on disk (``@`` becomes ``%40``) so account
identifiers are safe in any filesystem; the logical key never changes.

Deleting an ``index`` key removes its whole directory, so deleting a chat
record also removes every message beneath it. Recency is the file's
modification time, stamped from :func:`next_stamp` after each write.

Scanning a namespace lists its immediate subdirectories and checks each
leaf, so listing chats never touches the messages stored below them.

Writes are not atomic: a crash between creating the directories and
finishing the write can leave a partially written file.
"""
from __future__ import annotations

import asyncio
import logging
import os
import shutil
from pathlib import Path
from typing import AsyncIterator, List, Optional
from urllib.parse import quote, unquote

from .base import ScanEngine, next_stamp
from .keys import WILDCARD, glob_regex

logger = logging.getLogger(__name__)

INDEX = "index"


def _escape(segment: str) -> str:
    if segment in (".", ".."):
        return segment.replace(".", "%2E")
    return quote(segment, safe="")


class FileEngine(ScanEngine):
    def __init__(self, data_dir: str | Path = ".store") -> None:
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def _path_for(self, key: str) -> Path:
        return self.data_dir.joinpath(*(_escape(s) for s in key.split("/")))

    def _key_for(self, path: Path) -> str:
        return "/".join(unquote(p) for p in path.relative_to(self.data_dir).parts)

    async def has(self, key: str) -> bool:
        return await asyncio.to_thread(self._path_for(key).is_file)

    async def get(self, key: str, fallback: Optional[str] = None) -> Optional[str]:
        path = self._path_for(key)
        try:
            return await asyncio.to_thread(path.read_text, encoding="utf-8")
        except (FileNotFoundError, NotADirectoryError, IsADirectoryError):
            return fallback

    def _write(self, path: Path, value: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            f.write(value)
        stamp = next_stamp()
        os.utime(path, ns=(stamp, stamp))

    async def set(self, key: str, value: Optional[str]) -> bool:
        if value is None:
            await self.delete(key)
            return not await self.has(key)
        path = self._path_for(key)
        try:
            await asyncio.to_thread(self._write, path, value)
        except OSError:
            logger.warning("FileEngine failed to write %s", path, exc_info=True)
            return False
        logger.debug("FileEngine wrote %s (%d chars)", key, len(value))
        return True

    def _remove(self, path: Path) -> bool:
        if not path.is_file():
            return False
        if path.name == INDEX:
            shutil.rmtree(path.parent)
        else:
            path.unlink()
        return True

    async def delete(self, key: str) -> bool:
        path = self._path_for(key)
        try:
            removed = await asyncio.to_thread(self._remove, path)
        except OSError:
            logger.warning("FileEngine failed to delete %s", path, exc_info=True)
            return False
        if removed:
            logger.debug("FileEngine deleted %s", key)
        return removed

    async def _walk(self, root: Path) -> AsyncIterator[str]:
        # One directory listing per step so consumers that stop early don't pay for the whole tree.
        walker = os.walk(root)
        while True:
            step = await asyncio.to_thread(next, walker, None)
            if step is None:
                return
            dirpath, _dirnames, filenames = step
            for name in sorted(filenames):
                yield self._key_for(Path(dirpath) / name)

    async def keys(self) -> AsyncIterator[str]:
        async for key in self._walk(self.data_dir):
            yield key

    def _list(self, path: Path, segment: str, dirs: bool) -> List[str]:
        """Sorted on-disk names in `path` whose logical segment matches `segment`."""
        rx = glob_regex(segment)
        try:
            with os.scandir(path) as it:
                names = [
                    e.name for e in it
                    if (e.is_dir() if dirs else e.is_file()) and rx.match(unquote(e.name))
                ]
        except (FileNotFoundError, NotADirectoryError):
            return []
        return sorted(names)

    def _expand(self, path: Path, segments: List[str], found: List[str]) -> None:
        head, rest = segments[0], segments[1:]
        if not rest:
            if head == WILDCARD:
                # A trailing wildcard covers the whole subtree.
                for dirpath, _dirnames, filenames in os.walk(path):
                    found.extend(self._key_for(Path(dirpath) / name) for name in sorted(filenames))
            elif WILDCARD in head:
                found.extend(self._key_for(path / name) for name in self._list(path, head, dirs=False))
            elif (path / _escape(head)).is_file():
                found.append(self._key_for(path / _escape(head)))
            return
        if WILDCARD in head:
            for name in self._list(path, head, dirs=True):
                self._expand(path / name, rest, found)
        elif (path / _escape(head)).is_dir():
            self._expand(path / _escape(head), rest, found)

    async def scan(self, pattern: str) -> List[str]:
        """Keys matching `pattern`, listing one directory level per segment.

        A ``*`` inside a segment matches within that segment only, so
        ``chat/*/index`` lists the chat directories and stats their
        ``index`` files without descending into messages. A final ``*``
        segment matches the whole subtree below it.
        """
        found: List[str] = []
        await asyncio.to_thread(self._expand, self.data_dir, pattern.split("/"), found)
        return found

    async def clear(self) -> bool:
        def _clear() -> bool:
            for child in self.data_dir.iterdir():
                if child.is_dir():
                    shutil.rmtree(child)
                else:
                    child.unlink()
            return not any(self.data_dir.iterdir())

        try:
            return await asyncio.to_thread(_clear)
        except OSError:
            logger.warning("FileEngine failed to clear %s", self.data_dir, exc_info=True)
            return False

    async def modified(self, key: str) -> Optional[int]:
        try:
            st = await asyncio.to_thread(os.stat, self._path_for(key))
        except (FileNotFoundError, NotADirectoryError):
            return None
        return st.st_mtime_ns

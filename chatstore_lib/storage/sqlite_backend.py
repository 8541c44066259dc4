"""Single-table SQLite storage engine.

Every key is one row of ``kv(key, value, modified)``. The engine implements
only the minimal :class:`Engine` contract; listing and pagination go through
the store's full-iteration fallback. Blocking sqlite3 calls run in worker
threads, each with its own connection.
"""
from __future__ import annotations

import asyncio
import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

from .base import Engine, next_stamp

logger = logging.getLogger(__name__)

# Rows fetched per round trip while iterating keys.
BATCH_SIZE = 100


class SQLiteEngine(Engine):
    def __init__(self, db_path: str | Path = "data/store.db", table: str = "kv") -> None:
        if not table.isidentifier():
            raise ValueError(f"invalid table name {table!r}")
        self.db_path = str(db_path)
        self.table = table
        self._local = threading.local()
        self._ensure_table()

    @property
    def conn(self) -> sqlite3.Connection:
        """Connection bound to the calling thread."""
        if getattr(self._local, "conn", None) is None:
            self._local.conn = sqlite3.connect(self.db_path, check_same_thread=False, timeout=30.0)
            self._local.conn.execute("PRAGMA journal_mode=WAL")
        return self._local.conn

    @contextmanager
    def transaction(self):
        conn = self.conn
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise

    def close(self) -> None:
        if getattr(self._local, "conn", None) is not None:
            self._local.conn.close()
            self._local.conn = None

    def _ensure_table(self) -> None:
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        with self.transaction() as conn:
            conn.execute(f"""
                CREATE TABLE IF NOT EXISTS {self.table} (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    modified INTEGER NOT NULL
                )
            """)

    def _fetch(self, sql: str, params: tuple = ()):
        return self.conn.execute(sql, params).fetchall()

    def _execute(self, sql: str, params: tuple = ()) -> int:
        with self.transaction() as conn:
            return conn.execute(sql, params).rowcount

    async def has(self, key: str) -> bool:
        rows = await asyncio.to_thread(self._fetch, f"SELECT 1 FROM {self.table} WHERE key = ?", (key,))
        return bool(rows)

    async def get(self, key: str, fallback: Optional[str] = None) -> Optional[str]:
        rows = await asyncio.to_thread(self._fetch, f"SELECT value FROM {self.table} WHERE key = ?", (key,))
        return rows[0][0] if rows else fallback

    async def set(self, key: str, value: Optional[str]) -> bool:
        if value is None:
            await self.delete(key)
            return not await self.has(key)
        try:
            await asyncio.to_thread(
                self._execute,
                f"""
                INSERT INTO {self.table} (key, value, modified) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, modified = excluded.modified
                """,
                (key, value, next_stamp()),
            )
        except sqlite3.Error:
            logger.warning("SQLiteEngine failed to write %s", key, exc_info=True)
            return False
        return True

    async def delete(self, key: str) -> bool:
        try:
            count = await asyncio.to_thread(self._execute, f"DELETE FROM {self.table} WHERE key = ?", (key,))
        except sqlite3.Error:
            logger.warning("SQLiteEngine failed to delete %s", key, exc_info=True)
            return False
        return count > 0

    async def keys(self) -> AsyncIterator[str]:
        # Keyset pagination keeps memory flat for large tables.
        last = None
        while True:
            if last is None:
                rows = await asyncio.to_thread(
                    self._fetch, f"SELECT key FROM {self.table} ORDER BY key LIMIT ?", (BATCH_SIZE,)
                )
            else:
                rows = await asyncio.to_thread(
                    self._fetch, f"SELECT key FROM {self.table} WHERE key > ? ORDER BY key LIMIT ?", (last, BATCH_SIZE)
                )
            for (key,) in rows:
                yield key
            if len(rows) < BATCH_SIZE:
                return
            last = rows[-1][0]

    async def clear(self) -> bool:
        try:
            await asyncio.to_thread(self._execute, f"DELETE FROM {self.table}")
        except sqlite3.Error:
            logger.warning("SQLiteEngine failed to clear %s", self.table, exc_info=True)
            return False
        return True

    async def modified(self, key: str) -> Optional[int]:
        rows = await asyncio.to_thread(self._fetch, f"SELECT modified FROM {self.table} WHERE key = ?", (key,))
        return rows[0][0] if rows else None

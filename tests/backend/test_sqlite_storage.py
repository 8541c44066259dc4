import asyncio
import sqlite3

import pytest

from chatstore_lib.storage import sqlite_backend
from chatstore_lib.storage.sqlite_backend import SQLiteEngine


def test_rows_survive_reopen(tmp_path):
    db = tmp_path / 'store.db'

    async def write():
        e = SQLiteEngine(db_path=db)
        await e.set('contact/a/index', 'A')
        e.close()

    asyncio.run(write())
    e = SQLiteEngine(db_path=db)
    assert asyncio.run(e.get('contact/a/index')) == 'A'
    rows = sqlite3.connect(str(db)).execute('SELECT key, value FROM kv').fetchall()
    assert rows == [('contact/a/index', 'A')]


def test_keys_span_batches(tmp_path, monkeypatch):
    monkeypatch.setattr(sqlite_backend, 'BATCH_SIZE', 3)
    e = SQLiteEngine(db_path=tmp_path / 'store.db')
    keys = [f'contact/{i:02d}/index' for i in range(10)]

    async def run():
        for k in keys:
            await e.set(k, 'v')
        return [k async for k in e.keys()]

    assert asyncio.run(run()) == keys


def test_custom_table_name(tmp_path):
    e = SQLiteEngine(db_path=tmp_path / 'store.db', table='acc_1')
    asyncio.run(e.set('k', 'v'))
    assert asyncio.run(e.get('k')) == 'v'


def test_rejects_unsafe_table_name(tmp_path):
    with pytest.raises(ValueError):
        SQLiteEngine(db_path=tmp_path / 'store.db', table='kv; DROP TABLE x')


def test_write_failure_returns_false(tmp_path):
    e = SQLiteEngine(db_path=tmp_path / 'store.db')

    async def run():
        await asyncio.to_thread(e._execute, 'DROP TABLE kv')
        return await e.set('k', 'v')

    assert asyncio.run(run()) is False

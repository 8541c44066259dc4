import asyncio
import json

import pytest

from chatstore_lib.config import StoreConfig
from chatstore_lib.storage import (
    EncryptedSerializer,
    FileEngine,
    MemoryEngine,
    SQLiteEngine,
    create_store,
)
from chatstore_lib.storage.s3_backend import S3Engine


def test_create_store_file(tmp_path):
    data_dir = tmp_path / 'data_file'
    s = create_store(engine='file', data_dir=str(data_dir))
    assert isinstance(s.engine, FileEngine)
    asyncio.run(s.document.set('creds', {'a': [1, 2]}))
    assert asyncio.run(s.document.get('creds')) == {'a': [1, 2]}
    assert (data_dir / 'document' / 'creds' / 'index').is_file()


def test_create_store_memory():
    s = create_store(StoreConfig(engine='memory'))
    assert isinstance(s.engine, MemoryEngine)


def test_create_store_sqlite(tmp_path):
    s = create_store(engine='sqlite', sqlite_path=str(tmp_path / 'db' / 'store.db'))
    assert isinstance(s.engine, SQLiteEngine)
    asyncio.run(s.document.set('x', 1))
    assert asyncio.run(s.document.get('x')) == 1


def test_create_store_encrypted(tmp_path):
    data_dir = tmp_path / 'data_enc'
    s = create_store(engine='file', data_dir=str(data_dir), serializer='encrypted', password='pw')
    assert isinstance(s.serializer, EncryptedSerializer)
    asyncio.run(s.document.set('secret', {'foo': 'bar'}))
    assert asyncio.run(s.document.get('secret')) == {'foo': 'bar'}
    on_disk = (data_dir / 'document' / 'secret' / 'index').read_text(encoding='utf-8')
    assert 'foo' not in on_disk
    assert json.loads(on_disk)['mode'] == 'password'


def test_create_store_encrypted_requires_password(tmp_path, monkeypatch):
    monkeypatch.delenv('CHATSTORE_PASSWORD', raising=False)
    with pytest.raises(ValueError):
        create_store(engine='memory', serializer='encrypted')


def test_create_store_s3():
    s = create_store(engine='s3', s3_bucket='chat-bucket', s3_prefix='chatstore/acc', s3_region='us-east-1')
    assert isinstance(s.engine, S3Engine)
    assert s.engine.bucket == 'chat-bucket'
    assert s.engine.prefix == 'chatstore/acc'


def test_create_store_s3_requires_bucket():
    with pytest.raises(ValueError):
        create_store(engine='s3')

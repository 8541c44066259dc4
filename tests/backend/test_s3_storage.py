import asyncio
from datetime import datetime, timezone

from botocore.exceptions import EndpointConnectionError

from chatstore_lib.storage import s3_backend
from chatstore_lib.storage.s3_backend import S3Engine
from tests.helpers import FakeS3, client_error, drain


class BrokenS3(FakeS3):
    def put_object(self, **kw):
        raise EndpointConnectionError(endpoint_url='https://s3.example.invalid')

    def delete_object(self, **kw):
        raise client_error('AccessDenied', 'DeleteObject')


def test_objects_live_under_the_account_prefix():
    client = FakeS3()
    a = S3Engine(client, 'bucket', prefix='chatstore/acc1/')
    b = S3Engine(client, 'bucket', prefix='chatstore/acc2')

    async def run():
        await a.set('contact/x@s.whatsapp.net/index', 'A')
        await b.set('contact/x@s.whatsapp.net/index', 'B')
        assert await drain(a.keys()) == ['contact/x@s.whatsapp.net/index']
        assert await a.clear()
        assert await b.get('contact/x@s.whatsapp.net/index') == 'B'

    asyncio.run(run())
    assert list(client.objects) == [('bucket', 'chatstore/acc2/contact/x@s.whatsapp.net/index')]


def test_scan_lists_by_literal_prefix_across_pages():
    client = FakeS3(page_size=2)
    e = S3Engine(client, 'bucket', prefix='p')

    async def run():
        for i in range(5):
            await e.set(f'chat/c{i}/index', str(i))
            await e.set(f'chat/c{i}/message/m/index', 'm')
        await e.set('contact/c0/index', 'x')
        return await e.scan('chat/c3/*')

    assert asyncio.run(run()) == ['chat/c3/index', 'chat/c3/message/m/index']
    # '*' spans segments here, so nested message records come back too
    assert len(asyncio.run(e.scan('chat/*/index'))) == 10


def test_recency_comes_from_object_metadata():
    client = FakeS3()
    e = S3Engine(client, 'bucket', prefix='p')
    asyncio.run(e.set('contact/a/index', 'v'))
    stamp = asyncio.run(e.modified('contact/a/index'))
    assert stamp == int(client.objects[('bucket', 'p/contact/a/index')]['Metadata'][s3_backend.STAMP_META])


def test_recency_falls_back_to_last_modified():
    client = FakeS3()
    when = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
    client.objects[('bucket', 'p/contact/a/index')] = {'Body': b'{}', 'Metadata': {}, 'LastModified': when}
    e = S3Engine(client, 'bucket', prefix='p')
    assert asyncio.run(e.modified('contact/a/index')) == int(when.timestamp() * 1_000_000_000)


def test_clear_deletes_in_batches(monkeypatch):
    monkeypatch.setattr(s3_backend, 'DELETE_BATCH', 3)
    client = FakeS3()
    e = S3Engine(client, 'bucket', prefix='p')

    async def run():
        for i in range(7):
            await e.set(f'contact/{i}/index', 'v')
        assert await e.clear() is True
        return await drain(e.keys())

    assert asyncio.run(run()) == []


def test_backend_failure_returns_false():
    client = BrokenS3()
    e = S3Engine(client, 'bucket', prefix='p')
    assert asyncio.run(e.set('contact/x/index', 'v')) is False
    client.objects[('bucket', 'p/contact/x/index')] = {
        'Body': b'v', 'Metadata': {}, 'LastModified': datetime.now(timezone.utc),
    }
    assert asyncio.run(e.delete('contact/x/index')) is False
    assert asyncio.run(e.has('contact/x/index')) is True

import io
import re
from datetime import datetime, timezone
from typing import Any, AsyncIterator, List, Optional

from botocore.exceptions import ClientError

from chatstore_lib.storage.base import Engine


async def drain(aiter: AsyncIterator[Any]) -> List[Any]:
    return [item async for item in aiter]


class UnscannedEngine(Engine):
    """Expose only the minimal Engine contract of a wrapped engine.

    Lets tests run the same data through the store's fallback path that a
    scanning engine would otherwise serve with ``scan``.
    """

    def __init__(self, inner: Engine) -> None:
        self.inner = inner

    async def has(self, key: str) -> bool:
        return await self.inner.has(key)

    async def get(self, key: str, fallback: Optional[str] = None) -> Optional[str]:
        return await self.inner.get(key, fallback)

    async def set(self, key: str, value: Optional[str]) -> bool:
        return await self.inner.set(key, value)

    async def delete(self, key: str) -> bool:
        return await self.inner.delete(key)

    async def keys(self) -> AsyncIterator[str]:
        async for key in self.inner.keys():
            yield key

    async def modified(self, key: str) -> Optional[int]:
        return await self.inner.modified(key)


def _redis_glob(pattern: str):
    out, i = [], 0
    while i < len(pattern):
        c = pattern[i]
        if c == '\\' and i + 1 < len(pattern):
            out.append(re.escape(pattern[i + 1]))
            i += 2
            continue
        out.append('.*' if c == '*' else '.' if c == '?' else re.escape(c))
        i += 1
    return re.compile('^' + ''.join(out) + r'\Z', re.DOTALL)


class FakeRedis:
    """In-memory stand-in for the parts of ``redis.asyncio.Redis`` the engine uses.

    Returns bytes like a client created without ``decode_responses``.
    """

    def __init__(self):
        self.data = {}
        self.zsets = {}

    async def exists(self, *names):
        return sum(1 for n in names if n in self.data)

    async def get(self, name):
        value = self.data.get(name)
        return None if value is None else str(value).encode('utf-8')

    async def set(self, name, value):
        self.data[name] = value
        return True

    async def delete(self, *names):
        removed = 0
        for n in names:
            if self.data.pop(n, None) is not None or self.zsets.pop(n, None) is not None:
                removed += 1
        return removed

    async def incr(self, name):
        self.data[name] = int(self.data.get(name, 0)) + 1
        return self.data[name]

    async def zadd(self, name, mapping):
        self.zsets.setdefault(name, {}).update(mapping)
        return len(mapping)

    async def zrem(self, name, *members):
        zset = self.zsets.get(name, {})
        return sum(1 for m in members if zset.pop(m, None) is not None)

    async def zscore(self, name, member):
        score = self.zsets.get(name, {}).get(member)
        return None if score is None else float(score)

    async def scan_iter(self, match=None, count=None):
        rx = _redis_glob(match or '*')
        for name in list(self.data):
            if rx.match(name):
                yield name.encode('utf-8')


def client_error(code, operation):
    return ClientError({'Error': {'Code': code, 'Message': code}}, operation)


class FakeS3:
    """In-memory stand-in for the parts of a ``boto3`` S3 client the engine uses.

    Lists in key order, ``page_size`` objects per ListObjectsV2 page.
    """

    def __init__(self, page_size=2):
        self.objects = {}
        self.page_size = page_size
        self.list_calls = 0

    def _obj(self, Bucket, Key, operation):
        obj = self.objects.get((Bucket, Key))
        if obj is None:
            raise client_error('404' if operation == 'HeadObject' else 'NoSuchKey', operation)
        return obj

    def head_object(self, Bucket, Key):
        obj = self._obj(Bucket, Key, 'HeadObject')
        return {'Metadata': dict(obj['Metadata']), 'LastModified': obj['LastModified'], 'ContentLength': len(obj['Body'])}

    def get_object(self, Bucket, Key):
        return {'Body': io.BytesIO(self._obj(Bucket, Key, 'GetObject')['Body'])}

    def put_object(self, Bucket, Key, Body, ContentType=None, Metadata=None):
        self.objects[(Bucket, Key)] = {
            'Body': bytes(Body),
            'Metadata': dict(Metadata or {}),
            'LastModified': datetime.now(timezone.utc).replace(microsecond=0),
        }
        return {}

    def delete_object(self, Bucket, Key):
        self.objects.pop((Bucket, Key), None)
        return {}

    def delete_objects(self, Bucket, Delete):
        for obj in Delete['Objects']:
            self.objects.pop((Bucket, obj['Key']), None)
        return {}

    def get_paginator(self, operation):
        assert operation == 'list_objects_v2'
        return self

    def paginate(self, Bucket, Prefix=''):
        self.list_calls += 1
        names = sorted(k for b, k in self.objects if b == Bucket and k.startswith(Prefix))
        for i in range(0, len(names), self.page_size):
            yield {'Contents': [{'Key': k} for k in names[i : i + self.page_size]]}

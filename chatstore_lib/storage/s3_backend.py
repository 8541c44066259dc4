"""Amazon S3 (or S3-compatible) storage engine.

Each key is one object under ``{prefix}/{key}`` in a single bucket::

    chatstore/5491112345678/contact/5491112345678@s.whatsapp.net/index
    chatstore/5491112345678/chat/120363041234567890@g.us/message/3EB0A1/content

``scan`` lists by the literal part of the pattern (``ListObjectsV2`` with a
``Prefix``) and filters the rest client-side. S3 only reports
``LastModified`` to the second, so every write also records its
:func:`next_stamp` in the object metadata, which is the recency used for
pagination.

The engine takes an existing ``boto3`` S3 client so the caller owns
credentials, region and endpoint. Blocking client calls run in worker
threads.
"""
from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from .base import ScanEngine, next_stamp
from .keys import glob_regex, literal_prefix

logger = logging.getLogger(__name__)

STAMP_META = "chatstore-stamp"
# DeleteObjects accepts at most this many keys per request.
DELETE_BATCH = 1000

_MISSING = ("404", "NoSuchKey", "NotFound")


def _is_missing(exc: ClientError) -> bool:
    return exc.response.get("Error", {}).get("Code") in _MISSING


class S3Engine(ScanEngine):
    def __init__(self, client, bucket: str, prefix: str = "chatstore/default") -> None:
        if not bucket:
            raise ValueError("S3Engine requires a bucket name")
        self._client = client
        self.bucket = bucket
        self.prefix = prefix.strip("/")

    def _name(self, key: str) -> str:
        return f"{self.prefix}/{key}" if self.prefix else key

    def _strip(self, name: str) -> str:
        return name[len(self.prefix) + 1 :] if self.prefix else name

    async def _head(self, key: str) -> Optional[dict]:
        try:
            return await asyncio.to_thread(self._client.head_object, Bucket=self.bucket, Key=self._name(key))
        except ClientError as exc:
            if _is_missing(exc):
                return None
            raise

    async def has(self, key: str) -> bool:
        return await self._head(key) is not None

    async def get(self, key: str, fallback: Optional[str] = None) -> Optional[str]:
        def _read() -> Optional[str]:
            try:
                response = self._client.get_object(Bucket=self.bucket, Key=self._name(key))
            except ClientError as exc:
                if _is_missing(exc):
                    return None
                raise
            return response["Body"].read().decode("utf-8")

        value = await asyncio.to_thread(_read)
        return fallback if value is None else value

    async def set(self, key: str, value: Optional[str]) -> bool:
        if value is None:
            await self.delete(key)
            return not await self.has(key)
        try:
            await asyncio.to_thread(
                self._client.put_object,
                Bucket=self.bucket,
                Key=self._name(key),
                Body=value.encode("utf-8"),
                ContentType="application/json",
                Metadata={STAMP_META: str(next_stamp())},
            )
        except (BotoCoreError, ClientError):
            logger.warning("S3Engine failed to write %s", key, exc_info=True)
            return False
        logger.debug("S3Engine wrote %s (%d chars)", key, len(value))
        return True

    async def delete(self, key: str) -> bool:
        # DeleteObject succeeds for absent keys, so look first to report removal.
        try:
            if not await self.has(key):
                return False
            await asyncio.to_thread(self._client.delete_object, Bucket=self.bucket, Key=self._name(key))
        except (BotoCoreError, ClientError):
            logger.warning("S3Engine failed to delete %s", key, exc_info=True)
            return False
        logger.debug("S3Engine deleted %s", key)
        return True

    async def _list(self, key_prefix: str) -> AsyncIterator[str]:
        """Lazily yield keys starting with `key_prefix`, one ListObjectsV2 page per step."""
        pages = iter(
            self._client.get_paginator("list_objects_v2").paginate(
                Bucket=self.bucket, Prefix=self._name(key_prefix)
            )
        )
        while True:
            page = await asyncio.to_thread(next, pages, None)
            if page is None:
                return
            for obj in page.get("Contents", []):
                yield self._strip(obj["Key"])

    async def keys(self) -> AsyncIterator[str]:
        async for key in self._list(""):
            yield key

    async def scan(self, pattern: str) -> List[str]:
        rx = glob_regex(pattern)
        return [key async for key in self._list(literal_prefix(pattern)) if rx.match(key)]

    async def clear(self) -> bool:
        try:
            names = [self._name(key) async for key in self.keys()]
            for i in range(0, len(names), DELETE_BATCH):
                batch = names[i : i + DELETE_BATCH]
                response = await asyncio.to_thread(
                    self._client.delete_objects,
                    Bucket=self.bucket,
                    Delete={"Objects": [{"Key": name} for name in batch], "Quiet": True},
                )
                for error in response.get("Errors", []):
                    logger.warning("S3Engine could not delete %s: %s", error.get("Key"), error.get("Message"))
        except (BotoCoreError, ClientError):
            logger.warning("S3Engine failed to clear %s/%s", self.bucket, self.prefix, exc_info=True)
            return False
        async for _ in self.keys():
            return False
        return True

    async def modified(self, key: str) -> Optional[int]:
        head = await self._head(key)
        if head is None:
            return None
        stamp = head.get("Metadata", {}).get(STAMP_META)
        if stamp is not None:
            return int(stamp)
        # Objects written by other tools only carry LastModified.
        return int(head["LastModified"].timestamp() * 1_000_000_000)

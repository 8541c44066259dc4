"""Storage abstraction package for chatstore.

Use :func:`create_store` to build a :class:`Store` from configuration::

    store = create_store(engine="sqlite", sqlite_path="data/store.db")
"""
from __future__ import annotations

import logging
from typing import Any

from chatstore_lib.config import StoreConfig

from .base import Engine, ScanEngine
from .errors import DecodeError, MalformedKey, StorageError
from .file_backend import FileEngine
from .keys import Namespace
from .memory_backend import MemoryEngine
from .serializer import EncryptedSerializer, JSONSerializer, Serializer
from .sqlite_backend import SQLiteEngine
from .store import Store

logger = logging.getLogger(__name__)

__all__ = [
    "Engine",
    "ScanEngine",
    "FileEngine",
    "MemoryEngine",
    "SQLiteEngine",
    "Store",
    "Namespace",
    "JSONSerializer",
    "EncryptedSerializer",
    "StorageError",
    "MalformedKey",
    "DecodeError",
    "create_engine",
    "create_serializer",
    "create_store",
]


def create_engine(config: StoreConfig) -> Engine:
    if config.engine == "file":
        return FileEngine(config.data_dir)
    if config.engine == "memory":
        return MemoryEngine()
    if config.engine == "sqlite":
        return SQLiteEngine(config.sqlite_path)
    if config.engine == "redis":
        from redis.asyncio import Redis
        from .redis_backend import RedisEngine

        return RedisEngine(Redis.from_url(config.redis_url), prefix=config.redis_prefix)
    if config.engine == "s3":
        if not config.s3_bucket:
            raise ValueError("s3 engine requires s3_bucket")
        import boto3
        from .s3_backend import S3Engine

        client = boto3.client("s3", region_name=config.s3_region, endpoint_url=config.s3_endpoint_url)
        return S3Engine(client, config.s3_bucket, prefix=config.s3_prefix)
    raise ValueError(f"unknown engine {config.engine!r}")


def create_serializer(config: StoreConfig) -> Serializer:
    if config.serializer == "json":
        return JSONSerializer()
    if config.serializer == "encrypted":
        if not config.password:
            raise ValueError("encrypted serializer requires a password")
        return EncryptedSerializer(password=config.password)
    raise ValueError(f"unknown serializer {config.serializer!r}")


def create_store(config: StoreConfig | None = None, **overrides: Any) -> Store:
    """Build a Store from `config`, with keyword `overrides` applied on top."""
    cfg = config or StoreConfig()
    if overrides:
        cfg = StoreConfig(**{**cfg.model_dump(), **overrides})
    logger.debug("Creating %s store (serializer=%s)", cfg.engine, cfg.serializer)
    return Store(create_engine(cfg), create_serializer(cfg))

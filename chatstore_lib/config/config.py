"""Store configuration.

Settings are read from a YAML file (``data/config/store_config.yml`` by
default) into a :class:`StoreConfig`. A missing file yields the defaults, a
file-backed store under ``.store``. Example::

    engine: sqlite
    sqlite_path: data/store.db
    serializer: encrypted
    log_level: info

or, for object storage::

    engine: s3
    s3_bucket: my-bucket
    s3_prefix: chatstore/5491112345678
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("data/config/store_config.yml")
PASSWORD_ENV = "CHATSTORE_PASSWORD"


class StoreConfig(BaseModel):
    engine: Literal["file", "memory", "sqlite", "redis", "s3"] = "file"
    data_dir: str = ".store"
    sqlite_path: str = "data/store.db"
    redis_url: str = "redis://localhost:6379/0"
    redis_prefix: str = "chatstore:default"
    s3_bucket: Optional[str] = None
    s3_prefix: str = "chatstore/default"
    s3_region: Optional[str] = None
    # For S3-compatible services (MinIO, R2, ...).
    s3_endpoint_url: Optional[str] = None
    serializer: Literal["json", "encrypted"] = "json"
    password: Optional[str] = None
    log_level: Optional[str] = None

    def model_post_init(self, __context) -> None:
        if self.password is None:
            self.password = os.environ.get(PASSWORD_ENV)


def load_config(path: str | Path | None = None) -> StoreConfig:
    """Read `path` (or the default location) into a StoreConfig.

    Raises ValueError when the file exists but is not a valid mapping.
    """
    cfg_path = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    if not cfg_path.exists():
        logger.debug("No store config at %s; using defaults", cfg_path)
        return StoreConfig()
    with cfg_path.open("r", encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"invalid config format in {cfg_path}: parse error") from e
    if not isinstance(data, dict):
        raise ValueError(f"invalid config format in {cfg_path}: expected mapping")
    try:
        cfg = StoreConfig(**data)
    except ValidationError as e:
        raise ValueError(f"invalid config in {cfg_path}: {e}") from e
    logger.info("Loaded store config from %s (engine=%s)", cfg_path, cfg.engine)
    return cfg


def dump_template(cfg: StoreConfig | None = None) -> str:
    """YAML text for `cfg` (defaults when omitted), without secrets."""
    data = (cfg or StoreConfig()).model_dump(exclude={"password"})
    return yaml.safe_dump(data, sort_keys=False)

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import yaml

from chatstore_lib.config.config import DEFAULT_CONFIG_PATH

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s]: %(message)s"


def configure_logging(config_path: Optional[Path] = None) -> logging.Logger:
    """Configure root logging for an application embedding the store.

    Reads ``log_level`` from the store config file when present and
    installs the root handler at that level (WARNING otherwise). Returns
    a module logger for the caller.
    """
    level = logging.WARNING

    cfg_path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH
    if cfg_path.exists():
        try:
            with cfg_path.open("r", encoding="utf-8") as f:
                cfg = yaml.safe_load(f) or {}
            name = cfg.get("log_level") if isinstance(cfg, dict) else None
            if isinstance(name, str):
                numeric = getattr(logging, name.upper(), None)
                if isinstance(numeric, int):
                    level = numeric
        except (OSError, yaml.YAMLError):
            # Unreadable config keeps the default level
            logging.getLogger(__name__).warning("Failed to read log level from %s", cfg_path, exc_info=True)

    # Reconfigure root handlers to use the selected level and format
    for handler in logging.root.handlers[:]:
        logging.root.removeHandler(handler)
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logger = logging.getLogger(__name__)

    # Keep known noisy libraries quiet by default
    for noisy in ("redis", "asyncio", "botocore", "boto3", "urllib3"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
    logger.info("Log level set to: %s", logging.getLevelName(level))

    return logger

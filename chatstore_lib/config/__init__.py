from .config import StoreConfig, load_config, dump_template

__all__ = ["StoreConfig", "load_config", "dump_template"]

# src/lookup_rotator/utils/__init__.py

from .paths import (
    get_default_root,
    get_logs_dir,
    get_cache_dir,
    get_data_file,
)
from .resilient_io import (
    ResilientStateWriter,
    atomic_write_json,
    load_json_document,
)

__all__ = [
    "get_default_root",
    "get_logs_dir",
    "get_cache_dir",
    "get_data_file",
    "ResilientStateWriter",
    "atomic_write_json",
    "load_json_document",
]

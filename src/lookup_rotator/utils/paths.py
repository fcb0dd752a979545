# src/lookup_rotator/utils/paths.py
"""
Where the orchestrator keeps its files.

Everything lives under one data root: api_settings.json and .env at the top,
response caches in cache/, rotating logs in logs/. The root is resolved in
this order: an explicit argument, LOOKUP_DATA_DIR, the folder of a frozen
executable, the working directory.
"""

import os
import sys
from pathlib import Path
from typing import Optional, Union

PathLike = Union[str, Path]


def get_default_root() -> Path:
    env_root = os.environ.get("LOOKUP_DATA_DIR")
    if env_root:
        return Path(env_root).expanduser()
    if getattr(sys, "frozen", False):
        # bundled builds keep their data next to the binary
        return Path(sys.executable).parent
    return Path.cwd()


def _resolve(root: Optional[PathLike]) -> Path:
    return get_default_root() if root is None else Path(root)


def _ensure(directory: Path) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    return directory


def get_logs_dir(root: Optional[PathLike] = None) -> Path:
    """Return <root>/logs, created on demand."""
    return _ensure(_resolve(root) / "logs")


def get_cache_dir(root: Optional[PathLike] = None, subdir: Optional[str] = None) -> Path:
    """Return <root>/cache (or a named folder inside it), created on demand."""
    folder = _resolve(root) / "cache"
    return _ensure(folder / subdir if subdir else folder)


def get_data_file(filename: str, root: Optional[PathLike] = None) -> Path:
    """Path of a top-level data file such as api_settings.json. Not created."""
    return _resolve(root) / filename

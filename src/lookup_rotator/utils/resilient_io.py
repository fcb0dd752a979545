# src/lookup_rotator/utils/resilient_io.py
"""
Durable JSON documents for the settings file and the response caches.

Reads are forgiving: a missing, blank, unparsable or non-object file gives
back a fresh copy of the caller's default so startup never fails on a bad
file. Writes are strict: the whole document goes to a sibling temp file which
is fsynced and then renamed over the target, and any failure is raised so the
owner can report it.
"""

import copy
import json
import logging
import os
import tempfile
import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union


def load_json_document(
    path: Union[str, Path],
    default: Dict[str, Any],
    logger: logging.Logger,
) -> Dict[str, Any]:
    """
    Load a JSON object from `path`.

    Returns a deep copy of `default` whenever the file cannot serve as the
    document; the problem is logged as a warning.
    """
    path = Path(path)
    if not path.exists():
        return copy.deepcopy(default)

    problem = None
    data: Any = None
    try:
        text = path.read_text(encoding="utf-8")
        if text.strip():
            data = json.loads(text)
    except (OSError, UnicodeDecodeError) as e:
        problem = f"unreadable ({e})"
    except json.JSONDecodeError as e:
        problem = f"not valid JSON ({e})"

    if problem is None and data is not None and not isinstance(data, dict):
        problem = f"holds a {type(data).__name__}, expected an object"

    if problem:
        logger.warning(f"{path.name} is {problem}; starting from an empty document.")
    if problem or data is None:
        return copy.deepcopy(default)
    return data


def _discard(tmp_name: str) -> None:
    try:
        os.unlink(tmp_name)
    except OSError:
        pass


def atomic_write_json(path: Union[str, Path], data: Any, indent: int = 2) -> None:
    """
    Replace `path` with `data` serialized as JSON, all or nothing.

    Serialization happens before anything touches the disk, so unserializable
    data leaves the old file in place.

    Raises:
        TypeError, ValueError: `data` cannot be serialized
        OSError: the temp file could not be written or renamed
    """
    target = Path(path)
    payload = json.dumps(data, indent=indent)
    target.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=".tmp_", suffix=".json")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(payload)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, target)
    except BaseException:
        _discard(tmp_name)
        raise


class ResilientStateWriter:
    """
    Single owner of the on-disk copy of one JSON document.

    Every write() replaces the full document. Writers for the same file queue
    on a lock. A failed write is counted, logged on the first occurrence and
    every tenth after that, then re-raised; the owner keeps its in-memory
    state and decides what the failure means for its caller.
    """

    def __init__(
        self,
        path: Union[str, Path],
        logger: logging.Logger,
        writer: Optional[Callable[[Path, Any], None]] = None,
    ):
        self.path = Path(path)
        self.logger = logger
        self._write_fn = writer or atomic_write_json
        self._lock = threading.Lock()
        self._failures = 0
        self._attempted_at: Optional[float] = None
        self._succeeded_at: Optional[float] = None

    def write(self, data: Any) -> None:
        with self._lock:
            self._attempted_at = time.time()
            try:
                self._write_fn(self.path, data)
            except (OSError, TypeError, ValueError) as e:
                self._failures += 1
                if self._failures % 10 == 1:
                    self.logger.warning(
                        f"Could not save {self.path.name} (failure {self._failures}): {e}"
                    )
                raise
            self._failures = 0
            self._succeeded_at = self._attempted_at

    @property
    def is_healthy(self) -> bool:
        """False while the most recent write attempt failed."""
        return self._failures == 0

    def get_health_info(self) -> Dict[str, Any]:
        return {
            "path": str(self.path),
            "healthy": self.is_healthy,
            "failure_count": self._failures,
            "last_attempt": self._attempted_at,
            "last_success": self._succeeded_at,
        }

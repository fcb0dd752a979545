import threading
import time
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

from .error_handler import PersistenceError
from .utils.resilient_io import ResilientStateWriter, load_json_document

logger = logging.getLogger("lookup_rotator.response_cache")

DEFAULT_TTL_SECONDS = 24 * 60 * 60


class CacheState(str, Enum):
    FRESH = "fresh"
    STALE = "stale"
    ABSENT = "absent"


@dataclass
class CacheEntry:
    value: Dict[str, Any]
    created_at: float


@dataclass(frozen=True)
class CacheLookup:
    """Tri-state read result: expired entries are reported, not hidden."""

    state: CacheState
    value: Optional[Dict[str, Any]] = None
    age_seconds: Optional[float] = None


class ResponseCache:
    """
    TTL cache of normalized lookup results, persisted as one JSON document.

    Layout on disk:

        {"8.8.8.8": {"value": {...}, "created_at": 1700000000.0}}

    Expired entries read as absent and stay in the table until overwritten or
    purge_expired() is called. Every put() rewrites the whole file.
    """

    def __init__(
        self,
        path: Union[str, Path],
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
        writer: Optional[ResilientStateWriter] = None,
    ) -> None:
        self.path = Path(path)
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._writer = writer or ResilientStateWriter(self.path, logger)
        self._store: Dict[str, CacheEntry] = self._load()
        self._hits = 0
        self._misses = 0
        self._stale = 0

    @staticmethod
    def make_key(subject: str) -> str:
        return subject.strip().lower()

    def _load(self) -> Dict[str, CacheEntry]:
        raw = load_json_document(self.path, {}, logger)
        store: Dict[str, CacheEntry] = {}
        for key, item in raw.items():
            try:
                store[key] = CacheEntry(
                    value=dict(item["value"]), created_at=float(item["created_at"])
                )
            except (KeyError, TypeError, ValueError):
                logger.debug(f"Dropping malformed cache entry '{key}' from {self.path.name}")
        if store:
            logger.info(f"Loaded {len(store)} cached result(s) from {self.path.name}")
        return store

    def _serialize(self) -> Dict[str, Any]:
        return {
            key: {"value": entry.value, "created_at": entry.created_at}
            for key, entry in self._store.items()
        }

    def lookup(self, key: str) -> CacheLookup:
        key = self.make_key(key)
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                self._misses += 1
                return CacheLookup(CacheState.ABSENT)

            age = self._clock() - entry.created_at
            if age < self.ttl_seconds:
                self._hits += 1
                return CacheLookup(CacheState.FRESH, entry.value, age)

            self._stale += 1
            return CacheLookup(CacheState.STALE, entry.value, age)

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        """Fresh value for `key`, or None for both absent and expired entries."""
        result = self.lookup(key)
        return result.value if result.state is CacheState.FRESH else None

    def put(self, key: str, value: Dict[str, Any]) -> None:
        """
        Store `value` with created_at = now and rewrite the cache file.

        Raises:
            PersistenceError: the file write failed (the entry stays in memory)
        """
        key = self.make_key(key)
        with self._lock:
            self._store[key] = CacheEntry(value=value, created_at=self._clock())
            try:
                self._writer.write(self._serialize())
            except (OSError, TypeError, ValueError) as e:
                raise PersistenceError(str(self.path), e) from e

    def purge_expired(self) -> int:
        """Drop expired entries and rewrite the file. Returns the count removed."""
        with self._lock:
            now = self._clock()
            expired = [
                k for k, v in self._store.items() if now - v.created_at >= self.ttl_seconds
            ]
            if not expired:
                return 0
            for k in expired:
                self._store.pop(k, None)
            try:
                self._writer.write(self._serialize())
            except (OSError, TypeError, ValueError) as e:
                raise PersistenceError(str(self.path), e) from e
            logger.info(f"Purged {len(expired)} expired cache entries from {self.path.name}")
            return len(expired)

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            now = self._clock()
            fresh = sum(
                1 for v in self._store.values() if now - v.created_at < self.ttl_seconds
            )
            return {
                "entries": len(self._store),
                "fresh": fresh,
                "expired": len(self._store) - fresh,
                "hits": self._hits,
                "misses": self._misses,
                "stale_reads": self._stale,
                "ttl_seconds": self.ttl_seconds,
                "disk": self._writer.get_health_info(),
            }

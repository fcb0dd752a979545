"""
Test suite for the TTL response cache and its JSON persistence.
"""
import json
import logging
from concurrent.futures import ThreadPoolExecutor

import pytest

from lookup_rotator.error_handler import PersistenceError
from lookup_rotator.response_cache import CacheState, ResponseCache
from lookup_rotator.utils.resilient_io import ResilientStateWriter

TTL = 24 * 60 * 60


@pytest.fixture
def cache_path(tmp_path):
    return tmp_path / "cache" / "ip_lookup_cache.json"


@pytest.fixture
def cache(cache_path, fake_clock):
    return ResponseCache(cache_path, ttl_seconds=TTL, clock=fake_clock)


class TestResponseCache:
    """Test get/put semantics and TTL expiry."""

    def test_put_then_get_returns_value(self, cache):
        cache.put("8.8.8.8", {"ip": "8.8.8.8", "city": "Mountain View"})
        assert cache.get("8.8.8.8") == {"ip": "8.8.8.8", "city": "Mountain View"}

    def test_missing_key_returns_none(self, cache):
        assert cache.get("1.1.1.1") is None
        assert cache.lookup("1.1.1.1").state is CacheState.ABSENT

    def test_keys_are_normalized(self, cache):
        cache.put("  Google.COM ", {"domain": "google.com"})
        assert cache.get("google.com") == {"domain": "google.com"}

    def test_entry_expires_after_ttl(self, cache, fake_clock):
        cache.put("8.8.8.8", {"ip": "8.8.8.8"})

        fake_clock.advance(TTL - 1)
        assert cache.get("8.8.8.8") is not None

        fake_clock.advance(1)
        assert cache.get("8.8.8.8") is None
        lookup = cache.lookup("8.8.8.8")
        assert lookup.state is CacheState.STALE
        assert lookup.value == {"ip": "8.8.8.8"}

    def test_put_overwrites_and_refreshes_timestamp(self, cache, fake_clock):
        cache.put("8.8.8.8", {"v": 1})
        fake_clock.advance(TTL - 10)
        cache.put("8.8.8.8", {"v": 2})
        fake_clock.advance(100)
        assert cache.get("8.8.8.8") == {"v": 2}

    def test_put_writes_whole_file(self, cache, cache_path, fake_clock):
        cache.put("8.8.8.8", {"ip": "8.8.8.8"})
        cache.put("1.1.1.1", {"ip": "1.1.1.1"})

        on_disk = json.loads(cache_path.read_text())
        assert set(on_disk) == {"8.8.8.8", "1.1.1.1"}
        assert on_disk["8.8.8.8"]["created_at"] == fake_clock.now

    def test_entries_survive_reload(self, cache, cache_path, fake_clock):
        cache.put("8.8.8.8", {"ip": "8.8.8.8"})
        reloaded = ResponseCache(cache_path, ttl_seconds=TTL, clock=fake_clock)
        assert reloaded.get("8.8.8.8") == {"ip": "8.8.8.8"}

    def test_concurrent_puts_keep_every_entry(self, cache, cache_path, fake_clock):
        subjects = [f"10.0.0.{i}" for i in range(1, 201)]

        def store_one(subject):
            cache.put(subject, {"ip": subject})

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(store_one, subjects))

        on_disk = json.loads(cache_path.read_text(encoding="utf-8"))
        assert set(on_disk) == set(subjects)
        reloaded = ResponseCache(cache_path, ttl_seconds=TTL, clock=fake_clock)
        assert all(reloaded.get(s) == {"ip": s} for s in subjects)
        assert [p.name for p in cache_path.parent.iterdir()] == [cache_path.name]

    def test_corrupt_file_starts_empty(self, cache_path, fake_clock):
        cache_path.parent.mkdir(parents=True)
        cache_path.write_text("[1, 2")
        cache = ResponseCache(cache_path, ttl_seconds=TTL, clock=fake_clock)
        assert cache.stats()["entries"] == 0

    def test_malformed_entries_are_dropped(self, cache_path, fake_clock):
        cache_path.parent.mkdir(parents=True)
        cache_path.write_text(
            json.dumps(
                {
                    "8.8.8.8": {"value": {"ip": "8.8.8.8"}, "created_at": fake_clock.now},
                    "1.1.1.1": {"value": {"ip": "1.1.1.1"}},
                }
            )
        )
        cache = ResponseCache(cache_path, ttl_seconds=TTL, clock=fake_clock)
        assert cache.get("8.8.8.8") == {"ip": "8.8.8.8"}
        assert cache.stats()["entries"] == 1

    def test_failed_write_raises_but_keeps_entry(self, cache_path, fake_clock):
        def failing_writer(path, data):
            raise OSError("read-only filesystem")

        writer = ResilientStateWriter(cache_path, logging.getLogger("test"), writer=failing_writer)
        cache = ResponseCache(cache_path, ttl_seconds=TTL, clock=fake_clock, writer=writer)

        with pytest.raises(PersistenceError):
            cache.put("8.8.8.8", {"ip": "8.8.8.8"})
        assert cache.get("8.8.8.8") == {"ip": "8.8.8.8"}

    def test_purge_expired(self, cache, cache_path, fake_clock):
        cache.put("8.8.8.8", {"ip": "8.8.8.8"})
        fake_clock.advance(TTL)
        cache.put("1.1.1.1", {"ip": "1.1.1.1"})

        assert cache.purge_expired() == 1
        assert set(json.loads(cache_path.read_text())) == {"1.1.1.1"}
        assert cache.purge_expired() == 0

    def test_stats_track_hits_misses_and_stale_reads(self, cache, fake_clock):
        cache.put("8.8.8.8", {"ip": "8.8.8.8"})
        cache.get("8.8.8.8")
        cache.get("9.9.9.9")
        fake_clock.advance(TTL)
        cache.get("8.8.8.8")

        stats = cache.stats()
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["stale_reads"] == 1
        assert stats["expired"] == 1

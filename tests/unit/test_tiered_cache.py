"""Unit tests for signalfusion.cache (TieredCache, MemoryStore, JsonDirectoryStore).

Covers:
- put returns LIVE; get returns CACHED within TTL and STALE beyond it
- reads never evict expired entries
- durable tier: hit re-populates memory; survives a new cache instance
- sweep removes exactly the entries older than max_age, in both tiers
- last-write-wins by updated_at; durable I/O errors are absorbed
- aget/aput run durable I/O in a worker thread, memory-only inline
"""

from __future__ import annotations

import asyncio
import threading
from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from signalfusion.cache.stores import JsonDirectoryStore, MemoryStore
from signalfusion.cache.tiered_cache import TieredCache
from signalfusion.models.signals import Freshness


@pytest.fixture
def cache(clock):
    return TieredCache(durable=MemoryStore(), default_ttl_seconds=300, clock=clock)


# ── Freshness ─────────────────────────────────────────────────────────────────────

class TestFreshness:
    def test_put_returns_live_entry(self, cache, t0):
        entry = cache.put("seismic:usgs", [1, 2, 3])
        assert entry.source is Freshness.LIVE
        assert entry.updated_at == t0
        assert entry.data == [1, 2, 3]

    def test_get_within_ttl_is_cached(self, cache, clock):
        cache.put("k", "v", ttl_seconds=60)
        clock.advance(60)
        assert cache.get("k").source is Freshness.CACHED

    def test_get_after_ttl_is_stale_not_evicted(self, cache, clock):
        cache.put("k", "v", ttl_seconds=60)
        clock.advance(61)
        entry = cache.get("k")
        assert entry is not None
        assert entry.source is Freshness.STALE
        assert entry.data == "v"
        # still there on a second read
        assert cache.get("k") is not None

    def test_default_ttl_applies(self, cache, clock):
        cache.put("k", "v")
        clock.advance(301)
        assert cache.get("k").source is Freshness.STALE

    def test_missing_key_returns_none(self, cache):
        assert cache.get("nope") is None
        assert "nope" not in cache


# ── Durable tier ──────────────────────────────────────────────────────────────────

class TestDurableTier:
    def test_durable_hit_repopulates_memory(self, clock):
        store = MemoryStore()
        first = TieredCache(durable=store, clock=clock)
        first.put("k", {"a": 1})

        second = TieredCache(durable=store, clock=clock)
        assert len(second) == 0
        entry = second.get("k")
        assert entry.data == {"a": 1}
        assert len(second) == 1

    def test_json_directory_store_survives_restart(self, tmp_path, clock):
        first = TieredCache(durable=JsonDirectoryStore(tmp_path), clock=clock)
        first.put("news:rss", [{"id": "x"}], ttl_seconds=900)

        second = TieredCache(durable=JsonDirectoryStore(tmp_path), clock=clock)
        entry = second.get("news:rss")
        assert entry is not None
        assert entry.data == [{"id": "x"}]
        assert entry.ttl_seconds == 900
        assert entry.updated_at == clock()

    def test_json_directory_store_keys(self, tmp_path, clock):
        store = JsonDirectoryStore(tmp_path)
        cache = TieredCache(durable=store, clock=clock)
        cache.put("a/b:c", 1)
        cache.put("d", 2)
        assert sorted(store.keys()) == ["a/b:c", "d"]

    def test_durable_write_error_is_absorbed(self, clock):
        store = MagicMock()
        store.read.return_value = None
        store.write.side_effect = OSError("disk full")
        cache = TieredCache(durable=store, clock=clock)

        entry = cache.put("k", "v")

        assert entry.data == "v"
        assert cache.get("k").data == "v"

    def test_durable_read_error_is_absorbed(self, clock):
        store = MagicMock()
        store.read.side_effect = OSError("io error")
        cache = TieredCache(durable=store, clock=clock)
        assert cache.get("k") is None


# ── Sweep ─────────────────────────────────────────────────────────────────────────

class TestSweep:
    def test_sweep_removes_only_older_entries(self, cache, clock, t0):
        cache.put("old", 1, updated_at=t0 - timedelta(hours=3))
        cache.put("edge", 2, updated_at=t0 - timedelta(hours=2))
        cache.put("new", 3, updated_at=t0 - timedelta(minutes=5))

        removed = cache.sweep(max_age_seconds=2 * 3600)

        assert removed == 1
        assert cache.get("old") is None
        assert cache.get("edge") is not None
        assert cache.get("new") is not None

    def test_sweep_clears_durable_tier(self, clock, t0):
        store = MemoryStore()
        cache = TieredCache(durable=store, clock=clock)
        cache.put("old", 1, updated_at=t0 - timedelta(days=8))
        cache.sweep(max_age_seconds=7 * 86400)
        assert store.read("old") is None

    def test_sweep_on_empty_cache(self, cache):
        assert cache.sweep(0) == 0


# ── Concurrency ───────────────────────────────────────────────────────────────────

class TestWriteOrdering:
    def test_older_write_does_not_replace_newer(self, cache, t0):
        cache.put("k", "new", updated_at=t0)
        retained = cache.put("k", "old", updated_at=t0 - timedelta(minutes=1))
        assert retained.data == "new"
        assert cache.get("k").data == "new"

    def test_newer_write_replaces(self, cache, t0):
        cache.put("k", "first", updated_at=t0 - timedelta(minutes=1))
        cache.put("k", "second", updated_at=t0)
        assert cache.get("k").data == "second"

    def test_concurrent_puts_keep_latest_timestamp(self, cache, t0):
        def writer(offset: int):
            cache.put("k", offset, updated_at=t0 + timedelta(seconds=offset))

        threads = [threading.Thread(target=writer, args=(i,)) for i in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert cache.get("k").data == 19

    def test_invalidate_removes_both_tiers(self, clock):
        store = MemoryStore()
        cache = TieredCache(durable=store, clock=clock)
        cache.put("k", 1)
        cache.invalidate("k")
        assert cache.get("k") is None
        assert store.keys() == []


# ── Async access ──────────────────────────────────────────────────────────────────

class _ThreadRecordingStore(MemoryStore):
    def __init__(self) -> None:
        super().__init__()
        self.threads = set()

    def read(self, key):
        self.threads.add(threading.get_ident())
        return super().read(key)

    def write(self, entry):
        self.threads.add(threading.get_ident())
        super().write(entry)


class TestAsyncAccess:
    def test_aput_then_aget_round_trip(self, tmp_path, clock):
        cache = TieredCache(durable=JsonDirectoryStore(tmp_path), clock=clock)

        async def scenario():
            await cache.aput("seismic:usgs", [{"id": "q1"}], ttl_seconds=60)
            return await TieredCache(durable=JsonDirectoryStore(tmp_path), clock=clock).aget(
                "seismic:usgs"
            )

        entry = asyncio.run(scenario())
        assert entry.data == [{"id": "q1"}]
        assert entry.source is Freshness.CACHED

    def test_durable_io_leaves_the_event_loop_thread(self, clock):
        store = _ThreadRecordingStore()
        cache = TieredCache(durable=store, clock=clock)

        async def scenario():
            await cache.aput("k", 1)
            await TieredCache(durable=store, clock=clock).aget("k")
            return threading.get_ident()

        loop_thread = asyncio.run(scenario())
        assert store.threads
        assert loop_thread not in store.threads

    def test_memory_only_runs_inline(self, clock):
        memory_only = TieredCache(clock=clock)

        async def scenario():
            await memory_only.aput("k", "v")
            return await memory_only.aget("k")

        assert asyncio.run(scenario()).data == "v"

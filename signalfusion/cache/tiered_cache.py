"""Two-tier cache (memory + durable) with staleness tracking.

Entries are never evicted by reads or writes; expired entries stay readable
(tagged STALE) so a failing source can still serve its last snapshot. Only
sweep() deletes, and only entries older than the requested age.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, TypeVar

from signalfusion.cache.stores import DurableStore
from signalfusion.models.cache import CacheEntry
from signalfusion.models.signals import Freshness
from signalfusion.utils.date_utils import ensure_utc, utcnow

logger = logging.getLogger(__name__)

_T = TypeVar("_T")


class TieredCache:
    """Memory tier in front of an optional DurableStore.

    Args:
        durable: Persistent tier; None keeps the cache memory-only.
        default_ttl_seconds: TTL applied when put() is called without one.
        clock: Returns the current tz-aware UTC datetime (injectable for tests).
    """

    def __init__(
        self,
        durable: Optional[DurableStore] = None,
        default_ttl_seconds: float = 300.0,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.durable = durable
        self.default_ttl_seconds = float(default_ttl_seconds)
        self._clock = clock
        self._memory: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._memory)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    # ── Reads ──────────────────────────────────────────────────────────────────

    def get(self, key: str) -> Optional[CacheEntry]:
        """Return the entry for ``key`` tagged CACHED (within TTL) or STALE.

        Checks memory first, then the durable tier; a durable hit is copied
        back into memory.
        """
        with self._lock:
            entry = self._memory.get(key)
            if entry is None:
                entry = self._durable_read(key)
                if entry is not None:
                    self._memory[key] = entry
        if entry is None:
            return None
        return entry.tagged(self._freshness(entry))

    def _freshness(self, entry: CacheEntry) -> Freshness:
        ttl = entry.ttl_seconds if entry.ttl_seconds is not None else self.default_ttl_seconds
        if entry.age_seconds(self._clock()) <= ttl:
            return Freshness.CACHED
        return Freshness.STALE

    # ── Writes ─────────────────────────────────────────────────────────────────

    def put(
        self,
        key: str,
        data: Any,
        ttl_seconds: Optional[float] = None,
        updated_at: Optional[datetime] = None,
    ) -> CacheEntry:
        """Store ``data`` under ``key`` and return the entry tagged LIVE.

        A write whose ``updated_at`` is older than the stored entry's is
        ignored; the newer stored entry is returned instead.
        """
        updated_at = ensure_utc(updated_at) if updated_at is not None else self._clock()
        entry = CacheEntry(
            key=key,
            data=data,
            updated_at=updated_at,
            source=Freshness.LIVE,
            ttl_seconds=ttl_seconds if ttl_seconds is not None else self.default_ttl_seconds,
        )
        with self._lock:
            current = self._memory.get(key)
            if current is None:
                current = self._durable_read(key)
            if current is not None and current.updated_at > entry.updated_at:
                logger.debug("Ignoring out-of-order cache write for %s", key)
                self._memory[key] = current
                return current.tagged(self._freshness(current))
            self._memory[key] = entry
            self._durable_write(entry)
        return entry

    def invalidate(self, key: str) -> None:
        """Remove ``key`` from both tiers."""
        with self._lock:
            self._memory.pop(key, None)
            self._durable_delete(key)

    def sweep(self, max_age_seconds: float) -> int:
        """Delete every entry strictly older than ``max_age_seconds``.

        Returns:
            Number of distinct keys removed across both tiers.
        """
        now = self._clock()
        removed = set()
        with self._lock:
            for key, entry in list(self._memory.items()):
                if entry.age_seconds(now) > max_age_seconds:
                    del self._memory[key]
                    removed.add(key)

            if self.durable is not None:
                for key in self._durable_keys():
                    entry = self._durable_read(key)
                    if entry is not None and entry.age_seconds(now) > max_age_seconds:
                        self._durable_delete(key)
                        removed.add(key)

        if removed:
            logger.info("Cache sweep removed %d entr%s", len(removed), "y" if len(removed) == 1 else "ies")
        return len(removed)

    def keys(self) -> List[str]:
        with self._lock:
            keys = set(self._memory)
            keys.update(self._durable_keys())
        return sorted(keys)

    # ── Async access (durable I/O runs in a worker thread) ─────────────────────

    async def aget(self, key: str) -> Optional[CacheEntry]:
        return await self._offload(self.get, key)

    async def aput(
        self,
        key: str,
        data: Any,
        ttl_seconds: Optional[float] = None,
        updated_at: Optional[datetime] = None,
    ) -> CacheEntry:
        return await self._offload(self.put, key, data, ttl_seconds, updated_at)

    async def _offload(self, func: Callable[..., _T], *args: Any) -> _T:
        if self.durable is None:
            return func(*args)
        return await asyncio.to_thread(func, *args)

    # ── Durable tier (errors logged, never raised) ─────────────────────────────

    def _durable_read(self, key: str) -> Optional[CacheEntry]:
        if self.durable is None:
            return None
        try:
            return self.durable.read(key)
        except (OSError, ValueError) as exc:
            logger.warning("Durable cache read failed for %s: %s", key, exc)
            return None

    def _durable_write(self, entry: CacheEntry) -> None:
        if self.durable is None:
            return
        try:
            self.durable.write(entry)
        except (OSError, TypeError, ValueError) as exc:
            logger.warning("Durable cache write failed for %s: %s", entry.key, exc)

    def _durable_delete(self, key: str) -> None:
        if self.durable is None:
            return
        try:
            self.durable.delete(key)
        except OSError as exc:
            logger.warning("Durable cache delete failed for %s: %s", key, exc)

    def _durable_keys(self) -> List[str]:
        if self.durable is None:
            return []
        try:
            return list(self.durable.keys())
        except OSError as exc:
            logger.warning("Durable cache listing failed: %s", exc)
            return []

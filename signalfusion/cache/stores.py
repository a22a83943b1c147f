"""Durable-tier backends for the TieredCache.

Any object implementing DurableStore can back the cache. Two are bundled:
JsonDirectoryStore (one JSON file per key, survives restarts) and MemoryStore
(process-local, used in tests and when no cache directory is configured).
"""

from __future__ import annotations

import hashlib
import logging
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional

from signalfusion.io.persistence import load_json, save_json
from signalfusion.models.cache import CacheEntry
from signalfusion.models.signals import Freshness
from signalfusion.utils.date_utils import parse_timestamp

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]+")


class DurableStore(ABC):
    """Contract for the persistent cache tier.

    Implementations may raise OSError; the TieredCache logs and absorbs it.
    """

    @abstractmethod
    def read(self, key: str) -> Optional[CacheEntry]:
        """Return the stored entry for ``key`` or None."""

    @abstractmethod
    def write(self, entry: CacheEntry) -> None:
        """Persist ``entry``, replacing any previous value for its key."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove ``key``; a missing key is not an error."""

    @abstractmethod
    def keys(self) -> List[str]:
        """All stored keys."""


class MemoryStore(DurableStore):
    """Dict-backed store. Lost on restart."""

    def __init__(self) -> None:
        self._entries: Dict[str, CacheEntry] = {}

    def read(self, key: str) -> Optional[CacheEntry]:
        return self._entries.get(key)

    def write(self, entry: CacheEntry) -> None:
        self._entries[entry.key] = entry

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._entries)


class JsonDirectoryStore(DurableStore):
    """One atomically-written JSON file per cache key.

    ``data`` must already be JSON-safe (sources store lists of signal dicts).
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        slug = _UNSAFE_CHARS.sub("_", key)[:64]
        digest = hashlib.sha1(key.encode("utf-8")).hexdigest()[:12]
        return self.root / f"{slug}-{digest}.json"

    def read(self, key: str) -> Optional[CacheEntry]:
        payload = load_json(self._path(key))
        if payload is None:
            return None
        return self._decode(payload)

    def write(self, entry: CacheEntry) -> None:
        save_json(
            {
                "key": entry.key,
                "data": entry.data,
                "updated_at": entry.updated_at.isoformat(),
                "ttl_seconds": entry.ttl_seconds,
            },
            self._path(entry.key),
        )

    def delete(self, key: str) -> None:
        path = self._path(key)
        if path.exists():
            path.unlink()

    def keys(self) -> List[str]:
        keys: List[str] = []
        for path in sorted(self.root.glob("*.json")):
            payload = load_json(path)
            if isinstance(payload, dict) and "key" in payload:
                keys.append(str(payload["key"]))
        return keys

    @staticmethod
    def _decode(payload: dict) -> Optional[CacheEntry]:
        updated_at = parse_timestamp(payload.get("updated_at"))
        if updated_at is None or "key" not in payload:
            logger.warning("Discarding cache file with missing key/updated_at")
            return None
        return CacheEntry(
            key=str(payload["key"]),
            data=payload.get("data"),
            updated_at=updated_at,
            source=Freshness.LIVE,
            ttl_seconds=payload.get("ttl_seconds"),
        )

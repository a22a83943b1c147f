"""Caching layer: TieredCache plus its durable-store backends."""

from signalfusion.cache.stores import DurableStore, JsonDirectoryStore, MemoryStore
from signalfusion.cache.tiered_cache import TieredCache

__all__ = ["DurableStore", "JsonDirectoryStore", "MemoryStore", "TieredCache"]

"""Cache and circuit-breaker state models for SignalFusion."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from signalfusion.models.signals import Freshness


@dataclass(frozen=True)
class CacheEntry:
    """A cached value with the metadata needed to judge its freshness."""

    key: str
    data: Any
    updated_at: datetime
    source: Freshness = Freshness.LIVE
    ttl_seconds: Optional[float] = None

    def age_seconds(self, now: datetime) -> float:
        return (now - self.updated_at).total_seconds()

    def tagged(self, source: Freshness) -> "CacheEntry":
        """Return a copy with a different freshness tag."""
        return replace(self, source=source)


class BreakerMode(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half-open"


@dataclass
class BreakerState:
    """Mutable breaker bookkeeping; one instance per (domain, operation)."""

    failure_count: int = 0
    opened_at: Optional[float] = None        # clock reading when the breaker last opened
    mode: BreakerMode = BreakerMode.CLOSED
    cooldown_seconds: float = 0.0
    last_failure: Optional[str] = None

"""Signal and fetch-result data models for SignalFusion.

RawSignal is the normalized observation every SourceClient emits. FetchResult
is the explicit result type returned at every source boundary so that
"nothing happened" and "could not find out" are never the same empty list.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, Tuple, TypeVar

from signalfusion.errors import FailureKind
from signalfusion.utils.date_utils import ensure_utc, parse_timestamp

T = TypeVar("T")


class Domain(str, Enum):
    """Closed set of signal domains. Each SourceClient is bound to exactly one."""

    AVIATION = "aviation"
    MARITIME = "maritime"
    MILITARY = "military"
    CONFLICT = "conflict"
    UNREST = "unrest"
    CYBER = "cyber"
    ECONOMIC = "economic"
    NEWS = "news"
    SEISMIC = "seismic"
    OUTAGE = "outage"

    @classmethod
    def parse(cls, value: Any) -> "Domain":
        """Resolve a domain from an enum member or its (case-insensitive) name."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown domain {value!r}") from None


class SourceStatus(str, Enum):
    """Status attached to every per-domain result."""

    LIVE = "live"           # fresh fetch succeeded (data may legitimately be empty)
    CACHED = "cached"       # fetch failed or was skipped; serving the cached snapshot
    DEGRADED = "degraded"   # no live data and nothing cached
    ERROR = "error"         # unexpected failure inside the source implementation


class Freshness(str, Enum):
    """Freshness tag carried by cache entries."""

    LIVE = "live"       # just written
    CACHED = "cached"   # read back within its TTL
    STALE = "stale"     # read back after its TTL expired


@dataclass(frozen=True)
class RawSignal:
    """One normalized observation from a single source.

    Signals are immutable; downstream stages receive copies via
    dataclasses.replace() and never mutate what a source emitted.
    """

    id: str
    domain: Domain
    timestamp: datetime
    location: Optional[Tuple[float, float]] = None   # (lat, lon)
    text: Optional[str] = None
    magnitude: float = 0.0
    confidence: float = 1.0
    country: Optional[str] = None   # ISO 3166-1 alpha-2
    source: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "domain", Domain.parse(self.domain))
        object.__setattr__(self, "timestamp", ensure_utc(self.timestamp))
        if self.location is not None:
            lat, lon = self.location
            object.__setattr__(self, "location", (float(lat), float(lon)))
        confidence = float(self.confidence)
        if math.isnan(confidence):
            confidence = 0.0
        object.__setattr__(self, "confidence", min(1.0, max(0.0, confidence)))
        object.__setattr__(self, "magnitude", float(self.magnitude))
        if self.country:
            object.__setattr__(self, "country", self.country.strip().upper())

    @property
    def has_location(self) -> bool:
        return self.location is not None

    @property
    def weight(self) -> float:
        """Evidence weight used by clustering and sub-score normalization."""
        return self.confidence * self.magnitude

    def to_dict(self) -> Dict[str, Any]:
        """JSON-safe representation (used by the durable cache tier)."""
        return {
            "id": self.id,
            "domain": self.domain.value,
            "timestamp": self.timestamp.isoformat(),
            "location": list(self.location) if self.location is not None else None,
            "text": self.text,
            "magnitude": self.magnitude,
            "confidence": self.confidence,
            "country": self.country,
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RawSignal":
        timestamp = parse_timestamp(data["timestamp"])
        if timestamp is None:
            raise ValueError(f"Unparseable signal timestamp: {data['timestamp']!r}")
        location = data.get("location")
        return cls(
            id=str(data["id"]),
            domain=Domain.parse(data["domain"]),
            timestamp=timestamp,
            location=tuple(location) if location else None,  # type: ignore[arg-type]
            text=data.get("text"),
            magnitude=float(data.get("magnitude", 0.0)),
            confidence=float(data.get("confidence", 1.0)),
            country=data.get("country"),
            source=data.get("source", ""),
        )


@dataclass
class FetchResult(Generic[T]):
    """Outcome of one guarded fetch: data plus an explicit status.

    ``data`` is None only when nothing (not even a cached snapshot) was
    available; callers use ``status`` rather than emptiness to tell a quiet
    source from a broken one.
    """

    data: Optional[T]
    status: SourceStatus
    cause: Optional[str] = None
    failure_kind: Optional[FailureKind] = None
    freshness: Optional[Freshness] = None
    updated_at: Optional[datetime] = None

    @property
    def is_live(self) -> bool:
        return self.status is SourceStatus.LIVE

    @property
    def is_degraded(self) -> bool:
        """True when neither live nor cached data could be produced."""
        return self.status in (SourceStatus.DEGRADED, SourceStatus.ERROR)


@dataclass
class SourceResult:
    """Per-domain result handed from a SourceClient to the orchestrator."""

    domain: Domain
    source: str
    status: SourceStatus
    signals: List[RawSignal] = field(default_factory=list)
    cause: Optional[str] = None
    failure_kind: Optional[FailureKind] = None
    freshness: Optional[Freshness] = None
    fetched_at: Optional[datetime] = None
    skipped_records: int = 0

    @property
    def is_degraded(self) -> bool:
        return self.status in (SourceStatus.DEGRADED, SourceStatus.ERROR)

"""SourceClient ABC for SignalFusion.

Every upstream feed is wrapped in a SourceClient bound to exactly one Domain.
Subclasses implement fetch() (I/O) and normalize() (payload → RawSignal list);
the base class owns the resilience policy: a private CircuitBreaker, the
per-domain timeout, cache write-through on success and cache fallback on
failure. poll() never raises except on task cancellation.
"""

from __future__ import annotations

import logging
import math
import time
from abc import ABC, abstractmethod
from collections import defaultdict
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from config.settings import SourceSettings
from signalfusion.cache.tiered_cache import TieredCache
from signalfusion.errors import MalformedPayload
from signalfusion.models.signals import (
    Domain,
    FetchResult,
    Freshness,
    RawSignal,
    SourceResult,
    SourceStatus,
)
from signalfusion.resilience.circuit_breaker import CircuitBreaker
from signalfusion.utils.date_utils import utcnow

logger = logging.getLogger(__name__)

# Record-level errors that mean "skip this record", not "the payload is bad"
_RECORD_ERRORS = (KeyError, IndexError, TypeError, ValueError)


class SourceClient(ABC):
    """Abstract base class for one domain's upstream feed.

    Args:
        domain: The Domain this client produces signals for.
        name: Feed name used in cache keys, logs and RawSignal.source.
        settings: Fetch/cache/breaker settings (defaults for ``domain``).
        cache: Shared TieredCache; a private memory-only cache if omitted.
        clock: Returns the current UTC datetime (injectable for tests).
    """

    def __init__(
        self,
        domain: Domain,
        name: str = "",
        settings: Optional[SourceSettings] = None,
        cache: Optional[TieredCache] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.domain = Domain.parse(domain)
        self.name = name or f"{self.domain.value}-{type(self).__name__}"
        self.settings = settings or SourceSettings.for_domain(self.domain)
        self.cache = cache if cache is not None else TieredCache(
            default_ttl_seconds=self.settings.ttl_seconds, clock=clock
        )
        self._clock = clock
        self.breaker = CircuitBreaker(
            name=self.cache_key,
            max_failures=self.settings.breaker_max_failures,
            cooldown_seconds=self.settings.breaker_cooldown_seconds,
            max_cooldown_seconds=self.settings.breaker_max_cooldown_seconds,
            timeout_seconds=self.settings.timeout_seconds,
        )
        self._last_skipped = 0

    def __repr__(self) -> str:
        return f"{type(self).__name__}(domain={self.domain.value!r}, name={self.name!r})"

    @property
    def cache_key(self) -> str:
        return f"{self.domain.value}:{self.name}"

    # ── Subclass contract ──────────────────────────────────────────────────────

    @abstractmethod
    async def fetch(self) -> Any:
        """Retrieve the raw upstream payload.

        Raises:
            UpstreamUnavailable / UpstreamTimeout / MalformedPayload.
        """

    @abstractmethod
    def normalize(self, payload: Any) -> List[RawSignal]:
        """Convert a raw payload into RawSignals for this client's domain.

        Raises:
            MalformedPayload: the payload shape is unusable.
        """

    # ── Resilient polling ──────────────────────────────────────────────────────

    def _fetch_deadline(self) -> float:
        """Monotonic deadline shared by every request of one fetch."""
        return time.monotonic() + self.settings.timeout_seconds

    @staticmethod
    def _remaining(deadline: float) -> float:
        return max(deadline - time.monotonic(), 0.0)

    async def poll(self) -> SourceResult:
        """Fetch + normalize under the breaker, with cache write-through/fallback."""

        async def _fetch_and_normalize() -> List[RawSignal]:
            payload = await self.fetch()
            return self.normalize(payload)

        self._last_skipped = 0
        result: FetchResult = await self.breaker.execute(
            _fetch_and_normalize,
            fallback=lambda: self.cache.aget(self.cache_key),
            timeout=self.settings.timeout_seconds,
        )

        if result.is_live:
            signals: List[RawSignal] = list(result.data or [])
            await self.cache.aput(
                self.cache_key,
                [s.to_dict() for s in signals],
                ttl_seconds=self.settings.ttl_seconds,
                updated_at=self._clock(),
            )
            logger.info(
                "%s: %d signals (live, %d records skipped)",
                self.name, len(signals), self._last_skipped,
            )
            return SourceResult(
                domain=self.domain,
                source=self.name,
                status=SourceStatus.LIVE,
                signals=signals,
                freshness=Freshness.LIVE,
                fetched_at=result.updated_at,
                skipped_records=self._last_skipped,
            )

        if result.status is SourceStatus.CACHED:
            signals = self._decode_cached(result.data)
            logger.info(
                "%s: serving %d cached signals (%s) — %s",
                self.name, len(signals),
                result.freshness.value if result.freshness else "?", result.cause,
            )
            return SourceResult(
                domain=self.domain,
                source=self.name,
                status=SourceStatus.CACHED,
                signals=signals,
                cause=result.cause,
                failure_kind=result.failure_kind,
                freshness=result.freshness,
                fetched_at=result.updated_at,
            )

        logger.warning("%s: no data available (%s)", self.name, result.cause)
        return SourceResult(
            domain=self.domain,
            source=self.name,
            status=result.status,
            cause=result.cause,
            failure_kind=result.failure_kind,
        )

    def _decode_cached(self, data: Any) -> List[RawSignal]:
        signals: List[RawSignal] = []
        for item in data or []:
            if isinstance(item, RawSignal):
                signals.append(item)
                continue
            try:
                signals.append(RawSignal.from_dict(item))
            except _RECORD_ERRORS as exc:
                logger.debug("%s: dropping undecodable cached signal: %s", self.name, exc)
        return signals

    # ── Normalization helpers ──────────────────────────────────────────────────

    def _normalize_records(
        self,
        records: Iterable[Any],
        convert: Callable[[Any], Optional[RawSignal]],
    ) -> List[RawSignal]:
        """Apply ``convert`` to each record, skipping records that fail.

        ``convert`` may return None to drop a record silently (e.g. filtered
        out). A non-empty record list that yields no signal and only errors
        raises MalformedPayload.
        """
        signals: List[RawSignal] = []
        total = 0
        skipped = 0
        last_error = ""
        for record in records:
            total += 1
            try:
                signal = convert(record)
            except _RECORD_ERRORS as exc:
                skipped += 1
                last_error = f"{type(exc).__name__}: {exc}"
                continue
            if signal is not None:
                signals.append(signal)

        self._last_skipped = skipped
        if total and skipped == total:
            raise MalformedPayload(
                f"{self.name}: none of {total} records could be normalized ({last_error})",
                source=self.name,
            )
        if skipped:
            logger.debug("%s: skipped %d/%d records (%s)", self.name, skipped, total, last_error)
        return signals

    # ── CII sub-scores ─────────────────────────────────────────────────────────

    def sub_scores(self, signals: Iterable[RawSignal]) -> Dict[str, float]:
        """Per-country domain sub-score in [0, 1].

        Default normalization: log1p(Σ confidence × magnitude) divided by
        log1p(score_saturation), capped at 1. Signals without a country do
        not contribute.
        """
        totals: Dict[str, float] = defaultdict(float)
        for signal in signals:
            if signal.country and signal.domain is self.domain:
                totals[signal.country] += max(0.0, signal.weight)

        ceiling = math.log1p(self.settings.score_saturation)
        return {
            country: min(1.0, math.log1p(total) / ceiling)
            for country, total in totals.items()
        }

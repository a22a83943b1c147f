"""Near-duplicate signal removal for SignalFusion.

Collapses reports of the same event arriving from several feeds. Signals are
processed in (timestamp, id) order against a per-domain sliding window of
already-kept representatives, so the earliest report of an event survives.
Pure computation — no I/O or external calls.
"""

from __future__ import annotations

import logging
from collections import defaultdict, deque
from datetime import timedelta
from typing import Deque, Dict, FrozenSet, Iterable, List, Optional, Tuple

from config.settings import DedupSettings
from signalfusion.models.signals import Domain, RawSignal
from signalfusion.utils.geo_utils import haversine_km
from signalfusion.utils.levenshtein_utils import similarity as levenshtein_similarity
from signalfusion.utils.text import jaccard, tokenize

logger = logging.getLogger(__name__)

# Kept representative plus its precomputed token set
_Rep = Tuple[RawSignal, Optional[FrozenSet[str]]]


class Deduplicator:
    """Stable, idempotent near-duplicate filter.

    Two signals of the same domain are duplicates when their timestamps are
    within ``window_minutes`` and either

    * their text similarity is at least ``similarity_threshold``, or
    * their locations are within ``location_tolerance_km`` and their
      magnitudes within ``magnitude_tolerance``.

    Signals carrying neither text nor a location are passed through untouched.

    Args:
        window_minutes: Time window for comparison.
        similarity_threshold: Minimum text similarity for a duplicate.
        location_tolerance_km: Maximum distance for a location duplicate.
        magnitude_tolerance: Maximum magnitude difference for a location duplicate.
        min_token_length: Tokens shorter than this are ignored by Jaccard.
        similarity_metric: "jaccard" (token overlap) or "levenshtein".
    """

    def __init__(
        self,
        window_minutes: float = 120.0,
        similarity_threshold: float = 0.6,
        location_tolerance_km: float = 1.0,
        magnitude_tolerance: float = 0.05,
        min_token_length: int = 3,
        similarity_metric: str = "jaccard",
    ) -> None:
        if similarity_metric not in ("jaccard", "levenshtein"):
            raise ValueError(f"Unknown similarity metric {similarity_metric!r}")
        self.window = timedelta(minutes=window_minutes)
        self.similarity_threshold = similarity_threshold
        self.location_tolerance_km = location_tolerance_km
        self.magnitude_tolerance = magnitude_tolerance
        self.min_token_length = min_token_length
        self.similarity_metric = similarity_metric

    @classmethod
    def from_settings(cls, settings: DedupSettings) -> "Deduplicator":
        return cls(
            window_minutes=settings.window_minutes,
            similarity_threshold=settings.similarity_threshold,
            location_tolerance_km=settings.location_tolerance_km,
            magnitude_tolerance=settings.magnitude_tolerance,
            min_token_length=settings.min_token_length,
            similarity_metric=settings.similarity_metric,
        )

    def dedupe(self, signals: Iterable[RawSignal]) -> List[RawSignal]:
        """Return the representatives of ``signals`` in (timestamp, id) order.

        Args:
            signals: Signals from any mix of domains.

        Returns:
            New list; the input is not modified.
        """
        ordered = sorted(signals, key=lambda s: (s.timestamp, s.id))
        if not ordered:
            return []

        windows: Dict[Domain, Deque[_Rep]] = defaultdict(deque)
        kept: List[RawSignal] = []
        dropped = 0

        for signal in ordered:
            if not signal.text and not signal.has_location:
                kept.append(signal)
                continue

            window = windows[signal.domain]
            horizon = signal.timestamp - self.window
            while window and window[0][0].timestamp < horizon:
                window.popleft()

            tokens = self._tokens(signal)
            if any(self._matches(signal, tokens, rep, rep_tokens) for rep, rep_tokens in window):
                dropped += 1
                continue

            window.append((signal, tokens))
            kept.append(signal)

        if dropped:
            logger.info("Deduplicator: %d → %d signals (%d near-duplicates)", len(ordered), len(kept), dropped)
        return kept

    def is_duplicate(self, a: RawSignal, b: RawSignal) -> bool:
        """Pairwise duplicate test (same rules as dedupe)."""
        if a.domain is not b.domain:
            return False
        if abs(a.timestamp - b.timestamp) > self.window:
            return False
        return self._matches(a, self._tokens(a), b, self._tokens(b))

    # ── Internal ───────────────────────────────────────────────────────────────

    def _tokens(self, signal: RawSignal) -> Optional[FrozenSet[str]]:
        if not signal.text or self.similarity_metric != "jaccard":
            return None
        return tokenize(signal.text, self.min_token_length)

    def _matches(
        self,
        a: RawSignal,
        a_tokens: Optional[FrozenSet[str]],
        b: RawSignal,
        b_tokens: Optional[FrozenSet[str]],
    ) -> bool:
        if a.id == b.id:
            return True
        if a.text and b.text and self._text_similarity(a, a_tokens, b, b_tokens) >= self.similarity_threshold:
            return True
        if a.location is not None and b.location is not None:
            distance = haversine_km(a.location[0], a.location[1], b.location[0], b.location[1])
            if (
                distance <= self.location_tolerance_km
                and abs(a.magnitude - b.magnitude) <= self.magnitude_tolerance
            ):
                return True
        return False

    def _text_similarity(
        self,
        a: RawSignal,
        a_tokens: Optional[FrozenSet[str]],
        b: RawSignal,
        b_tokens: Optional[FrozenSet[str]],
    ) -> float:
        if self.similarity_metric == "levenshtein":
            return levenshtein_similarity(a.text or "", b.text or "")
        return jaccard(a_tokens or frozenset(), b_tokens or frozenset())

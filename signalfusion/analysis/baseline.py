"""Rolling per-country baselines for SignalFusion.

Keeps a time-bounded sample window per (country, metric) and answers "how
unusual is this value?" as a clamped z-score. Also holds the CII record
history the InstabilityScorer uses for trends, with JSON save/load.
"""

from __future__ import annotations

import bisect
import logging
import math
from collections import defaultdict
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from config.settings import BaselineSettings
from signalfusion.io.persistence import load_json, save_json
from signalfusion.models.instability import CountryInstabilityRecord
from signalfusion.utils.date_utils import ensure_utc, parse_timestamp, utcnow

logger = logging.getLogger(__name__)

SeriesKey = Tuple[str, str]


class BaselineStore:
    """Time-windowed sample store with z-score deviation.

    Retention is by time: samples older than ``retention_days`` before the
    newest sample of their series are dropped. Recording a second value at an
    existing timestamp replaces the first.

    Args:
        retention_days: Sample retention horizon.
        min_samples: Fewer samples than this give a deviation of exactly 0.
        deviation_clamp: Symmetric bound applied to the z-score.
        epsilon: Lower bound on the standard deviation.
        path: Optional JSON file used by save()/load().
    """

    def __init__(
        self,
        retention_days: float = 30.0,
        min_samples: int = 7,
        deviation_clamp: float = 5.0,
        epsilon: float = 1e-6,
        path: Optional[str | Path] = None,
    ) -> None:
        self.retention = timedelta(days=retention_days)
        self.min_samples = int(min_samples)
        self.deviation_clamp = float(deviation_clamp)
        self.epsilon = float(epsilon)
        self.path = Path(path) if path else None
        self._series: Dict[SeriesKey, List[Tuple[datetime, float]]] = defaultdict(list)
        self._history: Dict[str, List[CountryInstabilityRecord]] = defaultdict(list)

    @classmethod
    def from_settings(cls, settings: BaselineSettings) -> "BaselineStore":
        return cls(
            retention_days=settings.retention_days,
            min_samples=settings.min_samples,
            deviation_clamp=settings.deviation_clamp,
            epsilon=settings.epsilon,
            path=settings.path or None,
        )

    # ── Samples ────────────────────────────────────────────────────────────────

    def record(
        self,
        country: str,
        metric: str,
        value: float,
        timestamp: Optional[datetime] = None,
    ) -> None:
        """Add one sample; a sample at the same timestamp is replaced."""
        if value is None or not math.isfinite(value):
            logger.debug("Baseline: ignoring non-finite %s/%s sample", country, metric)
            return
        ts = ensure_utc(timestamp) if timestamp is not None else utcnow()
        series = self._series[(country.upper(), metric)]

        times = [t for t, _ in series]
        pos = bisect.bisect_left(times, ts)
        if pos < len(series) and series[pos][0] == ts:
            series[pos] = (ts, float(value))
        else:
            series.insert(pos, (ts, float(value)))

        horizon = series[-1][0] - self.retention
        expired = bisect.bisect_left([t for t, _ in series], horizon)
        if expired:
            del series[:expired]

    def samples(self, country: str, metric: str, before: Optional[datetime] = None) -> List[float]:
        """Sample values, optionally only those strictly earlier than ``before``."""
        series = self._series.get((country.upper(), metric), [])
        if before is None:
            return [v for _, v in series]
        before = ensure_utc(before)
        horizon = before - self.retention
        return [v for t, v in series if horizon <= t < before]

    def sample_count(self, country: str, metric: str, before: Optional[datetime] = None) -> int:
        return len(self.samples(country, metric, before))

    def is_sufficient(self, country: str, metric: str, before: Optional[datetime] = None) -> bool:
        return self.sample_count(country, metric, before) >= self.min_samples

    def stats(
        self, country: str, metric: str, before: Optional[datetime] = None
    ) -> Optional[Tuple[float, float]]:
        """(mean, population std) of the window, or None when empty."""
        values = self.samples(country, metric, before)
        if not values:
            return None
        n = len(values)
        mean = sum(values) / n
        variance = sum((v - mean) ** 2 for v in values) / n
        return mean, math.sqrt(variance)

    def deviation(
        self,
        country: str,
        metric: str,
        current_value: float,
        before: Optional[datetime] = None,
    ) -> float:
        """Clamped z-score of ``current_value`` against the window.

        Returns exactly 0.0 while the window holds fewer than ``min_samples``.
        """
        values = self.samples(country, metric, before)
        if len(values) < self.min_samples:
            return 0.0
        n = len(values)
        mean = sum(values) / n
        std = math.sqrt(sum((v - mean) ** 2 for v in values) / n)
        z = (current_value - mean) / max(std, self.epsilon)
        return max(-self.deviation_clamp, min(self.deviation_clamp, z))

    # ── CII history ────────────────────────────────────────────────────────────

    def append_record(self, record: CountryInstabilityRecord) -> None:
        """Store a CII record; a record with the same timestamp is superseded."""
        history = self._history[record.iso2.upper()]
        history[:] = [r for r in history if r.timestamp != record.timestamp]
        history.append(record)
        history.sort(key=lambda r: r.timestamp)
        horizon = history[-1].timestamp - self.retention
        history[:] = [r for r in history if r.timestamp >= horizon]

    def history(self, country: str) -> List[CountryInstabilityRecord]:
        return list(self._history.get(country.upper(), []))

    def latest(
        self, country: str, before: Optional[datetime] = None
    ) -> Optional[CountryInstabilityRecord]:
        """Most recent record, optionally strictly earlier than ``before``."""
        records = self._history.get(country.upper(), [])
        if before is not None:
            before = ensure_utc(before)
            records = [r for r in records if r.timestamp < before]
        return records[-1] if records else None

    def countries(self) -> List[str]:
        keys = {c for c, _ in self._series} | set(self._history)
        return sorted(keys)

    # ── Persistence ────────────────────────────────────────────────────────────

    def to_dict(self) -> Dict[str, Any]:
        return {
            "series": [
                {
                    "country": country,
                    "metric": metric,
                    "samples": [[t.isoformat(), v] for t, v in series],
                }
                for (country, metric), series in sorted(self._series.items())
                if series
            ],
            "history": {
                country: [r.to_dict() for r in records]
                for country, records in sorted(self._history.items())
                if records
            },
        }

    def load_dict(self, data: Dict[str, Any]) -> None:
        """Merge samples and records from a to_dict() payload."""
        for entry in data.get("series", []):
            for raw_ts, value in entry.get("samples", []):
                ts = parse_timestamp(raw_ts)
                if ts is not None:
                    self.record(entry["country"], entry["metric"], float(value), ts)
        for records in data.get("history", {}).values():
            for raw in records:
                try:
                    self.append_record(CountryInstabilityRecord.from_dict(raw))
                except (KeyError, ValueError) as exc:
                    logger.warning("Baseline: skipping unreadable history record: %s", exc)

    def save(self, path: Optional[str | Path] = None) -> Optional[Path]:
        """Write the store to ``path`` (or the configured path) atomically."""
        target = Path(path) if path else self.path
        if target is None:
            return None
        save_json(self.to_dict(), target)
        logger.debug("Baseline saved to %s", target)
        return target

    def load(self, path: Optional[str | Path] = None) -> bool:
        """Merge a previously saved store. Returns False when nothing was loaded."""
        source = Path(path) if path else self.path
        if source is None:
            return False
        data = load_json(source)
        if not isinstance(data, dict):
            return False
        self.load_dict(data)
        logger.info("Baseline loaded from %s (%d countries)", source, len(self.countries()))
        return True

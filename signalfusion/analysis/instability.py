"""Country Instability Index (CII) scoring for SignalFusion.

CII = 100 × clamp01(Σ weight_d × sub_d + α × baseline_deviation)

Sub-scores are per-domain values in [0, 1] produced by the SourceClients.
Weights are fixed configuration summing to 1. The baseline deviation is the
clamped z-score of the weighted composite against the country's own history,
so a country that is always noisy is not flagged for being noisy again.

Scoring is deterministic: the deviation and the trend only look at samples
and records strictly earlier than the scoring timestamp, so re-scoring the
same inputs at the same timestamp yields the same record.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import Dict, Iterable, Mapping, Optional, Sequence, Tuple, Union

from config.defaults import CII_LEVEL_THRESHOLDS, CII_TREND_DELTA
from config.settings import InstabilityWeights
from signalfusion.analysis.baseline import BaselineStore
from signalfusion.models.instability import CountryInstabilityRecord
from signalfusion.models.signals import Domain
from signalfusion.utils.date_utils import ensure_utc, utcnow

logger = logging.getLogger(__name__)

BASELINE_METRIC = "cii_composite"

SubScores = Mapping[Union[Domain, str], float]


def _clamp01(value: float) -> float:
    if value is None or math.isnan(value):
        return 0.0
    return max(0.0, min(1.0, float(value)))


def cii_level(cii: float, thresholds: Sequence[Tuple[float, str]] = CII_LEVEL_THRESHOLDS) -> str:
    """Level label for a CII value (thresholds ordered high → low)."""
    for lower_bound, label in thresholds:
        if cii >= lower_bound:
            return label
    return thresholds[-1][1]


def cii_trend(cii: float, previous: Optional[float], delta: float = CII_TREND_DELTA) -> str:
    if previous is None:
        return "new"
    change = cii - previous
    if change >= delta:
        return "rising"
    if change <= -delta:
        return "falling"
    return "stable"


class InstabilityScorer:
    """Fuse domain sub-scores and baseline deviation into a CII record.

    The scorer is the single writer of its BaselineStore: every score() call
    records the composite as a baseline sample and appends the record to the
    country's history.

    Args:
        weights: Fixed per-domain weights, α and the redistribution switch.
        baseline: Baseline store (a fresh in-memory one if omitted).
        clock: Default timestamp source when score() is called without one.
    """

    def __init__(
        self,
        weights: Optional[InstabilityWeights] = None,
        baseline: Optional[BaselineStore] = None,
        level_thresholds: Sequence[Tuple[float, str]] = CII_LEVEL_THRESHOLDS,
        trend_delta: float = CII_TREND_DELTA,
        clock=utcnow,
    ) -> None:
        self.weights = weights or InstabilityWeights()
        self.baseline = baseline if baseline is not None else BaselineStore()
        self.level_thresholds = tuple(level_thresholds)
        self.trend_delta = trend_delta
        self._clock = clock

    def effective_weights(self, present: Iterable[Domain]) -> Dict[Domain, float]:
        """Weights applied for a given set of domains with data.

        With redistribution off (default) this is the configured table.
        With it on, weight from absent domains is spread proportionally over
        the present ones.
        """
        table = dict(self.weights.weights)
        if not self.weights.redistribute_missing:
            return table
        present = set(present)
        present_total = sum(w for d, w in table.items() if d in present)
        if present_total <= 0:
            return table
        return {d: (w / present_total if d in present else 0.0) for d, w in table.items()}

    def composite(self, sub_scores: Mapping[Domain, float]) -> float:
        weights = self.effective_weights(sub_scores.keys())
        return sum(weights.get(d, 0.0) * v for d, v in sub_scores.items())

    def score(
        self,
        country: str,
        sub_scores: SubScores,
        timestamp: Optional[datetime] = None,
        degraded_domains: Sequence[Domain] = (),
    ) -> CountryInstabilityRecord:
        """Score one country.

        Args:
            country: ISO 3166-1 alpha-2 code.
            sub_scores: Domain → sub-score; values are clamped to [0, 1] and
                missing domains contribute 0.
            timestamp: Scoring instant (defaults to now).
            degraded_domains: Domains that had no live data this cycle,
                recorded on the output for consumers.

        Returns:
            New CountryInstabilityRecord.
        """
        iso2 = country.strip().upper()
        ts = ensure_utc(timestamp) if timestamp is not None else self._clock()
        subs: Dict[Domain, float] = {Domain.parse(d): _clamp01(v) for d, v in sub_scores.items()}

        composite = self.composite(subs)
        deviation = self.baseline.deviation(iso2, BASELINE_METRIC, composite, before=ts)
        sufficient = self.baseline.is_sufficient(iso2, BASELINE_METRIC, before=ts)
        cii = 100.0 * _clamp01(composite + self.weights.alpha * deviation)

        previous = self.baseline.latest(iso2, before=ts)
        previous_cii = previous.cii if previous is not None else None

        record = CountryInstabilityRecord(
            iso2=iso2,
            timestamp=ts,
            sub_scores=subs,
            baseline_deviation=deviation,
            cii=cii,
            composite=composite,
            level=cii_level(cii, self.level_thresholds),
            trend=cii_trend(cii, previous_cii, self.trend_delta),
            previous_cii=previous_cii,
            baseline_sufficient=sufficient,
            degraded_domains=list(degraded_domains),
        )

        self.baseline.record(iso2, BASELINE_METRIC, composite, ts)
        self.baseline.append_record(record)
        logger.debug(
            "CII %s = %.1f (%s, composite=%.3f, deviation=%.2f)",
            iso2, cii, record.level, composite, deviation,
        )
        return record

    def score_all(
        self,
        sub_scores_by_country: Mapping[str, SubScores],
        timestamp: Optional[datetime] = None,
        degraded_domains: Sequence[Domain] = (),
    ) -> Dict[str, CountryInstabilityRecord]:
        """Score every country at one shared timestamp, keyed by ISO2 in sorted order."""
        ts = ensure_utc(timestamp) if timestamp is not None else self._clock()
        records: Dict[str, CountryInstabilityRecord] = {}
        for country in sorted(sub_scores_by_country):
            record = self.score(country, sub_scores_by_country[country], ts, degraded_domains)
            records[record.iso2] = record
        if records:
            top = max(records.values(), key=lambda r: (r.cii, r.iso2))
            logger.info(
                "InstabilityScorer: scored %d countries (highest %s=%.1f %s)",
                len(records), top.iso2, top.cii, top.level,
            )
        return records

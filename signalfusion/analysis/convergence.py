"""Multi-domain geographic convergence detection for SignalFusion.

Finds places where two or more domains report activity at roughly the same
place and time (e.g. an aviation anomaly next to a maritime one). Signals are
linked when they are within ``radius_km`` and ``time_window`` of each other
and come from different domains; linked components are then pruned until
every member sits within the radius of the magnitude-weighted centroid and
the member time span fits the window. Pruned members are relinked among
themselves so a chain of convergences yields one cluster per compact group.

Pure computation — no I/O or external calls.
"""

from __future__ import annotations

import hashlib
import logging
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from config.settings import ConvergenceSettings
from signalfusion.analysis.spatial_index import SpatialIndex
from signalfusion.models.fusion import ConvergenceCluster, ConvergenceStats
from signalfusion.models.signals import RawSignal
from signalfusion.utils.geo_utils import haversine_km, is_valid_coordinate, weighted_centroid

logger = logging.getLogger(__name__)


class _UnionFind:
    """Disjoint sets over 0..n-1; the smaller index becomes the root."""

    def __init__(self, n: int) -> None:
        self.parent = list(range(n))

    def find(self, i: int) -> int:
        root = i
        while self.parent[root] != root:
            root = self.parent[root]
        while self.parent[i] != root:
            self.parent[i], i = root, self.parent[i]
        return root

    def union(self, a: int, b: int) -> None:
        ra, rb = self.find(a), self.find(b)
        if ra != rb:
            if rb < ra:
                ra, rb = rb, ra
            self.parent[rb] = ra


def _is_malformed(signal: RawSignal) -> bool:
    if not signal.id:
        return True
    if signal.location is None:
        return False
    return not is_valid_coordinate(*signal.location)


class ConvergenceDetector:
    """Cluster co-located, co-temporal signals from different domains.

    Args:
        radius_km: Maximum member distance from the cluster centroid.
        time_window_minutes: Maximum member time span.
        domain_bonus: Score multiplier per additional domain beyond the first.
    """

    def __init__(
        self,
        radius_km: float = 50.0,
        time_window_minutes: float = 60.0,
        domain_bonus: float = 0.5,
    ) -> None:
        self.radius_km = radius_km
        self.time_window = timedelta(minutes=time_window_minutes)
        self.domain_bonus = domain_bonus
        self.stats = ConvergenceStats()

    @classmethod
    def from_settings(cls, settings: ConvergenceSettings) -> "ConvergenceDetector":
        return cls(
            radius_km=settings.radius_km,
            time_window_minutes=settings.time_window_minutes,
            domain_bonus=settings.domain_bonus,
        )

    def detect(
        self,
        signals: Iterable[RawSignal],
        radius_km: Optional[float] = None,
        time_window: Optional[Union[timedelta, float]] = None,
    ) -> List[ConvergenceCluster]:
        """Return multi-domain clusters, highest score first.

        Args:
            signals: Deduplicated signals (unlocated ones are ignored).
            radius_km: Override for the configured radius.
            time_window: Override window (timedelta or minutes).

        Returns:
            Clusters ordered by score descending, then id. Detection
            statistics for the pass are left in ``self.stats``.
        """
        radius = self.radius_km if radius_km is None else float(radius_km)
        if time_window is None:
            window = self.time_window
        elif isinstance(time_window, timedelta):
            window = time_window
        else:
            window = timedelta(minutes=float(time_window))

        signals = list(signals)
        stats = ConvergenceStats(signals_in=len(signals))
        self.stats = stats

        located: List[RawSignal] = []
        for signal in signals:
            if _is_malformed(signal):
                stats.dropped_malformed += 1
                continue
            if signal.location is None:
                stats.unlocated += 1
                continue
            located.append(signal)
        stats.located = len(located)
        if stats.dropped_malformed:
            msg = f"Dropped {stats.dropped_malformed} malformed signal(s) before clustering"
            stats.warnings.append(msg)
            logger.warning("ConvergenceDetector: %s", msg)

        located.sort(key=lambda s: (s.timestamp, s.id))
        clusters: List[ConvergenceCluster] = []
        for component in self._link(located, radius, window):
            clusters.extend(self._cluster_component(component, radius, window, stats))

        clusters.sort(key=lambda c: (-c.score, c.id))
        stats.clusters = len(clusters)
        logger.info(
            "ConvergenceDetector: %d located signals → %d clusters (%d components, %d pruned)",
            stats.located, stats.clusters, stats.components, stats.pruned_members,
        )
        return clusters

    # ── Internal ───────────────────────────────────────────────────────────────

    @staticmethod
    def _link(
        signals: List[RawSignal], radius: float, window: timedelta
    ) -> List[List[RawSignal]]:
        """Components (2+ members) of cross-domain pairs within ``radius`` and ``window``."""
        if len(signals) < 2:
            return []
        index = SpatialIndex.for_radius(radius)
        index.insert_many((str(i), s.location[0], s.location[1]) for i, s in enumerate(signals))

        uf = _UnionFind(len(signals))
        for i, signal in enumerate(signals):
            lat, lon = signal.location
            for j in sorted(int(k) for k in index.query(lat, lon, radius)):
                if j == i:
                    continue
                other = signals[j]
                if other.domain is signal.domain:
                    continue
                if abs(other.timestamp - signal.timestamp) <= window:
                    uf.union(i, j)

        components: Dict[int, List[RawSignal]] = {}
        for i, signal in enumerate(signals):
            components.setdefault(uf.find(i), []).append(signal)
        return [members for members in components.values() if len(members) >= 2]

    def _cluster_component(
        self,
        members: List[RawSignal],
        radius: float,
        window: timedelta,
        stats: ConvergenceStats,
    ) -> List[ConvergenceCluster]:
        """Prune a component to its core, then relink the pruned members among themselves."""
        stats.components += 1
        kept, pruned = self._prune(members, radius, window, stats)
        clusters: List[ConvergenceCluster] = []
        if kept is None:
            stats.single_domain_discarded += 1
        else:
            clusters.append(self._build_cluster(kept))
        for component in self._link(pruned, radius, window):
            clusters.extend(self._cluster_component(component, radius, window, stats))
        return clusters

    def _prune(
        self,
        members: List[RawSignal],
        radius: float,
        window: timedelta,
        stats: ConvergenceStats,
    ) -> Tuple[Optional[List[RawSignal]], List[RawSignal]]:
        """Drop outliers until the component is compact.

        Returns:
            (core, pruned); ``core`` is None when fewer than 2 domains remain.
        """
        members = sorted(members, key=lambda s: (s.timestamp, s.id))
        pruned: List[RawSignal] = []
        while len({s.domain for s in members}) >= 2:
            centroid = self._centroid(members)
            distances = [haversine_km(centroid[0], centroid[1], *s.location) for s in members]
            far = [(d - radius, s.id, i) for i, (d, s) in enumerate(zip(distances, members)) if d > radius]
            if far:
                _, _, worst = max(far)
            else:
                span = members[-1].timestamp - members[0].timestamp
                if span <= window:
                    return members, pruned
                worst = self._time_outlier(members)
            pruned.append(members.pop(worst))
            stats.pruned_members += 1
        return None, pruned

    @staticmethod
    def _time_outlier(members: Sequence[RawSignal]) -> int:
        """Index of the member farthest in time from the median timestamp."""
        median = members[len(members) // 2].timestamp
        return max(
            range(len(members)),
            key=lambda i: (abs((members[i].timestamp - median).total_seconds()), members[i].id),
        )

    @staticmethod
    def _centroid(members: Sequence[RawSignal]) -> Tuple[float, float]:
        points = [s.location for s in members]
        weights = [max(0.0, s.magnitude) for s in members]
        return weighted_centroid(points, weights)  # type: ignore[arg-type]

    def _build_cluster(self, members: List[RawSignal]) -> ConvergenceCluster:
        centroid = self._centroid(members)
        radius = max(haversine_km(centroid[0], centroid[1], *s.location) for s in members)
        domains = frozenset(s.domain for s in members)
        member_ids = tuple(s.id for s in members)
        digest = hashlib.sha1("|".join(sorted(member_ids)).encode("utf-8")).hexdigest()[:16]
        evidence = sum(s.confidence * s.magnitude for s in members)
        score = evidence * (1.0 + self.domain_bonus * (len(domains) - 1))
        first_seen: datetime = members[0].timestamp
        last_seen: datetime = members[-1].timestamp
        return ConvergenceCluster(
            id=f"cv-{digest}",
            centroid=centroid,
            radius_km=radius,
            domains=domains,
            members=member_ids,
            first_seen=first_seen,
            last_seen=last_seen,
            score=round(score, 6),
        )

"""Convergence data models for SignalFusion.

Defines the output schema of the ConvergenceDetector — multi-domain clusters of
co-located, co-temporal signals and the per-pass detection statistics.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import FrozenSet, List, Tuple

from signalfusion.models.signals import Domain


@dataclass(frozen=True)
class ConvergenceCluster:
    """Signals from two or more domains observed at the same place and time."""

    id: str
    centroid: Tuple[float, float]      # (lat, lon), magnitude-weighted
    radius_km: float                   # max member distance from centroid
    domains: FrozenSet[Domain]
    members: Tuple[str, ...]           # signal ids ordered by (timestamp, id)
    first_seen: datetime
    last_seen: datetime
    score: float

    @property
    def domain_count(self) -> int:
        return len(self.domains)


@dataclass
class ConvergenceStats:
    """Summary statistics for one detection pass."""

    signals_in: int = 0
    located: int = 0
    unlocated: int = 0
    dropped_malformed: int = 0
    components: int = 0
    clusters: int = 0
    single_domain_discarded: int = 0
    pruned_members: int = 0
    warnings: List[str] = field(default_factory=list)

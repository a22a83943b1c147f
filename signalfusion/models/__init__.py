"""SignalFusion data models package.

All stage input/output schemas are defined here as typed dataclasses.
Never return raw Dict from stage code — always use the typed models.
"""

from signalfusion.models.cache import BreakerMode, BreakerState, CacheEntry
from signalfusion.models.cycle import DomainStatus, FusionCycleResult, PhaseRecord
from signalfusion.models.fusion import ConvergenceCluster, ConvergenceStats
from signalfusion.models.instability import CountryInstabilityRecord
from signalfusion.models.signals import (
    Domain,
    FetchResult,
    Freshness,
    RawSignal,
    SourceResult,
    SourceStatus,
)

__all__ = [
    # signals
    "Domain",
    "RawSignal",
    "Freshness",
    "SourceStatus",
    "FetchResult",
    "SourceResult",
    # cache / breaker
    "CacheEntry",
    "BreakerMode",
    "BreakerState",
    # convergence
    "ConvergenceCluster",
    "ConvergenceStats",
    # instability
    "CountryInstabilityRecord",
    # cycle
    "DomainStatus",
    "FusionCycleResult",
    "PhaseRecord",
]

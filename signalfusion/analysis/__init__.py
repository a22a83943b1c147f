"""SignalFusion analysis package.

Pure-computation stages: deduplication, spatial indexing, convergence
detection, baselines and instability scoring.
"""

from signalfusion.analysis.baseline import BaselineStore
from signalfusion.analysis.convergence import ConvergenceDetector
from signalfusion.analysis.deduplicator import Deduplicator
from signalfusion.analysis.instability import InstabilityScorer, cii_level, cii_trend
from signalfusion.analysis.spatial_index import SpatialIndex

__all__ = [
    "BaselineStore",
    "ConvergenceDetector",
    "Deduplicator",
    "InstabilityScorer",
    "SpatialIndex",
    "cii_level",
    "cii_trend",
]

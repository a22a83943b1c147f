"""SignalFusion configuration package."""

from config.defaults import (
    BASELINE_MIN_SAMPLES,
    BREAKER_COOLDOWN_SECONDS,
    BREAKER_MAX_FAILURES,
    CII_BASELINE_ALPHA,
    CII_WEIGHTS,
    CONVERGENCE_RADIUS_KM,
    CONVERGENCE_TIME_WINDOW_MINUTES,
    CYCLE_INTERVAL_SECONDS,
    DEDUP_SIMILARITY_THRESHOLD,
    DEDUP_WINDOW_MINUTES,
)
from config.settings import FusionConfig, load_config

__all__ = [
    "FusionConfig",
    "load_config",
    "BASELINE_MIN_SAMPLES",
    "BREAKER_COOLDOWN_SECONDS",
    "BREAKER_MAX_FAILURES",
    "CII_BASELINE_ALPHA",
    "CII_WEIGHTS",
    "CONVERGENCE_RADIUS_KM",
    "CONVERGENCE_TIME_WINDOW_MINUTES",
    "CYCLE_INTERVAL_SECONDS",
    "DEDUP_SIMILARITY_THRESHOLD",
    "DEDUP_WINDOW_MINUTES",
]

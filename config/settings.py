"""SignalFusion — FusionConfig and environment/YAML-based configuration loading.

All runtime configuration flows through FusionConfig. No module-level globals,
no hard-coded values. Paths and log level may come from environment variables;
everything else comes from config/defaults.py or a YAML file.

Malformed configuration raises ConfigurationError at construction time —
it is the only fatal error class in the system.
"""

from __future__ import annotations

import dataclasses
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Type, TypeVar

import yaml
from dotenv import load_dotenv

from config.defaults import (
    BASELINE_DEVIATION_CLAMP,
    BASELINE_EPSILON,
    BASELINE_MIN_SAMPLES,
    BASELINE_PATH,
    BASELINE_RETENTION_DAYS,
    BREAKER_COOLDOWN_SECONDS,
    BREAKER_MAX_COOLDOWN_SECONDS,
    BREAKER_MAX_FAILURES,
    CACHE_DIR,
    CACHE_MAX_AGE_SECONDS,
    CACHE_SWEEP_INTERVAL_SECONDS,
    CII_BASELINE_ALPHA,
    CII_REDISTRIBUTE_MISSING,
    CII_WEIGHTS,
    CONVERGENCE_DOMAIN_BONUS,
    CONVERGENCE_RADIUS_KM,
    CONVERGENCE_TIME_WINDOW_MINUTES,
    CYCLE_INTERVAL_SECONDS,
    DEDUP_LOCATION_TOLERANCE_KM,
    DEDUP_MAGNITUDE_TOLERANCE,
    DEDUP_MIN_TOKEN_LENGTH,
    DEDUP_SIMILARITY_METRIC,
    DEDUP_SIMILARITY_THRESHOLD,
    DEDUP_WINDOW_MINUTES,
    DEFAULT_LOG_LEVEL,
    DOMAIN_SOURCE_OVERRIDES,
    HTTP_BACKOFF_BASE,
    HTTP_MAX_RETRIES,
    HTTP_STAGGER_SECONDS,
    LOG_CONFIG_PATH,
    OUTPUT_ROOT,
    SOURCE_POLL_INTERVAL_SECONDS,
    SOURCE_SCORE_SATURATION,
    SOURCE_TIMEOUT_SECONDS,
    SOURCE_TTL_SECONDS,
)
from signalfusion.errors import ConfigurationError
from signalfusion.models.signals import Domain

# Load .env file if present; silently skip if missing
load_dotenv()

_C = TypeVar("_C")

FEED_KINDS = ("json", "usgs_geojson", "rss")
SIMILARITY_METRICS = ("jaccard", "levenshtein")


def _parse_domain(value: Any, context: str) -> Domain:
    try:
        return Domain.parse(value)
    except ValueError:
        raise ConfigurationError(
            f"{context}: unknown domain {value!r} (expected one of "
            f"{', '.join(d.value for d in Domain)})"
        ) from None


def _require_positive(name: str, value: float) -> None:
    if value is None or value <= 0:
        raise ConfigurationError(f"{name} must be > 0, got {value!r}")


@dataclass
class SourceSettings:
    """Per-domain fetch, cache and breaker settings."""

    poll_interval_seconds: float = SOURCE_POLL_INTERVAL_SECONDS
    timeout_seconds: float = SOURCE_TIMEOUT_SECONDS
    ttl_seconds: float = SOURCE_TTL_SECONDS
    breaker_max_failures: int = BREAKER_MAX_FAILURES
    breaker_cooldown_seconds: float = BREAKER_COOLDOWN_SECONDS
    breaker_max_cooldown_seconds: float = BREAKER_MAX_COOLDOWN_SECONDS
    score_saturation: float = SOURCE_SCORE_SATURATION

    def __post_init__(self) -> None:
        _require_positive("poll_interval_seconds", self.poll_interval_seconds)
        _require_positive("timeout_seconds", self.timeout_seconds)
        _require_positive("ttl_seconds", self.ttl_seconds)
        _require_positive("breaker_cooldown_seconds", self.breaker_cooldown_seconds)
        _require_positive("score_saturation", self.score_saturation)
        if int(self.breaker_max_failures) < 1:
            raise ConfigurationError(
                f"breaker_max_failures must be >= 1, got {self.breaker_max_failures!r}"
            )
        if self.breaker_max_cooldown_seconds < self.breaker_cooldown_seconds:
            raise ConfigurationError(
                "breaker_max_cooldown_seconds must be >= breaker_cooldown_seconds"
            )

    @classmethod
    def for_domain(cls, domain: Domain, **overrides: Any) -> "SourceSettings":
        """Defaults for ``domain`` (DOMAIN_SOURCE_OVERRIDES) with explicit overrides on top."""
        values: Dict[str, Any] = dict(DOMAIN_SOURCE_OVERRIDES.get(domain.value, {}))
        values.update(overrides)
        return _build(cls, values, f"sources.{domain.value}")


@dataclass
class FeedSettings:
    """One configured upstream feed, turned into a SourceClient by build_sources()."""

    domain: Domain
    kind: str
    url: str = ""
    urls: List[str] = field(default_factory=list)
    name: str = ""
    records_path: str = ""                                  # dotted path to the record list
    fields: Dict[str, str] = field(default_factory=dict)    # RawSignal field → payload key
    country: Optional[str] = None                           # default ISO2 for every record
    params: Dict[str, Any] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.domain = _parse_domain(self.domain, "feeds")
        if self.kind not in FEED_KINDS:
            raise ConfigurationError(
                f"feeds: unknown kind {self.kind!r} (expected one of {', '.join(FEED_KINDS)})"
            )
        if not self.url and not self.urls:
            raise ConfigurationError(f"feeds: {self.kind} feed for {self.domain.value} has no url")
        if not self.name:
            self.name = f"{self.domain.value}-{self.kind}"


@dataclass
class DedupSettings:
    """Near-duplicate detection parameters."""

    window_minutes: float = DEDUP_WINDOW_MINUTES
    similarity_threshold: float = DEDUP_SIMILARITY_THRESHOLD
    similarity_metric: str = DEDUP_SIMILARITY_METRIC
    location_tolerance_km: float = DEDUP_LOCATION_TOLERANCE_KM
    magnitude_tolerance: float = DEDUP_MAGNITUDE_TOLERANCE
    min_token_length: int = DEDUP_MIN_TOKEN_LENGTH

    def __post_init__(self) -> None:
        _require_positive("dedup.window_minutes", self.window_minutes)
        if not 0.0 < self.similarity_threshold <= 1.0:
            raise ConfigurationError(
                f"dedup.similarity_threshold must be in (0, 1], got {self.similarity_threshold!r}"
            )
        if self.similarity_metric not in SIMILARITY_METRICS:
            raise ConfigurationError(
                f"dedup.similarity_metric must be one of {SIMILARITY_METRICS}, "
                f"got {self.similarity_metric!r}"
            )
        if self.location_tolerance_km < 0 or self.magnitude_tolerance < 0:
            raise ConfigurationError("dedup tolerances must be >= 0")


@dataclass
class ConvergenceSettings:
    """Spatial / temporal co-location parameters."""

    radius_km: float = CONVERGENCE_RADIUS_KM
    time_window_minutes: float = CONVERGENCE_TIME_WINDOW_MINUTES
    domain_bonus: float = CONVERGENCE_DOMAIN_BONUS

    def __post_init__(self) -> None:
        _require_positive("convergence.radius_km", self.radius_km)
        _require_positive("convergence.time_window_minutes", self.time_window_minutes)
        if self.domain_bonus < 0:
            raise ConfigurationError("convergence.domain_bonus must be >= 0")


@dataclass
class BaselineSettings:
    """Rolling-baseline parameters for deviation scoring."""

    retention_days: float = BASELINE_RETENTION_DAYS
    min_samples: int = BASELINE_MIN_SAMPLES
    deviation_clamp: float = BASELINE_DEVIATION_CLAMP
    epsilon: float = BASELINE_EPSILON
    path: str = field(default_factory=lambda: os.getenv("BASELINE_PATH", BASELINE_PATH))

    def __post_init__(self) -> None:
        _require_positive("baseline.retention_days", self.retention_days)
        _require_positive("baseline.deviation_clamp", self.deviation_clamp)
        _require_positive("baseline.epsilon", self.epsilon)
        if int(self.min_samples) < 2:
            raise ConfigurationError("baseline.min_samples must be >= 2")


@dataclass
class InstabilityWeights:
    """Fixed per-domain CII weights plus the baseline nudge factor.

    Weights must be non-negative and sum to 1.0; anything else is fatal.
    """

    weights: Dict[Domain, float] = field(
        default_factory=lambda: {Domain.parse(k): v for k, v in CII_WEIGHTS.items()}
    )
    alpha: float = CII_BASELINE_ALPHA
    redistribute_missing: bool = CII_REDISTRIBUTE_MISSING

    def __post_init__(self) -> None:
        parsed: Dict[Domain, float] = {}
        for key, value in dict(self.weights).items():
            domain = _parse_domain(key, "instability.weights")
            weight = float(value)
            if weight < 0:
                raise ConfigurationError(
                    f"instability.weights: {domain.value} has negative weight {weight}"
                )
            parsed[domain] = weight
        self.weights = parsed

        total = sum(self.weights.values())
        if abs(total - 1.0) > 1e-6:
            raise ConfigurationError(f"InstabilityWeights must sum to 1.0, got {total:.4f}")
        if self.alpha < 0:
            raise ConfigurationError("instability.alpha must be >= 0")

    def weight(self, domain: Domain) -> float:
        return self.weights.get(domain, 0.0)


@dataclass
class FusionConfig:
    """Single configuration object threaded through every stage.

    All tuneable thresholds, intervals and file paths live here.
    Never use module-level globals or hard-coded values in stage code.
    """

    # ── Sources ────────────────────────────────────────────────────────────────
    sources: Dict[Domain, SourceSettings] = field(default_factory=dict)
    feeds: List[FeedSettings] = field(default_factory=list)
    required_domains: List[Domain] = field(default_factory=list)

    # ── HTTP client ────────────────────────────────────────────────────────────
    http_max_retries: int = HTTP_MAX_RETRIES
    http_backoff_base: float = HTTP_BACKOFF_BASE
    http_stagger_seconds: float = HTTP_STAGGER_SECONDS

    # ── Fusion stages ──────────────────────────────────────────────────────────
    dedup: DedupSettings = field(default_factory=DedupSettings)
    convergence: ConvergenceSettings = field(default_factory=ConvergenceSettings)
    baseline: BaselineSettings = field(default_factory=BaselineSettings)
    instability: InstabilityWeights = field(default_factory=InstabilityWeights)

    # ── Scheduling ─────────────────────────────────────────────────────────────
    cycle_interval_seconds: float = CYCLE_INTERVAL_SECONDS
    cache_sweep_interval_seconds: float = CACHE_SWEEP_INTERVAL_SECONDS
    cache_max_age_seconds: float = CACHE_MAX_AGE_SECONDS

    # ── Storage, output and logging ────────────────────────────────────────────
    cache_dir: str = field(default_factory=lambda: os.getenv("CACHE_DIR", CACHE_DIR))
    output_root: str = field(default_factory=lambda: os.getenv("OUTPUT_ROOT", OUTPUT_ROOT))
    export_results: bool = False
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", DEFAULT_LOG_LEVEL))
    log_config_path: str = field(default_factory=lambda: os.getenv("LOG_CONFIG", LOG_CONFIG_PATH))

    def __post_init__(self) -> None:
        sources: Dict[Domain, SourceSettings] = {}
        for key, value in dict(self.sources).items():
            domain = _parse_domain(key, "sources")
            if isinstance(value, SourceSettings):
                sources[domain] = value
            else:
                sources[domain] = SourceSettings.for_domain(domain, **dict(value or {}))
        for domain in Domain:
            sources.setdefault(domain, SourceSettings.for_domain(domain))
        self.sources = sources

        self.required_domains = [_parse_domain(d, "required_domains") for d in self.required_domains]

        _require_positive("cycle_interval_seconds", self.cycle_interval_seconds)
        _require_positive("cache_sweep_interval_seconds", self.cache_sweep_interval_seconds)
        _require_positive("cache_max_age_seconds", self.cache_max_age_seconds)
        if self.http_max_retries < 0:
            raise ConfigurationError("http_max_retries must be >= 0")
        self.log_level = str(self.log_level).upper()
        if not isinstance(logging.getLevelName(self.log_level), int):
            raise ConfigurationError(f"log_level: unknown level {self.log_level!r}")

    def source_settings(self, domain: Domain) -> SourceSettings:
        """Settings for ``domain`` (always present after __post_init__)."""
        return self.sources[Domain.parse(domain)]


# ── YAML / mapping loaders ──────────────────────────────────────────────────────


def _build(cls: Type[_C], data: Mapping[str, Any], section: str) -> _C:
    """Instantiate a settings dataclass, rejecting keys it does not declare."""
    if not isinstance(data, Mapping):
        raise ConfigurationError(f"{section}: expected a mapping, got {type(data).__name__}")
    known = {f.name for f in dataclasses.fields(cls)}  # type: ignore[arg-type]
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigurationError(f"{section}: unknown key(s) {', '.join(unknown)}")
    try:
        return cls(**dict(data))
    except TypeError as exc:
        raise ConfigurationError(f"{section}: {exc}") from exc


def config_from_dict(data: Mapping[str, Any]) -> FusionConfig:
    """Build a FusionConfig from a plain mapping (e.g. parsed YAML).

    Nested sections (dedup, convergence, baseline, instability, feeds,
    sources) are converted to their typed settings objects.

    Raises:
        ConfigurationError: on unknown keys or invalid values.
    """
    values: Dict[str, Any] = dict(data or {})
    if "dedup" in values:
        values["dedup"] = _build(DedupSettings, values["dedup"], "dedup")
    if "convergence" in values:
        values["convergence"] = _build(ConvergenceSettings, values["convergence"], "convergence")
    if "baseline" in values:
        values["baseline"] = _build(BaselineSettings, values["baseline"], "baseline")
    if "instability" in values:
        values["instability"] = _build(InstabilityWeights, values["instability"], "instability")
    if "feeds" in values:
        values["feeds"] = [
            _build(FeedSettings, feed, f"feeds[{i}]") for i, feed in enumerate(values["feeds"] or [])
        ]
    if "sources" in values:
        sources = values["sources"] or {}
        if not isinstance(sources, Mapping):
            raise ConfigurationError("sources: expected a mapping of domain → settings")
        for name, section in sources.items():
            if section is not None and not isinstance(section, Mapping):
                raise ConfigurationError(f"sources.{name}: expected a mapping")
            known = {f.name for f in dataclasses.fields(SourceSettings)}
            unknown = sorted(set(section or {}) - known)
            if unknown:
                raise ConfigurationError(f"sources.{name}: unknown key(s) {', '.join(unknown)}")
    return _build(FusionConfig, values, "config")


def load_config(path: str | Path) -> FusionConfig:
    """Load a FusionConfig from a YAML file.

    Args:
        path: Path to a YAML document whose top level mirrors FusionConfig.

    Returns:
        Validated FusionConfig.

    Raises:
        ConfigurationError: if the file is missing, unparseable or invalid.
    """
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Config file not found: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Config file {path} is not valid YAML: {exc}") from exc
    return config_from_dict(data)

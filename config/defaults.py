"""SignalFusion — All default threshold values and configuration constants.

All tuneable values live here. Never hard-code magic numbers in source files.
Import constants from this module; override via FusionConfig at runtime.
"""

# ── Source polling ─────────────────────────────────────────────────────────────
# Seconds between polls for a live feed when no domain override exists
SOURCE_POLL_INTERVAL_SECONDS: float = 300.0

# Per-fetch timeout (seconds); a fetch exceeding it counts as a breaker failure
SOURCE_TIMEOUT_SECONDS: float = 15.0

# Cache freshness horizon for live feeds (seconds)
SOURCE_TTL_SECONDS: float = 300.0

# Aggregate intensity at which a domain sub-score saturates at 1.0
SOURCE_SCORE_SATURATION: float = 30.0

# Per-domain overrides, keyed by domain name. Missing keys use the values above.
DOMAIN_SOURCE_OVERRIDES = {
    "aviation": {"poll_interval_seconds": 60.0, "ttl_seconds": 300.0, "timeout_seconds": 10.0},
    "maritime": {"poll_interval_seconds": 120.0, "ttl_seconds": 600.0, "timeout_seconds": 15.0},
    "military": {"poll_interval_seconds": 120.0, "ttl_seconds": 600.0, "timeout_seconds": 15.0},
    "conflict": {"poll_interval_seconds": 900.0, "ttl_seconds": 3600.0, "timeout_seconds": 30.0},
    "unrest": {"poll_interval_seconds": 900.0, "ttl_seconds": 3600.0, "timeout_seconds": 30.0},
    "cyber": {"poll_interval_seconds": 600.0, "ttl_seconds": 1800.0, "timeout_seconds": 20.0},
    "economic": {"poll_interval_seconds": 3600.0, "ttl_seconds": 86400.0, "timeout_seconds": 30.0},
    "news": {"poll_interval_seconds": 300.0, "ttl_seconds": 900.0, "timeout_seconds": 15.0},
    "seismic": {"poll_interval_seconds": 60.0, "ttl_seconds": 300.0, "timeout_seconds": 8.0},
    "outage": {"poll_interval_seconds": 300.0, "ttl_seconds": 900.0, "timeout_seconds": 15.0},
}

# ── Circuit breaker ────────────────────────────────────────────────────────────
# Consecutive failures before the breaker opens
BREAKER_MAX_FAILURES: int = 5

# Initial open-state cooldown (seconds); doubles after each failed trial call
BREAKER_COOLDOWN_SECONDS: float = 60.0

# Upper bound for the doubled cooldown (seconds)
BREAKER_MAX_COOLDOWN_SECONDS: float = 900.0

# ── HTTP client ────────────────────────────────────────────────────────────────
# Retry attempts on 429 / 5xx / connection errors before giving up
HTTP_MAX_RETRIES: int = 2

# Base seconds for exponential backoff between retries
HTTP_BACKOFF_BASE: float = 1.0

# Minimum seconds between successive requests from one client
HTTP_STAGGER_SECONDS: float = 0.5

# ── Bundled feeds ──────────────────────────────────────────────────────────────
# USGS real-time earthquake feed (GeoJSON summary, past hour)
USGS_FEED_URL: str = "https://earthquake.usgs.gov/earthquakes/feed/v1.0/summary/all_hour.geojson"

# Confidence for USGS events not yet reviewed by a seismologist
USGS_AUTOMATIC_CONFIDENCE: float = 0.8

# Confidence assigned to a single RSS headline
RSS_SIGNAL_CONFIDENCE: float = 0.6

# Magnitude assigned to a single RSS headline
RSS_SIGNAL_MAGNITUDE: float = 1.0

# ── Cache ──────────────────────────────────────────────────────────────────────
# Seconds between scheduled cache sweeps
CACHE_SWEEP_INTERVAL_SECONDS: float = 600.0

# Entries older than this are evicted by the sweep (seconds)
CACHE_MAX_AGE_SECONDS: float = 7 * 86400.0

# Durable cache directory; empty string keeps the cache in memory only
CACHE_DIR: str = ""

# ── Deduplication ──────────────────────────────────────────────────────────────
# Maximum minutes between two reports considered for near-duplicate matching
DEDUP_WINDOW_MINUTES: float = 120.0

# Token-overlap (Jaccard) similarity at or above which two texts are duplicates
DEDUP_SIMILARITY_THRESHOLD: float = 0.6

# Text similarity metric: "jaccard" or "levenshtein"
DEDUP_SIMILARITY_METRIC: str = "jaccard"

# Two locations closer than this are "the same place" (km)
DEDUP_LOCATION_TOLERANCE_KM: float = 1.0

# Absolute magnitude difference tolerated for location-based duplicates
DEDUP_MAGNITUDE_TOLERANCE: float = 0.05

# Tokens shorter than this are ignored by the Jaccard metric
DEDUP_MIN_TOKEN_LENGTH: int = 3

# ── Convergence ────────────────────────────────────────────────────────────────
# Maximum distance between co-located signals (km)
CONVERGENCE_RADIUS_KM: float = 50.0

# Maximum time span of a convergence cluster (minutes)
CONVERGENCE_TIME_WINDOW_MINUTES: float = 60.0

# Score multiplier added per distinct domain beyond the first
CONVERGENCE_DOMAIN_BONUS: float = 0.5

# ── Baseline ───────────────────────────────────────────────────────────────────
# Rolling retention horizon for baseline samples (days)
BASELINE_RETENTION_DAYS: float = 30.0

# Fewer samples than this → deviation is 0 (no opinion)
BASELINE_MIN_SAMPLES: int = 7

# Deviation is clamped to [-BASELINE_DEVIATION_CLAMP, +BASELINE_DEVIATION_CLAMP]
BASELINE_DEVIATION_CLAMP: float = 5.0

# Floor for the standard deviation used as the z-score denominator
BASELINE_EPSILON: float = 1e-6

# Optional JSON file the baseline history is loaded from and saved to
BASELINE_PATH: str = ""

# ── Instability index ──────────────────────────────────────────────────────────
# Fixed per-domain weights (must sum to 1.0)
CII_WEIGHTS = {
    "military": 0.25,
    "conflict": 0.20,
    "unrest": 0.15,
    "economic": 0.15,
    "cyber": 0.10,
    "maritime": 0.05,
    "aviation": 0.05,
    "news": 0.05,
}

# Multiplier applied to the baseline deviation before it is added to the composite
CII_BASELINE_ALPHA: float = 0.05

# Redistribute weight from domains without data onto the present ones
CII_REDISTRIBUTE_MISSING: bool = False

# Lower bounds of the CII level bands (0–100 scale)
CII_LEVEL_THRESHOLDS = (
    (75.0, "CRITICAL"),
    (50.0, "HIGH"),
    (30.0, "ELEVATED"),
    (15.0, "MODERATE"),
    (0.0, "LOW"),
)

# Minimum CII change between cycles reported as a rising/falling trend
CII_TREND_DELTA: float = 2.0

# ── Orchestration ──────────────────────────────────────────────────────────────
# Seconds between scoring / convergence cycles
CYCLE_INTERVAL_SECONDS: float = 60.0

# ── Output paths ──────────────────────────────────────────────────────────────
# Root directory for exported cycle results
OUTPUT_ROOT: str = "outputs/cycles"

# ── Logging ────────────────────────────────────────────────────────────────────
DEFAULT_LOG_LEVEL: str = "INFO"
# logging.dictConfig YAML; empty means the bundled config/logging.yaml
LOG_CONFIG_PATH: str = ""

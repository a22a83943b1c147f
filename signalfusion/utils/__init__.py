"""SignalFusion utilities package.

All utilities are stateless pure functions with no external calls or side effects.
"""

from signalfusion.utils.date_utils import ensure_utc, parse_timestamp, utcnow
from signalfusion.utils.geo_utils import (
    haversine_km,
    is_valid_coordinate,
    normalize_longitude,
    weighted_centroid,
)
from signalfusion.utils.levenshtein_utils import similarity
from signalfusion.utils.text import clean_html, jaccard, normalize_text, tokenize

__all__ = [
    "ensure_utc",
    "parse_timestamp",
    "utcnow",
    "haversine_km",
    "is_valid_coordinate",
    "normalize_longitude",
    "weighted_centroid",
    "similarity",
    "clean_html",
    "jaccard",
    "normalize_text",
    "tokenize",
]

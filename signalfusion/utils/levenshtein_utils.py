"""Levenshtein similarity utilities for SignalFusion.

Edit-distance similarity used as the alternative headline-dedup metric.
No I/O or external calls.
"""

from __future__ import annotations

from Levenshtein import ratio as _lev_ratio

from signalfusion.utils.text import normalize_text


def similarity(s1: str, s2: str) -> float:
    """Compute the normalized Levenshtein similarity ratio between two strings.

    Returns a value in [0.0, 1.0] where 1.0 means identical strings
    (case and surrounding whitespace are ignored).

    Args:
        s1: First string.
        s2: Second string.

    Returns:
        Similarity ratio in [0.0, 1.0].
    """
    s1 = normalize_text(s1).lower()
    s2 = normalize_text(s2).lower()
    if not s1 and not s2:
        return 1.0
    return float(_lev_ratio(s1, s2))

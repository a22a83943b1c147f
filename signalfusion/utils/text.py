"""Text processing utilities for SignalFusion.

Pure functions for headline cleanup, tokenization and token-overlap
similarity. All functions are stateless with no I/O or external calls.
"""

from __future__ import annotations

import html
import re
import unicodedata
from typing import AbstractSet, FrozenSet

_TOKEN_RE = re.compile(r"\w+", re.UNICODE)


def clean_html(raw_html: str) -> str:
    """Strip HTML tags and decode HTML entities from a string.

    Args:
        raw_html: HTML-containing string (RSS summaries, feed titles).

    Returns:
        Plain text with tags removed and entities decoded.
    """
    text = html.unescape(raw_html)
    text = re.sub(r"<[^>]+>", " ", text)
    text = re.sub(r"\s+", " ", text).strip()
    return text


def normalize_text(text: str) -> str:
    """Normalize Unicode text to NFC form, strip control characters and extra whitespace.

    Args:
        text: Input string.

    Returns:
        Normalized plain text string.
    """
    text = unicodedata.normalize("NFC", text)
    text = re.sub(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]", "", text)
    text = re.sub(r"\s+", " ", text).strip()
    return text


def tokenize(text: str, min_length: int = 1) -> FrozenSet[str]:
    """Lower-cased word tokens of at least ``min_length`` characters."""
    return frozenset(
        tok for tok in _TOKEN_RE.findall(normalize_text(text).lower())
        if len(tok) >= min_length
    )


def jaccard(tokens_a: AbstractSet[str], tokens_b: AbstractSet[str]) -> float:
    """Token-overlap similarity |A ∩ B| / |A ∪ B| of two token sets.

    Returns:
        Jaccard score in [0.0, 1.0]; 0.0 when either side is empty.
    """
    if not tokens_a or not tokens_b:
        return 0.0
    return len(tokens_a & tokens_b) / len(tokens_a | tokens_b)

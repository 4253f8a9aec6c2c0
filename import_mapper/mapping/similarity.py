"""Field-name normalization and string similarity measures."""

from __future__ import annotations

import math
import re

from rapidfuzz.distance import Levenshtein

_NON_ALPHANUMERIC = re.compile(r"[^a-z0-9]+")


def normalize_field_name(name: str) -> str:
    """Lowercase, non-alphanumeric runs to ``_``, edges trimmed.

    Idempotent: normalizing a normalized name returns it unchanged.
    """
    return _NON_ALPHANUMERIC.sub("_", name.lower()).strip("_")


def levenshtein_similarity(left: str, right: str) -> float:
    """1 - edit distance / length of the longer string."""
    return Levenshtein.normalized_similarity(left, right)


def jaccard_similarity(left: str, right: str) -> float:
    """Jaccard index of the two strings' character sets."""
    left_chars, right_chars = set(left), set(right)
    union = left_chars | right_chars
    if not union:
        return 0.0
    return len(left_chars & right_chars) / len(union)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))

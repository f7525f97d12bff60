#!/usr/bin/env python3
"""
Rx Medicine Linker — String Similarity

Scores how closely an OCR-extracted medicine name resembles a catalog name.
The primary score is a normalised Levenshtein similarity with a partial-credit
shortcut for containment, since truncated OCR reads ("Para" for
"Paracetamol") are common.

Also provides a pg_trgm-compatible trigram similarity so the in-memory
catalog can rank composition names the way PostgreSQL does.

Dependencies:
    pip install rapidfuzz
"""

from __future__ import annotations

import re

from rapidfuzz.distance import Levenshtein


# Partial credit given when one name fully contains the other
CONTAINMENT_WEIGHT = 0.8

# pg_trgm's default similarity_threshold for the % operator
DEFAULT_TRIGRAM_THRESHOLD = 0.3

_TRGM_WORD = re.compile(r"[^\W_]+")


# ---------------------------------------------------------------------------
# Scoring functions
# ---------------------------------------------------------------------------


def levenshtein_similarity(a: str, b: str) -> float:
    """
    Normalised Levenshtein similarity between two strings.

    Returns a value in [0.0, 1.0] where 1.0 means identical.
    """
    if not a and not b:
        return 1.0
    if not a or not b:
        return 0.0
    max_len = max(len(a), len(b))
    dist = Levenshtein.distance(a, b)
    return max(0.0, 1.0 - (dist / max_len))


def containment_similarity(a: str, b: str) -> float | None:
    """
    Partial-credit score when one string contains the other.

    Returns ``0.8 * shorter/longer`` on containment, None otherwise.
    """
    if not a or not b:
        return None
    if a in b or b in a:
        return CONTAINMENT_WEIGHT * (min(len(a), len(b)) / max(len(a), len(b)))
    return None


def similarity(a: str, b: str) -> float:
    """
    Case-insensitive similarity between an input name and a catalog name.

    Scoring:
        - identical after case-folding      → 1.0
        - one contains the other            → 0.8 * (min_len / max_len)
        - otherwise                         → normalised Levenshtein, floored at 0

    Empty operands score 0.0; blank input is rejected before scoring.
    """
    if not a or not b:
        return 0.0

    s1 = a.lower()
    s2 = b.lower()

    if s1 == s2:
        return 1.0

    contained = containment_similarity(s1, s2)
    if contained is not None:
        return contained

    return levenshtein_similarity(s1, s2)


# ---------------------------------------------------------------------------
# Trigram similarity (pg_trgm semantics)
# ---------------------------------------------------------------------------


def trigrams(text: str) -> set[str]:
    """
    Extract the pg_trgm trigram set of a string.

    Each alphanumeric word is lowercased and padded with two leading spaces
    and one trailing space before being cut into trigrams.
    """
    grams: set[str] = set()
    for word in _TRGM_WORD.findall(text.lower()):
        padded = f"  {word} "
        for i in range(len(padded) - 2):
            grams.add(padded[i:i + 3])
    return grams


def trigram_similarity(a: str, b: str) -> float:
    """Shared-trigram ratio, equivalent to pg_trgm's ``similarity(a, b)``."""
    grams_a = trigrams(a or "")
    grams_b = trigrams(b or "")
    if not grams_a or not grams_b:
        return 0.0
    return len(grams_a & grams_b) / len(grams_a | grams_b)


def trigram_match(
    a: str,
    b: str,
    threshold: float = DEFAULT_TRIGRAM_THRESHOLD,
) -> bool:
    """Equivalent of the pg_trgm ``a % b`` operator."""
    return trigram_similarity(a, b) >= threshold


# ---------------------------------------------------------------------------
# Convenience helpers
# ---------------------------------------------------------------------------


def names_are_similar(
    name_a: str,
    name_b: str,
    threshold: float = 0.70,
) -> bool:
    """Return True if the two names reach the similarity threshold."""
    return similarity(name_a, name_b) >= threshold

#!/usr/bin/env python3
"""
Rx Medicine Linker — Name Variation Generation

Expands one noisy, OCR-extracted medicine name into a small ordered set of
plausible canonical forms: dosage forms, strengths and release suffixes are
stripped, punctuation is normalised, and one OCR look-alike substitution is
applied.

Output order is "most specific first" as a soft preference only; callers
must treat the result as a set.
"""

from __future__ import annotations

import re
from dataclasses import dataclass


# ---------------------------------------------------------------------------
# Prescription naming noise
# ---------------------------------------------------------------------------

DOSAGE_FORMS = (
    "tablet",
    "tab",
    "capsule",
    "cap",
    "syrup",
    "injection",
    "inj",
    "suspension",
    "drop",
    "cream",
    "ointment",
    "gel",
    "powder",
    "sachet",
)

RELEASE_SUFFIXES = ("MR", "SR", "XR", "ER", "CR", "LA", "XL", "DS")

STRENGTH_UNITS = ("mcg", "mg", "gm", "ml", "iu", "g", "l", "%")

# Default OCR look-alike substitution; one direction per generation call
DEFAULT_OCR_CONFUSION: tuple[str, str] = ("0", "O")

MIN_VARIANT_LENGTH = 3

_UNIT_ALT = "|".join(re.escape(u) for u in STRENGTH_UNITS)

# The number must start a token: "Paracetam0l" holds no "0l" strength
_STRENGTH_RE = re.compile(
    rf"(?<![A-Za-z\d.])(\d+(?:\.\d+)?)\s*({_UNIT_ALT})(?![a-z])",
    re.IGNORECASE,
)

_DOSAGE_FORM_RE = re.compile(
    rf"\s+(?:{'|'.join(DOSAGE_FORMS)})s?$",
    re.IGNORECASE,
)
_TRAILING_STRENGTH_RE = re.compile(
    rf"\s+\d+(?:\.\d+)?\s*(?:{_UNIT_ALT})$",
    re.IGNORECASE,
)
_TRAILING_NUMBER_RE = re.compile(r"\s+\d+(?:\.\d+)?$")
_TRAILING_ABBREVIATION_RE = re.compile(r"\s+[A-Z]{2,5}$")
_RELEASE_SUFFIX_RE = re.compile(
    rf"\s+(?:{'|'.join(RELEASE_SUFFIXES)})$",
    re.IGNORECASE,
)

_TRAILING_PATTERNS = (
    _DOSAGE_FORM_RE,
    _TRAILING_STRENGTH_RE,
    _TRAILING_NUMBER_RE,
    _TRAILING_ABBREVIATION_RE,
    _RELEASE_SUFFIX_RE,
)

_PUNCTUATION_RE = re.compile(r"[^\w\s-]")
_MULTI_SPACE = re.compile(r"\s+")
_SEPARATOR_RE = re.compile(r"[-_]")
_BRACKETED_RE = re.compile(r"\s*[(\[{].*?[)\]}]\s*")


# ---------------------------------------------------------------------------
# Strength extraction
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Strength:
    """A medicine name split into its core and a single strength token."""

    core: str
    strength_value: str | None = None
    unit: str | None = None

    @property
    def full_dose(self) -> str | None:
        if self.strength_value is None or self.unit is None:
            return None
        return f"{self.strength_value}{self.unit}"


def extract_strength(name: str) -> Strength:
    """
    Split the first ``number + unit`` token out of a medicine name.

    Examples:
        "Paracetamol 500mg"  → Strength("Paracetamol", "500", "mg")
        "Insulin 40 IU"      → Strength("Insulin", "40", "iu")
        "Cetirizine"         → Strength("Cetirizine", None, None)
    """
    if not name:
        return Strength(core="")

    m = _STRENGTH_RE.search(name)
    if not m:
        return Strength(core=name.strip())

    core = name[:m.start()] + " " + name[m.end():]
    core = _MULTI_SPACE.sub(" ", core).strip()
    return Strength(core=core, strength_value=m.group(1), unit=m.group(2).lower())


# ---------------------------------------------------------------------------
# Variation generation
# ---------------------------------------------------------------------------


def strip_trailing_noise(name: str) -> str:
    """
    Repeatedly strip trailing dosage forms, strengths, bare numbers,
    abbreviations and release suffixes until nothing more comes off.

    "Paracetamol Tab 500mg" → "Paracetamol"
    """
    current = name.strip()
    while True:
        stripped = current
        for pattern in _TRAILING_PATTERNS:
            candidate = pattern.sub("", stripped).strip()
            if candidate:
                stripped = candidate
        if stripped == current:
            return current
        current = stripped


def apply_ocr_confusion(name: str, confusion: tuple[str, str]) -> str:
    """Replace every occurrence of one OCR look-alike character."""
    source, target = confusion
    return name.replace(source, target)


def generate_variations(
    name: str,
    *,
    ocr_confusion: tuple[str, str] | None = DEFAULT_OCR_CONFUSION,
    min_length: int = MIN_VARIANT_LENGTH,
) -> list[str]:
    """
    Generate candidate canonical forms for a noisy medicine name.

    Strategies, each contributing the variant and its lowercase form:
        1. Original (trimmed) name
        2. Trailing dosage-form word stripped ("tablet", "syrups", ...)
        3. Trailing strength token stripped ("500mg", "10 ml")
        4. Trailing bare number or upper-case abbreviation stripped
        5. Release suffix stripped (MR/SR/XR/ER/CR/LA/XL/DS)
        6. All trailing noise stripped to a fixed point
        7. Punctuation normalised to spaces
        8. Text before the first "-" or "_" separator
        9. Bracketed segments removed
       10. One OCR look-alike substitution on the name and its stripped core
       11. Longest word and first word of multi-word names (length > 3)

    Variants shorter than ``min_length`` are discarded.

    Parameters
    ----------
    name : str
        Raw medicine name as read from the prescription.
    ocr_confusion : tuple of (str, str), optional
        Single substitution direction applied in this call. Pass None to
        skip OCR correction; call again with another pair for more.
    min_length : int
        Minimum variant length. Default 3.

    Returns
    -------
    Duplicate-free list of variants, most specific first.
    """
    if not name or not isinstance(name, str):
        return []

    clean = name.strip()
    if not clean:
        return []

    variations: dict[str, None] = {}

    def add(value: str) -> None:
        value = value.strip()
        if value:
            variations.setdefault(value, None)
            variations.setdefault(value.lower(), None)

    add(clean)

    # Trailing suffix patterns, one at a time
    for pattern in _TRAILING_PATTERNS:
        without = pattern.sub("", clean).strip()
        if without and without != clean:
            add(without)

    core = strip_trailing_noise(clean)
    if core != clean:
        add(core)

    # Punctuation and spacing
    normalized = _MULTI_SPACE.sub(" ", _PUNCTUATION_RE.sub(" ", clean)).strip()
    if normalized != clean:
        add(normalized)

    # "Paracetamol-500" → "Paracetamol"
    head = _SEPARATOR_RE.split(clean, maxsplit=1)[0].strip()
    if head and head != clean:
        add(head)

    # "Aspirin (Bayer)" → "Aspirin"
    unbracketed = _MULTI_SPACE.sub(" ", _BRACKETED_RE.sub(" ", clean)).strip()
    if unbracketed and unbracketed != clean:
        add(unbracketed)

    if ocr_confusion is not None:
        for base in (clean, core):
            fixed = apply_ocr_confusion(base, ocr_confusion)
            if fixed != base:
                add(fixed)

    words = clean.split()
    if len(words) > 1:
        longest = max(words, key=len)
        if len(longest) > 3:
            add(longest)
        if len(words[0]) > 3:
            add(words[0])

    return [v for v in variations if len(v) >= min_length]

"""
Rx Medicine Linker — Matcher Configuration

Defaults are overridden by config/matching_rules.yaml at runtime.

Dependencies:
    pip install pyyaml
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import yaml

ROOT = Path(__file__).resolve().parent.parent
DEFAULT_CONFIG_PATH = ROOT / "config" / "matching_rules.yaml"


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

_DEFAULT_OCR_CONFUSIONS: list[tuple[str, str]] = [("0", "O")]

_DEFAULT_CONFIDENCE_BANDS = {
    "high": 0.90,
    "medium": 0.70,
}


@dataclass
class MatcherConfig:
    """Tunable weights and thresholds for fuzzy medicine matching."""

    min_similarity: float = 0.70
    max_results: int = 5
    prefer_exact_match: bool = True
    min_variant_length: int = 3
    max_alternatives: int = 2
    composition_discount: float = 0.90
    strength_bonus: float = 1.15
    ocr_confusions: list[tuple[str, str]] = field(
        default_factory=lambda: list(_DEFAULT_OCR_CONFUSIONS)
    )
    confidence_bands: dict[str, float] = field(
        default_factory=lambda: dict(_DEFAULT_CONFIDENCE_BANDS)
    )
    query_timeout_ms: int | None = 2000

    @classmethod
    def from_yaml(cls, path: str | Path) -> "MatcherConfig":
        """Load configuration from a YAML file."""
        with open(path, "r") as f:
            raw = yaml.safe_load(f) or {}

        matching = raw.get("matching", {})
        composition = raw.get("composition", {})
        ocr = raw.get("ocr", {})
        linking = raw.get("linking", {})
        store = raw.get("store", {})

        defaults = cls()

        confusions = [
            (str(pair[0]), str(pair[1]))
            for pair in ocr.get("confusions", defaults.ocr_confusions)
        ]
        bands = linking.get("confidence_bands", {})

        return cls(
            min_similarity=matching.get("min_similarity", defaults.min_similarity),
            max_results=matching.get("max_results", defaults.max_results),
            prefer_exact_match=matching.get("prefer_exact_match", defaults.prefer_exact_match),
            min_variant_length=matching.get("min_variant_length", defaults.min_variant_length),
            max_alternatives=matching.get("max_alternatives", defaults.max_alternatives),
            composition_discount=composition.get("discount", defaults.composition_discount),
            strength_bonus=composition.get("strength_bonus", defaults.strength_bonus),
            ocr_confusions=confusions,
            confidence_bands={
                "high": bands.get("high", _DEFAULT_CONFIDENCE_BANDS["high"]),
                "medium": bands.get("medium", _DEFAULT_CONFIDENCE_BANDS["medium"]),
            },
            query_timeout_ms=store.get("query_timeout_ms", defaults.query_timeout_ms),
        )

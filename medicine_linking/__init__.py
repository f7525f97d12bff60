"""Rx Medicine Linker — fuzzy resolution of prescription medicine names."""

from .similarity import (
    similarity,
    levenshtein_similarity,
    trigram_similarity,
    names_are_similar,
)
from .variations import (
    Strength,
    extract_strength,
    generate_variations,
)
from .models import (
    Composition,
    MedicineRecord,
    MatchCandidate,
    MatchResult,
    MedicineInput,
    LinkedMedicine,
    LinkingStatistics,
    LinkingReport,
)
from .config import MatcherConfig
from .store import (
    InMemoryMedicineStore,
    MedicineStore,
    StoreHit,
    StoreUnavailableError,
)
from .matcher import FuzzyMatcher
from .linking import LinkingAbortedError, LinkingOrchestrator

__all__ = [
    "similarity",
    "levenshtein_similarity",
    "trigram_similarity",
    "names_are_similar",
    "Strength",
    "extract_strength",
    "generate_variations",
    "Composition",
    "MedicineRecord",
    "MatchCandidate",
    "MatchResult",
    "MedicineInput",
    "LinkedMedicine",
    "LinkingStatistics",
    "LinkingReport",
    "MatcherConfig",
    "InMemoryMedicineStore",
    "MedicineStore",
    "StoreHit",
    "StoreUnavailableError",
    "FuzzyMatcher",
    "LinkingAbortedError",
    "LinkingOrchestrator",
]

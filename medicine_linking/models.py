"""Data model for medicine linking: catalog records, match candidates, results and statistics."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

MAX_COMPOSITIONS = 5

# Match types
MATCH_EXACT = "exact"
MATCH_FUZZY = "fuzzy"
MATCH_COMPOSITION = "composition"

# Linking methods (match types plus the non-search outcomes)
METHOD_MANUAL = "manual"
METHOD_FAILED = "failed"
METHOD_DISABLED = "disabled"

# Result messages
MESSAGE_MATCHED = "matched"
MESSAGE_NAME_REQUIRED = "name required"
MESSAGE_NOT_FOUND = "not found"
MESSAGE_LOW_CONFIDENCE = "low confidence"


# ---------------------------------------------------------------------------
# Catalog records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Composition:
    """One active ingredient slot of a catalog medicine."""

    name: str
    id: int | None = None
    strength_value: str | None = None
    strength_unit: str | None = None
    slot: int | None = None  # 1-based catalog slot; empty slots keep their number

    @property
    def dose(self) -> str | None:
        if self.strength_value and self.strength_unit:
            return f"{self.strength_value}{self.strength_unit}"
        return None

    def label(self) -> str:
        """Composition name with its dose, e.g. "Paracetamol 500mg"."""
        return f"{self.name} {self.dose}" if self.dose else self.name


@dataclass(frozen=True)
class MedicineRecord:
    """A canonical medicine from the reference catalog. Read-only."""

    id: int
    brand_name: str
    compositions: tuple[Composition, ...] = ()
    weightage: float | None = None
    pack_size: str | None = None
    manufacturer: str | None = None
    price: float | None = None
    med_type: str | None = None
    generic_id: int | None = None

    @property
    def composition_string(self) -> str | None:
        """All compositions joined with " + ", or None when there are none."""
        parts = [c.label() for c in self.compositions if c.name]
        return " + ".join(parts) if parts else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "brand_name": self.brand_name,
            "generic_id": self.generic_id,
            "compositions": [
                {
                    "id": c.id,
                    "name": c.name,
                    "strength_value": c.strength_value,
                    "strength_unit": c.strength_unit,
                    "dose": c.dose,
                    "slot": c.slot,
                }
                for c in self.compositions
            ],
            "composition": self.composition_string,
            "weightage": self.weightage,
            "pack_size": self.pack_size,
            "manufacturer": self.manufacturer,
            "price": self.price,
            "med_type": self.med_type,
        }


# ---------------------------------------------------------------------------
# Search results
# ---------------------------------------------------------------------------


@dataclass
class MatchCandidate:
    """One (variant, record) hit collected during a single search call."""

    source_variant: str
    record: MedicineRecord
    similarity: float
    db_rank_score: int
    match_type: str  # "exact" | "fuzzy" | "composition"
    secondary_score: float = 0.0

    def sort_key(self) -> tuple:
        """Ranking key: best candidate sorts first."""
        weightage = self.record.weightage
        return (
            -self.similarity,
            -self.secondary_score,
            -self.db_rank_score,
            weightage is None,
            -(weightage or 0.0),
            len(self.record.brand_name),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.record.id,
            "name": self.record.brand_name,
            "confidence": round(self.similarity, 4),
            "match_type": self.match_type,
            "search_term": self.source_variant,
            "db_rank_score": self.db_rank_score,
        }


@dataclass
class MatchResult:
    """Outcome of one fuzzy search. Not-found and low-confidence are values, not errors."""

    success: bool
    message: str
    match: MedicineRecord | None = None
    confidence: float = 0.0
    match_type: str | None = None
    search_term_used: str | None = None
    alternative_matches: list[MatchCandidate] = field(default_factory=list)
    suggestion: MatchCandidate | None = None

    @property
    def is_low_confidence(self) -> bool:
        return not self.success and self.suggestion is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "match": self.match.to_dict() if self.match else None,
            "confidence": round(self.confidence, 4),
            "match_type": self.match_type,
            "search_term_used": self.search_term_used,
            "alternative_matches": [c.to_dict() for c in self.alternative_matches],
            "suggestion": self.suggestion.to_dict() if self.suggestion else None,
        }


# ---------------------------------------------------------------------------
# Batch linking
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MedicineInput:
    """A prescription medicine as handed to the linker."""

    name: str
    salt: str | None = None
    existing_id: int | None = None
    extra: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)


@dataclass
class LinkedMedicine:
    """A prescription medicine enriched with its catalog linkage."""

    source: MedicineInput
    linked: bool
    linking_method: str
    med_drug_id: int | None = None
    confidence: float | None = None
    record: MedicineRecord | None = None
    alternative_matches: list[MatchCandidate] = field(default_factory=list)
    suggestion: MatchCandidate | None = None
    linking_error: str | None = None

    @property
    def medicine_name(self) -> str:
        """Catalog brand name when linked, otherwise the prescribed name."""
        if self.record is not None:
            return self.record.brand_name
        return self.source.name

    @property
    def medicine_salt(self) -> str | None:
        if self.source.salt:
            return self.source.salt
        if self.record is not None and self.record.compositions:
            return self.record.compositions[0].label()
        return None

    def to_dict(self) -> dict[str, Any]:
        out = dict(self.source.extra)
        out.update({
            "input_name": self.source.name,
            "medicine_name": self.medicine_name,
            "medicine_salt": self.medicine_salt,
            "med_drug_id": self.med_drug_id,
            "linked": self.linked,
            "linking_method": self.linking_method,
            "linking_confidence": (
                round(self.confidence, 4) if self.confidence is not None else None
            ),
            "catalog_record": self.record.to_dict() if self.record else None,
            "alternative_matches": [c.to_dict() for c in self.alternative_matches],
            "suggestion": self.suggestion.to_dict() if self.suggestion else None,
            "linking_error": self.linking_error,
        })
        return out


_LINKED_METHODS = ("manual", "exact", "fuzzy", "composition")


@dataclass
class LinkingStatistics:
    """
    Per-batch tallies. Every processed medicine lands in exactly one method
    bucket and, when linked, exactly one confidence band.
    """

    total: int = 0
    manual: int = 0
    exact: int = 0
    fuzzy: int = 0
    composition: int = 0
    failed: int = 0
    not_linked: int = 0
    high_confidence: int = 0
    medium_confidence: int = 0
    low_confidence: int = 0
    high_threshold: float = field(default=0.9, compare=False)
    medium_threshold: float = field(default=0.7, compare=False)

    def record(self, medicine: LinkedMedicine) -> None:
        self.total += 1

        if not medicine.linked:
            if medicine.linking_method == METHOD_FAILED:
                self.failed += 1
            else:
                self.not_linked += 1
            return

        if medicine.linking_method in _LINKED_METHODS:
            setattr(self, medicine.linking_method, getattr(self, medicine.linking_method) + 1)
        else:
            self.not_linked += 1
            return

        confidence = medicine.confidence if medicine.confidence is not None else 1.0
        if confidence >= self.high_threshold:
            self.high_confidence += 1
        elif confidence >= self.medium_threshold:
            self.medium_confidence += 1
        else:
            self.low_confidence += 1

    def merge(self, other: LinkingStatistics) -> LinkingStatistics:
        """Fold another partial tally into this one. Returns self."""
        for name in self.counter_names():
            setattr(self, name, getattr(self, name) + getattr(other, name))
        return self

    @staticmethod
    def counter_names() -> tuple[str, ...]:
        return (
            "total",
            "manual",
            "exact",
            "fuzzy",
            "composition",
            "failed",
            "not_linked",
            "high_confidence",
            "medium_confidence",
            "low_confidence",
        )

    @property
    def linked(self) -> int:
        return self.manual + self.exact + self.fuzzy + self.composition

    @property
    def linking_rate(self) -> float:
        """Fraction of medicines linked, 0.0 for an empty batch."""
        return self.linked / self.total if self.total else 0.0

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {name: getattr(self, name) for name in self.counter_names()}
        out["linked"] = self.linked
        out["linking_rate"] = round(self.linking_rate, 4)
        return out


@dataclass
class LinkingReport:
    """Result of linking a prescription's medicine list."""

    medicines: list[LinkedMedicine]
    stats: LinkingStatistics
    success: bool = True

    @property
    def summary(self) -> dict[str, Any]:
        return {
            "total": self.stats.total,
            "linked": self.stats.linked,
            "linking_rate": f"{self.stats.linking_rate * 100:.1f}%",
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "medicines": [m.to_dict() for m in self.medicines],
            "stats": self.stats.to_dict(),
            "summary": self.summary,
        }

"""
Rx Medicine Linker — Reference Medicine Store

Read-only query surface over the canonical medicine catalog. The matcher is
written against the ``MedicineStore`` protocol; two implementations exist:

    - ``InMemoryMedicineStore`` (this module): catalog loaded from JSON, used
      for offline runs and tests. Mirrors the SQL ordering of the database
      store, including pg_trgm-style composition similarity.
    - ``PostgresMedicineStore`` (pg_store.py): the production ``med_details``
      table.

All lookups must be side-effect free and safe to call concurrently.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Any, Iterable, Protocol

from .models import MAX_COMPOSITIONS, Composition, MedicineRecord
from .similarity import trigram_match, trigram_similarity

logger = logging.getLogger(__name__)

# DB-side rank scores for brand-name substring search
RANK_EXACT = 100
RANK_PREFIX = 90
RANK_SUBSTRING = 80
RANK_OTHER = 70

# DB-side rank scores for composition search
RANK_COMPOSITION_WITH_STRENGTH = 100
RANK_COMPOSITION_NAME = 80
# Unranked composition hits (no strength given) all share one score
RANK_COMPOSITION_DEFAULT = 85

# Only composition slots 1-3 earn the strength and name rank scores
RANKED_SLOTS = 3


class StoreUnavailableError(Exception):
    """A catalog lookup failed for infrastructure reasons (connection, timeout)."""


@dataclass(frozen=True)
class StoreHit:
    """A catalog record returned by a ranked store query."""

    record: MedicineRecord
    rank_score: int
    similarity: float | None = None


class MedicineStore(Protocol):
    def find_exact_by_name(
        self, name: str, *, timeout_ms: int | None = None
    ) -> MedicineRecord | None: ...

    def find_by_substring(
        self, fragment: str, limit: int, *, timeout_ms: int | None = None
    ) -> list[StoreHit]: ...

    def find_by_composition_fuzzy(
        self,
        fragment: str,
        strength: str | None = None,
        unit: str | None = None,
        limit: int = 5,
        *,
        timeout_ms: int | None = None,
    ) -> list[StoreHit]: ...

    def find_by_id(
        self, med_id: int, *, timeout_ms: int | None = None
    ) -> MedicineRecord | None: ...


# ---------------------------------------------------------------------------
# Record mapping
# ---------------------------------------------------------------------------


def strength_text(value: Any) -> str | None:
    """Render a catalog strength as text; 40.0 becomes "40"."""
    if value is None or value == "":
        return None
    if isinstance(value, (float, Decimal)) and value == int(value):
        return str(int(value))
    return str(value)


def optional_float(value: Any) -> float | None:
    return float(value) if value is not None else None


def record_from_dict(data: dict[str, Any]) -> MedicineRecord:
    """
    Build a MedicineRecord from a catalog JSON entry.

    ``compositions`` lists the slots in order; a ``null`` entry marks an
    empty slot so that later entries keep their slot number.
    """
    compositions: list[Composition] = []
    for slot, comp in enumerate(data.get("compositions") or [], start=1):
        if slot > MAX_COMPOSITIONS:
            break
        if not comp or not comp.get("name"):
            continue
        compositions.append(Composition(
            id=comp.get("id"),
            name=comp["name"],
            strength_value=strength_text(comp.get("strength_value")),
            strength_unit=comp.get("strength_unit"),
            slot=slot,
        ))

    return MedicineRecord(
        id=int(data["id"]),
        brand_name=data["brand_name"],
        compositions=tuple(compositions),
        weightage=optional_float(data.get("weightage")),
        pack_size=data.get("pack_size"),
        manufacturer=data.get("manufacturer"),
        price=optional_float(data.get("price")),
        med_type=data.get("med_type"),
        generic_id=data.get("generic_id"),
    )


def strengths_equal(a: str | None, b: str | None) -> bool:
    """Compare strength values numerically where possible ("500" == "500.0")."""
    if a is None or b is None:
        return False
    try:
        return float(a) == float(b)
    except ValueError:
        return a.strip().lower() == b.strip().lower()


def composition_strength_matches(
    comp: Composition,
    strength: str | None,
    unit: str | None,
) -> bool:
    if not strength or not unit or not comp.strength_unit:
        return False
    return (
        strengths_equal(comp.strength_value, strength)
        and comp.strength_unit.lower() == unit.lower()
    )


# ---------------------------------------------------------------------------
# In-memory catalog
# ---------------------------------------------------------------------------


def _weightage_key(record: MedicineRecord) -> tuple:
    # ORDER BY weightage DESC NULLS LAST, LENGTH(brand_name) ASC
    return (record.weightage is None, -(record.weightage or 0.0), len(record.brand_name))


class InMemoryMedicineStore:
    """
    Catalog held in memory with the same query contract as the database store.

    ``timeout_ms`` is accepted for interface parity and ignored; lookups are
    local and never block.
    """

    def __init__(self, records: Iterable[MedicineRecord]):
        self._records: list[MedicineRecord] = list(records)
        self._index: dict[int, MedicineRecord] = {r.id: r for r in self._records}

    def __len__(self) -> int:
        return len(self._records)

    @classmethod
    def from_json(cls, path: str | Path) -> "InMemoryMedicineStore":
        """
        Load a catalog JSON file (a list of record dicts).

        Records flagged ``is_active: false`` or ``is_deactivated: true`` are
        skipped, matching the database filter.
        """
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)

        records: list[MedicineRecord] = []
        seen: set[int] = set()
        skipped = 0
        for item in raw:
            if not item.get("is_active", True) or item.get("is_deactivated", False):
                skipped += 1
                continue
            record = record_from_dict(item)
            if record.id in seen:
                continue
            seen.add(record.id)
            records.append(record)

        logger.info(
            "Loaded %d catalog records from %s (%d inactive skipped)",
            len(records), path, skipped,
        )
        return cls(records)

    def find_exact_by_name(
        self, name: str, *, timeout_ms: int | None = None
    ) -> MedicineRecord | None:
        needle = name.lower()
        hits = [r for r in self._records if r.brand_name.lower() == needle]
        if not hits:
            return None
        hits.sort(key=_weightage_key)
        return hits[0]

    def find_by_substring(
        self, fragment: str, limit: int, *, timeout_ms: int | None = None
    ) -> list[StoreHit]:
        needle = fragment.lower()
        hits: list[StoreHit] = []
        for record in self._records:
            brand = record.brand_name.lower()
            if needle not in brand:
                continue
            if brand == needle:
                score = RANK_EXACT
            elif brand.startswith(needle):
                score = RANK_PREFIX
            else:
                score = RANK_SUBSTRING
            hits.append(StoreHit(record=record, rank_score=score))

        hits.sort(key=lambda h: (-h.rank_score,) + _weightage_key(h.record))
        return hits[:limit]

    def find_by_composition_fuzzy(
        self,
        fragment: str,
        strength: str | None = None,
        unit: str | None = None,
        limit: int = 5,
        *,
        timeout_ms: int | None = None,
    ) -> list[StoreHit]:
        hits: list[StoreHit] = []
        for record in self._records:
            names = [c.name for c in record.compositions]
            matched = [trigram_match(n, fragment) for n in names]
            if not any(matched):
                continue

            comp_similarity = max(trigram_similarity(n, fragment) for n in names)

            if not (strength and unit):
                score = RANK_COMPOSITION_DEFAULT
            else:
                ranked = [
                    c for c, ok in zip(record.compositions, matched)
                    if ok and c.slot is not None and c.slot <= RANKED_SLOTS
                ]
                if any(composition_strength_matches(c, strength, unit) for c in ranked):
                    score = RANK_COMPOSITION_WITH_STRENGTH
                elif ranked:
                    score = RANK_COMPOSITION_NAME
                else:
                    score = RANK_OTHER

            hits.append(StoreHit(record=record, rank_score=score, similarity=comp_similarity))

        hits.sort(key=lambda h: (-h.rank_score, -(h.similarity or 0.0)) + _weightage_key(h.record))
        return hits[:limit]

    def find_by_id(
        self, med_id: int, *, timeout_ms: int | None = None
    ) -> MedicineRecord | None:
        return self._index.get(med_id)

"""Shared fixtures: a small reference catalog and store test doubles."""

from __future__ import annotations

from pathlib import Path

import pytest

from medicine_linking.config import MatcherConfig
from medicine_linking.linking import LinkingOrchestrator
from medicine_linking.matcher import FuzzyMatcher
from medicine_linking.models import Composition, MedicineRecord
from medicine_linking.store import InMemoryMedicineStore, StoreHit, StoreUnavailableError

ROOT = Path(__file__).resolve().parent.parent
SAMPLE_DATA = ROOT / "sample-data"


def make_record(
    med_id: int,
    brand_name: str,
    compositions: list[tuple[str, str | None, str | None]] | None = None,
    weightage: float | None = None,
) -> MedicineRecord:
    return MedicineRecord(
        id=med_id,
        brand_name=brand_name,
        compositions=tuple(
            Composition(id=i + 1, name=name, strength_value=value, strength_unit=unit, slot=i + 1)
            for i, (name, value, unit) in enumerate(compositions or [])
        ),
        weightage=weightage,
    )


# ---------------------------------------------------------------------------
# Sample catalog
# ---------------------------------------------------------------------------

SAMPLE_RECORDS: list[MedicineRecord] = [
    make_record(42, "Paracetamol", [("Paracetamol", "500", "mg")], weightage=50),
    make_record(45, "Paracetamol Plus", [("Paracetamol", "500", "mg"), ("Caffeine", "30", "mg")], weightage=99),
    make_record(43, "Crocin Advance", [("Paracetamol", "500", "mg")], weightage=95),
    make_record(44, "Dolo 650", [("Paracetamol", "650", "mg")], weightage=99),
    make_record(
        51,
        "Augmentin 625 Duo",
        [("Amoxicillin", "500", "mg"), ("Clavulanic Acid", "125", "mg")],
        weightage=80,
    ),
    make_record(60, "Glycomet SR", [("Metformin", "500", "mg")], weightage=70),
    make_record(61, "Ecosprin", [("Aspirin", "75", "mg")], weightage=88),
]


# ---------------------------------------------------------------------------
# Store doubles
# ---------------------------------------------------------------------------


class RecordingStore:
    """Wraps a store and records every call as (method, args, timeout_ms)."""

    def __init__(self, inner):
        self.inner = inner
        self.calls: list[tuple[str, tuple, int | None]] = []

    def _record(self, method: str, args: tuple, timeout_ms: int | None) -> None:
        self.calls.append((method, args, timeout_ms))

    def methods_called(self) -> set[str]:
        return {c[0] for c in self.calls}

    def fragments(self) -> list[str]:
        return [c[1][0] for c in self.calls]

    def find_exact_by_name(self, name, *, timeout_ms=None):
        self._record("find_exact_by_name", (name,), timeout_ms)
        return self.inner.find_exact_by_name(name)

    def find_by_substring(self, fragment, limit, *, timeout_ms=None):
        self._record("find_by_substring", (fragment, limit), timeout_ms)
        return self.inner.find_by_substring(fragment, limit)

    def find_by_composition_fuzzy(self, fragment, strength=None, unit=None, limit=5, *, timeout_ms=None):
        self._record("find_by_composition_fuzzy", (fragment, strength, unit, limit), timeout_ms)
        return self.inner.find_by_composition_fuzzy(fragment, strength, unit, limit)

    def find_by_id(self, med_id, *, timeout_ms=None):
        self._record("find_by_id", (med_id,), timeout_ms)
        return self.inner.find_by_id(med_id)


class ExplodingStore:
    """Fails the test on any lookup."""

    def find_exact_by_name(self, *args, **kwargs):
        raise AssertionError("unexpected find_exact_by_name call")

    def find_by_substring(self, *args, **kwargs):
        raise AssertionError("unexpected find_by_substring call")

    def find_by_composition_fuzzy(self, *args, **kwargs):
        raise AssertionError("unexpected find_by_composition_fuzzy call")

    def find_by_id(self, *args, **kwargs):
        raise AssertionError("unexpected find_by_id call")


class UnavailableStore:
    """Every lookup fails as if the catalog database were down."""

    def __init__(self, failing: set[str] | None = None, inner=None):
        self.failing = failing
        self.inner = inner

    def _maybe_fail(self, method: str) -> None:
        if self.failing is None or method in self.failing:
            raise StoreUnavailableError(f"{method}: connection refused")

    def find_exact_by_name(self, name, *, timeout_ms=None):
        self._maybe_fail("find_exact_by_name")
        return self.inner.find_exact_by_name(name)

    def find_by_substring(self, fragment, limit, *, timeout_ms=None):
        self._maybe_fail("find_by_substring")
        return self.inner.find_by_substring(fragment, limit)

    def find_by_composition_fuzzy(self, fragment, strength=None, unit=None, limit=5, *, timeout_ms=None):
        self._maybe_fail("find_by_composition_fuzzy")
        return self.inner.find_by_composition_fuzzy(fragment, strength, unit, limit)

    def find_by_id(self, med_id, *, timeout_ms=None):
        self._maybe_fail("find_by_id")
        return self.inner.find_by_id(med_id)


class PermissiveStore:
    """A remote catalog that returns every record for any brand-name fragment."""

    def __init__(self, records):
        self.records = list(records)

    def find_exact_by_name(self, name, *, timeout_ms=None):
        return None

    def find_by_substring(self, fragment, limit, *, timeout_ms=None):
        return [StoreHit(record=r, rank_score=70) for r in self.records[:limit]]

    def find_by_composition_fuzzy(self, fragment, strength=None, unit=None, limit=5, *, timeout_ms=None):
        return []

    def find_by_id(self, med_id, *, timeout_ms=None):
        return None


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def catalog_store() -> InMemoryMedicineStore:
    return InMemoryMedicineStore(SAMPLE_RECORDS)


@pytest.fixture
def recording_store(catalog_store) -> RecordingStore:
    return RecordingStore(catalog_store)


@pytest.fixture
def config() -> MatcherConfig:
    return MatcherConfig()


@pytest.fixture
def matcher(catalog_store, config) -> FuzzyMatcher:
    return FuzzyMatcher(catalog_store, config)


@pytest.fixture
def orchestrator(matcher) -> LinkingOrchestrator:
    return LinkingOrchestrator(matcher)

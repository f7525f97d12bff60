"""Tests for medicine_linking — in-memory catalog store and record mapping."""

import json

import pytest

from conftest import SAMPLE_DATA, make_record

from medicine_linking.models import Composition
from medicine_linking.store import (
    RANK_COMPOSITION_DEFAULT,
    RANK_COMPOSITION_NAME,
    RANK_COMPOSITION_WITH_STRENGTH,
    RANK_EXACT,
    RANK_OTHER,
    RANK_PREFIX,
    RANK_SUBSTRING,
    InMemoryMedicineStore,
    composition_strength_matches,
    record_from_dict,
    strengths_equal,
)


# ---- record mapping ---------------------------------------------------------


class TestRecordFromDict:
    def test_nested_compositions(self):
        record = record_from_dict({
            "id": 51,
            "brand_name": "Augmentin 625 Duo",
            "compositions": [
                {"id": 7, "name": "Amoxicillin", "strength_value": 500, "strength_unit": "mg"},
                {"id": 8, "name": "Clavulanic Acid", "strength_value": "125", "strength_unit": "mg"},
            ],
            "weightage": 80,
        })
        assert record.id == 51
        assert record.compositions[0].strength_value == "500"
        assert record.composition_string == "Amoxicillin 500mg + Clavulanic Acid 125mg"
        assert record.weightage == 80.0

    def test_empty_slots_keep_numbering(self):
        record = record_from_dict({
            "id": 7,
            "brand_name": "Pan D",
            "generic_id": 3,
            "compositions": [
                {"id": 1, "name": "Pantoprazole", "strength_value": 40.0, "strength_unit": "mg"},
                None,
                {"id": 2, "name": "Domperidone", "strength_value": "10", "strength_unit": "mg"},
            ],
            "price": 120,
            "manufacturer": "Alkem",
        })
        assert [c.name for c in record.compositions] == ["Pantoprazole", "Domperidone"]
        assert [c.slot for c in record.compositions] == [1, 3]
        assert record.compositions[0].strength_value == "40"
        assert record.generic_id == 3
        assert record.price == 120.0
        assert record.manufacturer == "Alkem"
        assert record.weightage is None

    def test_only_canonical_keys_are_read(self):
        record = record_from_dict({
            "id": 7,
            "brand_name": "Pan D",
            "mrp": 120,
            "manufacturer_name": "Alkem",
            "med_weightage": 50,
        })
        assert record.price is None
        assert record.manufacturer is None
        assert record.weightage is None

    def test_database_column_names_rejected(self):
        with pytest.raises(KeyError):
            record_from_dict({"med_drug_id": 7, "drug_name": "Pan D"})

    def test_no_compositions(self):
        record = record_from_dict({"id": 1, "brand_name": "Mystery"})
        assert record.compositions == ()
        assert record.composition_string is None

    def test_to_dict_includes_doses(self):
        record = make_record(1, "Dolo 650", [("Paracetamol", "650", "mg")])
        out = record.to_dict()
        assert out["compositions"][0]["dose"] == "650mg"
        assert out["composition"] == "Paracetamol 650mg"

    def test_record_is_frozen(self):
        record = make_record(1, "Dolo 650")
        with pytest.raises(AttributeError):
            record.brand_name = "Other"  # type: ignore[misc]


# ---- strength comparison ----------------------------------------------------


class TestStrengthMatching:
    def test_numeric_equality(self):
        assert strengths_equal("500", "500.0")
        assert not strengths_equal("500", "650")

    def test_missing(self):
        assert not strengths_equal(None, "500")

    def test_non_numeric(self):
        assert strengths_equal("1/2", "1/2")

    def test_composition_unit_case_insensitive(self):
        comp = Composition(name="Paracetamol", strength_value="500", strength_unit="MG")
        assert composition_strength_matches(comp, "500", "mg")
        assert not composition_strength_matches(comp, "500", "ml")
        assert not composition_strength_matches(comp, None, None)


# ---- InMemoryMedicineStore --------------------------------------------------


@pytest.fixture
def brand_store():
    return InMemoryMedicineStore([
        make_record(1, "Paracetamol", weightage=50),
        make_record(2, "Paracetamol Plus", weightage=99),
        make_record(3, "Paracetamol Forte"),
        make_record(4, "Calpol Paracetamol", weightage=10),
        make_record(5, "Crocin", weightage=10),
        make_record(6, "CROCIN", weightage=90),
    ])


class TestFindExactByName:
    def test_case_insensitive(self, brand_store):
        assert brand_store.find_exact_by_name("paracetamol").id == 1

    def test_highest_weightage_wins(self, brand_store):
        assert brand_store.find_exact_by_name("Crocin").id == 6

    def test_miss(self, brand_store):
        assert brand_store.find_exact_by_name("Paracetam") is None


class TestFindBySubstring:
    def test_rank_scores_and_order(self, brand_store):
        hits = brand_store.find_by_substring("PARACETAMOL", 10)
        assert [h.record.id for h in hits] == [1, 2, 3, 4]
        assert [h.rank_score for h in hits] == [RANK_EXACT, RANK_PREFIX, RANK_PREFIX, RANK_SUBSTRING]

    def test_limit(self, brand_store):
        hits = brand_store.find_by_substring("paracetamol", 2)
        assert [h.record.id for h in hits] == [1, 2]

    def test_no_hits(self, brand_store):
        assert brand_store.find_by_substring("ibuprofen", 5) == []


class TestFindByCompositionFuzzy:
    def test_strength_match_ranks_highest(self, catalog_store):
        hits = catalog_store.find_by_composition_fuzzy("Amoxycillin", "500", "mg", 5)
        assert [h.record.id for h in hits] == [51]
        assert hits[0].rank_score == RANK_COMPOSITION_WITH_STRENGTH
        assert hits[0].similarity == pytest.approx(9 / 15)

    def test_strength_mismatch(self, catalog_store):
        hits = catalog_store.find_by_composition_fuzzy("Amoxicillin", "250", "mg", 5)
        assert hits[0].rank_score == RANK_COMPOSITION_NAME

    def test_without_strength(self, catalog_store):
        hits = catalog_store.find_by_composition_fuzzy("Amoxicillin", limit=5)
        assert hits[0].rank_score == RANK_COMPOSITION_DEFAULT
        assert hits[0].similarity == 1.0

    def test_similarity_then_weightage_then_length(self, catalog_store):
        hits = catalog_store.find_by_composition_fuzzy("Paracetamol", limit=10)
        assert [h.record.id for h in hits] == [44, 45, 43, 42]

    def test_no_hits(self, catalog_store):
        assert catalog_store.find_by_composition_fuzzy("Zolpidem", limit=5) == []

    def test_slots_beyond_three_are_unranked(self):
        store = InMemoryMedicineStore([
            record_from_dict({
                "id": 1,
                "brand_name": "Combo Four",
                "compositions": [
                    None,
                    None,
                    None,
                    {"name": "Caffeine", "strength_value": "30", "strength_unit": "mg"},
                ],
            }),
        ])
        (hit,) = store.find_by_composition_fuzzy("Caffeine", "30", "mg", 5)
        assert hit.record.compositions[0].slot == 4
        assert hit.rank_score == RANK_OTHER

    def test_third_slot_still_ranked(self):
        store = InMemoryMedicineStore([
            record_from_dict({
                "id": 1,
                "brand_name": "Combo Three",
                "compositions": [
                    {"name": "Paracetamol", "strength_value": "500", "strength_unit": "mg"},
                    None,
                    {"name": "Caffeine", "strength_value": "30", "strength_unit": "mg"},
                ],
            }),
        ])
        (hit,) = store.find_by_composition_fuzzy("Caffeine", "30", "mg", 5)
        assert hit.rank_score == RANK_COMPOSITION_WITH_STRENGTH


class TestFindById:
    def test_found(self, catalog_store):
        assert catalog_store.find_by_id(60).brand_name == "Glycomet SR"

    def test_missing(self, catalog_store):
        assert catalog_store.find_by_id(12345) is None


class TestFromJson:
    def test_skips_inactive_and_duplicates(self, tmp_path):
        path = tmp_path / "catalog.json"
        path.write_text(json.dumps([
            {"id": 1, "brand_name": "Ecosprin"},
            {"id": 1, "brand_name": "Ecosprin duplicate"},
            {"id": 2, "brand_name": "Old Syrup", "is_active": False},
            {"id": 3, "brand_name": "Recalled", "is_deactivated": True},
            {"id": 4, "brand_name": "Pan 40", "compositions": [{"name": "Pantoprazole"}]},
        ]))
        store = InMemoryMedicineStore.from_json(path)
        assert len(store) == 2
        assert store.find_by_id(1).brand_name == "Ecosprin"
        assert store.find_by_id(2) is None
        assert store.find_by_id(4).compositions[0].name == "Pantoprazole"

    def test_sample_catalog_loads(self):
        store = InMemoryMedicineStore.from_json(SAMPLE_DATA / "medicine_catalog.json")
        assert store.find_exact_by_name("Paracetamol").id == 42
        assert store.find_exact_by_name("Discontinued Syrup") is None

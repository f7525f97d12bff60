#!/usr/bin/env python3
"""
Rx Medicine Linker — Fuzzy Medicine Matcher

Resolves a free-text medicine name (and optional salt/composition text) to a
catalog record.

Strategy, short-circuiting on success:
    1. Reject blank names (no store call)
    2. Generate name variations
    3. Exact case-insensitive brand-name lookup per variation; first hit wins
    4. Brand-name substring lookup per variation; every hit is scored
       against the original input and pooled
    5. Pool empty and salt given: composition lookup (pg_trgm) per salt
       variation, with a bonus when the salt's strength matches
    6. Rank the pool; best hit below ``min_similarity`` is returned as a
       suggestion, not a match

Not-found and low-confidence outcomes are MatchResult values. Store outages
on individual queries count as zero hits; StoreUnavailableError is raised
only when every query of a search failed.
"""

from __future__ import annotations

import logging
from typing import Iterable

from .config import MatcherConfig
from .models import (
    MATCH_COMPOSITION,
    MATCH_EXACT,
    MATCH_FUZZY,
    MESSAGE_LOW_CONFIDENCE,
    MESSAGE_MATCHED,
    MESSAGE_NAME_REQUIRED,
    MESSAGE_NOT_FOUND,
    MatchCandidate,
    MatchResult,
    MedicineInput,
    MedicineRecord,
)
from .similarity import similarity
from .store import (
    MedicineStore,
    StoreHit,
    StoreUnavailableError,
    composition_strength_matches,
)
from .variations import Strength, extract_strength, generate_variations

logger = logging.getLogger(__name__)


class _QueryTally:
    """Counts store queries issued and failed during one search."""

    def __init__(self) -> None:
        self.attempted = 0
        self.failed = 0
        self.last_error: StoreUnavailableError | None = None

    @property
    def all_failed(self) -> bool:
        return self.attempted > 0 and self.failed == self.attempted


class FuzzyMatcher:
    """Multi-strategy medicine name matcher over an injected MedicineStore."""

    def __init__(self, store: MedicineStore, config: MatcherConfig | None = None):
        self.store = store
        self.config = config or MatcherConfig()

    # ------------------------------------------------------------------
    # Variations
    # ------------------------------------------------------------------

    def variations(self, name: str) -> list[str]:
        """Union of generator output, one call per configured OCR confusion."""
        confusions = self.config.ocr_confusions or [None]
        merged: dict[str, None] = {}
        for confusion in confusions:
            for variant in generate_variations(
                name,
                ocr_confusion=confusion,
                min_length=self.config.min_variant_length,
            ):
                merged.setdefault(variant, None)
        return list(merged)

    # ------------------------------------------------------------------
    # Guarded store calls
    # ------------------------------------------------------------------

    def _guarded(self, tally: _QueryTally, call, *args, **kwargs):
        tally.attempted += 1
        try:
            return call(*args, timeout_ms=self.config.query_timeout_ms, **kwargs)
        except StoreUnavailableError as e:
            tally.failed += 1
            tally.last_error = e
            logger.warning("Catalog lookup failed, treating as no hits: %s", e)
            return None

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    def _exact(
        self,
        variations: Iterable[str],
        tally: _QueryTally,
    ) -> tuple[str, MedicineRecord] | None:
        for variant in variations:
            record = self._guarded(tally, self.store.find_exact_by_name, variant)
            if record is not None:
                return variant, record
        return None

    def _by_brand_name(
        self,
        name: str,
        variations: Iterable[str],
        max_results: int,
        tally: _QueryTally,
    ) -> list[MatchCandidate]:
        pool: list[MatchCandidate] = []
        for variant in variations:
            if len(variant) < self.config.min_variant_length:
                continue
            hits: list[StoreHit] = self._guarded(
                tally, self.store.find_by_substring, variant, max_results
            ) or []
            for hit in hits:
                score = similarity(name, hit.record.brand_name)
                pool.append(MatchCandidate(
                    source_variant=variant,
                    record=hit.record,
                    similarity=score,
                    db_rank_score=hit.rank_score,
                    match_type=MATCH_FUZZY,
                    secondary_score=score,
                ))
        return pool

    def _by_composition(
        self,
        salt: str,
        max_results: int,
        tally: _QueryTally,
    ) -> list[MatchCandidate]:
        strength: Strength = extract_strength(salt)
        salt_core = strength.core or salt
        pool: list[MatchCandidate] = []

        logger.debug(
            "Composition search with salt %r (strength: %s)",
            salt, strength.full_dose or "none",
        )

        for variant in self.variations(salt_core):
            hits: list[StoreHit] = self._guarded(
                tally,
                self.store.find_by_composition_fuzzy,
                variant,
                strength.strength_value,
                strength.unit,
                max_results,
            ) or []
            for hit in hits:
                bonus = 1.0
                if strength.strength_value and any(
                    composition_strength_matches(c, strength.strength_value, strength.unit)
                    for c in hit.record.compositions
                ):
                    bonus = self.config.strength_bonus

                base = hit.similarity or 0.0
                score = min(base * self.config.composition_discount * bonus, 1.0)
                secondary = max(
                    (similarity(salt_core, c.name) for c in hit.record.compositions),
                    default=0.0,
                )
                term = f"{variant} {strength.full_dose}" if strength.full_dose else variant

                pool.append(MatchCandidate(
                    source_variant=f"{term} (composition)",
                    record=hit.record,
                    similarity=score,
                    db_rank_score=hit.rank_score,
                    match_type=MATCH_COMPOSITION,
                    secondary_score=secondary,
                ))
        return pool

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def search(
        self,
        name: str,
        *,
        min_similarity: float | None = None,
        max_results: int | None = None,
        include_salt: str | None = None,
        prefer_exact_match: bool | None = None,
    ) -> MatchResult:
        """
        Find the best catalog record for a medicine name.

        Parameters
        ----------
        name : str
            Medicine name as read from the prescription.
        min_similarity : float, optional
            Gate for a successful fuzzy/composition match. Default from config (0.7).
        max_results : int, optional
            Store hits fetched per variation. Default from config (5).
        include_salt : str, optional
            Salt/composition text, e.g. "Paracetamol 500mg". Used only when
            brand-name search finds nothing.
        prefer_exact_match : bool, optional
            Try exact brand-name lookups first. Default from config (True).

        Returns
        -------
        MatchResult. Raises StoreUnavailableError only if every store query
        of this search failed.
        """
        if min_similarity is None:
            min_similarity = self.config.min_similarity
        if max_results is None:
            max_results = self.config.max_results
        if prefer_exact_match is None:
            prefer_exact_match = self.config.prefer_exact_match

        if not name or not name.strip():
            return MatchResult(success=False, message=MESSAGE_NAME_REQUIRED)

        tally = _QueryTally()
        variations = self.variations(name)
        logger.debug("Searching %r with %d variations: %s", name, len(variations), variations[:5])

        if prefer_exact_match:
            exact = self._exact(variations, tally)
            if exact is not None:
                variant, record = exact
                logger.info("Exact match for %r: %r (id %s)", name, record.brand_name, record.id)
                return MatchResult(
                    success=True,
                    message=MESSAGE_MATCHED,
                    match=record,
                    confidence=1.0,
                    match_type=MATCH_EXACT,
                    search_term_used=variant,
                )

        pool = self._by_brand_name(name, variations, max_results, tally)

        if not pool and include_salt and include_salt.strip():
            pool = self._by_composition(include_salt.strip(), max_results, tally)

        if not pool:
            if tally.all_failed:
                raise StoreUnavailableError(
                    f"all {tally.attempted} catalog queries failed for {name!r}"
                ) from tally.last_error
            logger.info("No catalog match for %r", name)
            return MatchResult(success=False, message=MESSAGE_NOT_FOUND)

        pool.sort(key=MatchCandidate.sort_key)
        best = pool[0]

        if best.similarity < min_similarity:
            logger.info(
                "Low confidence for %r: best %r at %.2f (threshold %.2f)",
                name, best.record.brand_name, best.similarity, min_similarity,
            )
            return MatchResult(
                success=False,
                message=MESSAGE_LOW_CONFIDENCE,
                confidence=best.similarity,
                suggestion=best,
            )

        alternatives = self._alternatives(pool, best)
        logger.info(
            "%s match for %r: %r (id %s), confidence %.1f%%, term %r",
            best.match_type.capitalize(), name, best.record.brand_name,
            best.record.id, best.similarity * 100, best.source_variant,
        )
        return MatchResult(
            success=True,
            message=MESSAGE_MATCHED,
            match=best.record,
            confidence=best.similarity,
            match_type=best.match_type,
            search_term_used=best.source_variant,
            alternative_matches=alternatives,
        )

    def _alternatives(
        self,
        ranked: list[MatchCandidate],
        best: MatchCandidate,
    ) -> list[MatchCandidate]:
        """Next runners-up with distinct records."""
        seen = {best.record.id}
        out: list[MatchCandidate] = []
        for candidate in ranked[1:]:
            if len(out) >= self.config.max_alternatives:
                break
            if candidate.record.id in seen:
                continue
            seen.add(candidate.record.id)
            out.append(candidate)
        return out

    def search_input(self, medicine: MedicineInput, **options) -> MatchResult:
        """Search using a MedicineInput's name and salt."""
        return self.search(medicine.name, include_salt=medicine.salt, **options)

    def batch_search(
        self,
        medicines: Iterable[MedicineInput],
        **options,
    ) -> list[MatchResult]:
        """Search each medicine in order. Store outages propagate."""
        results = [self.search_input(m, **options) for m in medicines]
        matched = sum(1 for r in results if r.success)
        logger.info("Batch search completed: %d/%d medicines matched", matched, len(results))
        return results

    def find_by_id(self, med_id: int) -> MedicineRecord | None:
        """Fetch a catalog record by id."""
        return self.store.find_by_id(med_id, timeout_ms=self.config.query_timeout_ms)

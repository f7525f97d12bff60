#!/usr/bin/env python3
"""
Rx Medicine Linker — Prescription Linking

Links every medicine of a prescription to the reference catalog and tallies
how each was linked.

Policy:
    - A medicine carrying ``existing_id`` is linked manually and never
      searched.
    - Best-effort mode (default): unlinkable medicines are marked failed and
      processing continues.
    - ``require_link=True``: the first unlinkable medicine aborts the batch
      with LinkingAbortedError.

Output order always matches input order. Statistics are pure tallies and do
not depend on input order.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable

from .config import MatcherConfig
from .matcher import FuzzyMatcher
from .models import (
    METHOD_DISABLED,
    METHOD_FAILED,
    METHOD_MANUAL,
    LinkedMedicine,
    LinkingReport,
    LinkingStatistics,
    MedicineInput,
)
from .store import StoreUnavailableError

logger = logging.getLogger(__name__)


class LinkingAbortedError(Exception):
    """Raised in require-link mode when a medicine cannot be linked."""

    def __init__(self, index: int, name: str, reason: str):
        self.index = index
        self.name = name
        self.reason = reason
        super().__init__(
            f"Medicine {index + 1} {name!r} requires catalog linking but could not "
            f"be linked: {reason}"
        )


class LinkingOrchestrator:
    """Batch-applies a FuzzyMatcher across a prescription's medicines."""

    def __init__(self, matcher: FuzzyMatcher, config: MatcherConfig | None = None):
        self.matcher = matcher
        self.config = config or matcher.config

    def new_statistics(self) -> LinkingStatistics:
        bands = self.config.confidence_bands
        return LinkingStatistics(
            high_threshold=bands["high"],
            medium_threshold=bands["medium"],
        )

    # ------------------------------------------------------------------
    # Single medicine
    # ------------------------------------------------------------------

    def link_one(
        self,
        medicine: MedicineInput,
        *,
        auto_link: bool = True,
        min_similarity: float | None = None,
    ) -> LinkedMedicine:
        """Link one medicine. Never raises for match outcomes or store outages."""
        if medicine.existing_id is not None:
            logger.debug("Medicine %r already linked to id %s", medicine.name, medicine.existing_id)
            return LinkedMedicine(
                source=medicine,
                linked=True,
                linking_method=METHOD_MANUAL,
                med_drug_id=int(medicine.existing_id),
                confidence=1.0,
            )

        if not auto_link:
            return LinkedMedicine(
                source=medicine,
                linked=False,
                linking_method=METHOD_DISABLED,
            )

        try:
            result = self.matcher.search(
                medicine.name,
                include_salt=medicine.salt,
                min_similarity=min_similarity,
            )
        except StoreUnavailableError as e:
            logger.warning("Catalog unavailable while linking %r: %s", medicine.name, e)
            return LinkedMedicine(
                source=medicine,
                linked=False,
                linking_method=METHOD_FAILED,
                linking_error=f"catalog unavailable: {e}",
            )

        if result.success and result.match is not None:
            return LinkedMedicine(
                source=medicine,
                linked=True,
                linking_method=result.match_type,
                med_drug_id=result.match.id,
                confidence=result.confidence,
                record=result.match,
                alternative_matches=result.alternative_matches,
            )

        if result.suggestion is not None:
            logger.info(
                "Could not link %r; low confidence suggestion %r (id %s)",
                medicine.name,
                result.suggestion.record.brand_name,
                result.suggestion.record.id,
            )
        return LinkedMedicine(
            source=medicine,
            linked=False,
            linking_method=METHOD_FAILED,
            confidence=result.confidence if result.suggestion else None,
            suggestion=result.suggestion,
            linking_error=result.message,
        )

    # ------------------------------------------------------------------
    # Batch
    # ------------------------------------------------------------------

    def process_linking(
        self,
        medicines: Iterable[MedicineInput],
        *,
        require_link: bool = False,
        auto_link: bool = True,
        min_similarity: float | None = None,
        max_workers: int = 1,
    ) -> LinkingReport:
        """
        Link a list of medicines.

        Parameters
        ----------
        medicines : iterable of MedicineInput
            Prescription medicines, already normalised at the caller boundary.
        require_link : bool
            Abort with LinkingAbortedError on the first unlinkable medicine.
        auto_link : bool
            When False, only manual links are kept and nothing is searched.
        min_similarity : float, optional
            Overrides the matcher's configured threshold.
        max_workers : int
            Medicines searched concurrently. 1 processes sequentially.

        Returns
        -------
        LinkingReport with medicines in input order and batch statistics.
        """
        items = list(medicines)
        logger.info(
            "Linking %d medicines (require_link=%s, auto_link=%s, workers=%d)",
            len(items), require_link, auto_link, max_workers,
        )

        options = {"auto_link": auto_link, "min_similarity": min_similarity}

        if max_workers <= 1 or len(items) <= 1:
            processed = self._process_sequential(items, require_link, options)
        else:
            processed = self._process_parallel(items, require_link, options, max_workers)

        stats = self.new_statistics()
        for partial in processed:
            stats.merge(partial[1])

        report = LinkingReport(medicines=[p[0] for p in processed], stats=stats)
        self._log_statistics(stats)
        return report

    def _tally(self, linked: LinkedMedicine) -> LinkingStatistics:
        partial = self.new_statistics()
        partial.record(linked)
        return partial

    def _check_required(self, index: int, linked: LinkedMedicine) -> None:
        if not linked.linked:
            raise LinkingAbortedError(
                index,
                linked.source.name,
                linked.linking_error or "unknown error",
            )

    def _process_sequential(
        self,
        items: list[MedicineInput],
        require_link: bool,
        options: dict,
    ) -> list[tuple[LinkedMedicine, LinkingStatistics]]:
        processed = []
        for index, medicine in enumerate(items):
            logger.debug("[%d/%d] Processing %r", index + 1, len(items), medicine.name)
            linked = self.link_one(medicine, **options)
            if require_link:
                self._check_required(index, linked)
            processed.append((linked, self._tally(linked)))
        return processed

    def _process_parallel(
        self,
        items: list[MedicineInput],
        require_link: bool,
        options: dict,
        max_workers: int,
    ) -> list[tuple[LinkedMedicine, LinkingStatistics]]:
        processed = []
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = [executor.submit(self.link_one, m, **options) for m in items]
            try:
                for index, future in enumerate(futures):
                    linked = future.result()
                    if require_link:
                        self._check_required(index, linked)
                    processed.append((linked, self._tally(linked)))
            except LinkingAbortedError:
                for future in futures:
                    future.cancel()
                raise
        return processed

    def _log_statistics(self, stats: LinkingStatistics) -> None:
        logger.info("Linking statistics:")
        logger.info("  %-22s %d", "Total medicines", stats.total)
        logger.info(
            "  %-22s %d (%.1f%%)", "Linked", stats.linked, stats.linking_rate * 100,
        )
        for label, count in (
            ("Manual", stats.manual),
            ("Exact", stats.exact),
            ("Fuzzy", stats.fuzzy),
            ("Composition", stats.composition),
            ("Failed", stats.failed),
            ("Not linked", stats.not_linked),
            ("High confidence", stats.high_confidence),
            ("Medium confidence", stats.medium_confidence),
            ("Low confidence", stats.low_confidence),
        ):
            logger.info("    %-20s %d", label, count)

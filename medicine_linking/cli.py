#!/usr/bin/env python3
"""
Rx Medicine Linker — Command Line

Links the medicines of a prescription JSON file against the reference
catalog and writes the linking report.

Input is either a list of medicines or an object with a ``medicines`` list;
field-name variants (``medicine_name``, ``medicineName``, ``med_drug_id``...)
are accepted.

Usage:
    rx-link prescription.json --catalog sample-data/medicine_catalog.json
    rx-link prescription.json --database --require-link --workers 4

Dependencies:
    pip install rapidfuzz pyyaml pydantic psycopg2-binary
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from pydantic import ValidationError

from . import db
from .config import DEFAULT_CONFIG_PATH, MatcherConfig
from .linking import LinkingAbortedError, LinkingOrchestrator
from .matcher import FuzzyMatcher
from .pg_store import PostgresMedicineStore
from .schemas import LinkingRequest
from .store import InMemoryMedicineStore

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Link prescription medicines to the reference medicine catalog",
    )
    parser.add_argument("input", help="Prescription JSON file")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument(
        "--catalog",
        help="Catalog JSON file (list of medicine records)",
    )
    source.add_argument(
        "--database",
        action="store_true",
        help="Query the PostgreSQL catalog (RXL_DB_* environment variables)",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to matching_rules.yaml (default: config/matching_rules.yaml if present)",
    )
    parser.add_argument(
        "--min-similarity",
        type=float,
        default=None,
        help="Override the configured similarity threshold",
    )
    parser.add_argument(
        "--require-link",
        action="store_true",
        help="Fail if any medicine cannot be linked",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=1,
        help="Medicines searched concurrently (default: 1)",
    )
    parser.add_argument(
        "--output",
        default=None,
        help="Write the report to this file instead of stdout",
    )
    return parser.parse_args(argv)


def load_config(path: str | None) -> MatcherConfig:
    if path:
        config = MatcherConfig.from_yaml(path)
        logger.info("Loaded matcher config from %s", path)
        return config
    if DEFAULT_CONFIG_PATH.exists():
        config = MatcherConfig.from_yaml(DEFAULT_CONFIG_PATH)
        logger.info("Loaded matcher config from %s", DEFAULT_CONFIG_PATH)
        return config
    return MatcherConfig()


def load_request(path: str) -> LinkingRequest:
    with open(path, "r", encoding="utf-8") as f:
        raw = json.load(f)
    if isinstance(raw, list):
        raw = {"medicines": raw}
    return LinkingRequest.model_validate(raw)


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
    )
    args = parse_args(argv)
    config = load_config(args.config)

    try:
        request = load_request(args.input)
    except ValidationError as e:
        logger.error("Invalid prescription input %s:\n%s", args.input, e)
        return 2

    catalog_pool = None
    if args.database:
        catalog_pool = db.init_pool()
        if catalog_pool is None:
            logger.error("Catalog database unavailable. Exiting.")
            return 1
        store = PostgresMedicineStore(catalog_pool, default_timeout_ms=config.query_timeout_ms)
    else:
        store = InMemoryMedicineStore.from_json(args.catalog)

    orchestrator = LinkingOrchestrator(FuzzyMatcher(store, config))
    min_similarity = args.min_similarity
    if min_similarity is None:
        min_similarity = request.min_similarity

    try:
        report = orchestrator.process_linking(
            request.to_inputs(),
            require_link=args.require_link or request.require_link,
            min_similarity=min_similarity,
            max_workers=args.workers,
        )
    except LinkingAbortedError as e:
        logger.error("%s", e)
        return 1
    finally:
        db.close_pool(catalog_pool)

    payload = json.dumps(report.to_dict(), indent=2, ensure_ascii=False)
    if args.output:
        Path(args.output).write_text(payload + "\n", encoding="utf-8")
        logger.info("Wrote linking report to %s", args.output)
    else:
        print(payload)
    return 0


if __name__ == "__main__":
    sys.exit(main())

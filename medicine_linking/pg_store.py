"""
Rx Medicine Linker — PostgreSQL Medicine Store

Queries the ``med_details`` catalog table. Every query is parameterized;
user-supplied fragments never reach the SQL text. Composition search relies
on the pg_trgm extension (``%`` operator and ``similarity()``).

Infrastructure failures (lost connection, statement timeout, exhausted
pool) are raised as StoreUnavailableError so the matcher can treat them as
"no hits from this query".
"""

from __future__ import annotations

import logging
from typing import Any

import psycopg2
from psycopg2 import extras, pool

from . import db
from .models import MAX_COMPOSITIONS, Composition, MedicineRecord
from .store import (
    RANKED_SLOTS,
    StoreHit,
    StoreUnavailableError,
    optional_float,
    strength_text,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# SQL
# ---------------------------------------------------------------------------

_COMPOSITION_COLUMNS = ",\n".join(
    f"    md.med_composition_id_{i} AS composition{i}_id,\n"
    f"    md.med_composition_name_{i} AS composition{i}_name,\n"
    f"    md.med_composition_strength_{i} AS composition{i}_strength,\n"
    f"    md.med_composition_unit_{i} AS composition{i}_unit"
    for i in range(1, MAX_COMPOSITIONS + 1)
)

SELECT_COLUMNS = f"""
    md.med_id AS id,
    md.med_brand_name AS brand_name,
    md.med_generic_id AS generic_id,
{_COMPOSITION_COLUMNS},
    md.med_price AS price,
    md.med_manufacturer_name AS manufacturer,
    md.med_pack_size AS pack_size,
    md.med_type,
    md.med_weightage AS weightage
"""

ACTIVE_FILTER = "md.is_active = 1 AND md.is_deactivated = 0"

_TRGM_ANY = " OR ".join(
    f"LOWER(md.med_composition_name_{i}) %% LOWER(%(fragment)s)"
    for i in range(1, MAX_COMPOSITIONS + 1)
)

_TRGM_BEST = ",\n        ".join(
    f"similarity(LOWER(COALESCE(md.med_composition_name_{i}, '')), LOWER(%(fragment)s))"
    for i in range(1, MAX_COMPOSITIONS + 1)
)

_STRENGTH_CASES = "\n".join(
    f"        WHEN (LOWER(md.med_composition_name_{i}) %% LOWER(%(fragment)s)\n"
    f"              AND md.med_composition_strength_{i} = %(strength)s\n"
    f"              AND LOWER(md.med_composition_unit_{i}) = LOWER(%(unit)s)) THEN 100"
    for i in range(1, RANKED_SLOTS + 1)
)

_NAME_CASES = "\n".join(
    f"        WHEN LOWER(md.med_composition_name_{i}) %% LOWER(%(fragment)s) THEN 80"
    for i in range(1, RANKED_SLOTS + 1)
)

EXACT_BY_NAME_SQL = f"""
SELECT {SELECT_COLUMNS}
FROM med_details md
WHERE {ACTIVE_FILTER}
  AND LOWER(md.med_brand_name) = LOWER(%(name)s)
ORDER BY md.med_weightage DESC NULLS LAST
LIMIT 1
"""

SUBSTRING_SQL = f"""
SELECT {SELECT_COLUMNS},
    CASE
        WHEN LOWER(md.med_brand_name) = LOWER(%(fragment)s) THEN 100
        WHEN LOWER(md.med_brand_name) LIKE LOWER(%(fragment)s) || '%%' THEN 90
        WHEN LOWER(md.med_brand_name) LIKE '%%' || LOWER(%(fragment)s) || '%%' THEN 80
        ELSE 70
    END AS match_score
FROM med_details md
WHERE {ACTIVE_FILTER}
  AND LOWER(md.med_brand_name) LIKE '%%' || LOWER(%(fragment)s) || '%%'
ORDER BY match_score DESC, md.med_weightage DESC NULLS LAST, LENGTH(md.med_brand_name) ASC
LIMIT %(limit)s
"""

COMPOSITION_WITH_STRENGTH_SQL = f"""
SELECT {SELECT_COLUMNS},
    GREATEST(
        {_TRGM_BEST}
    ) AS comp_similarity,
    CASE
{_STRENGTH_CASES}
{_NAME_CASES}
        ELSE 70
    END AS comp_match_score
FROM med_details md
WHERE {ACTIVE_FILTER}
  AND ({_TRGM_ANY})
ORDER BY comp_match_score DESC, comp_similarity DESC,
         md.med_weightage DESC NULLS LAST, LENGTH(md.med_brand_name) ASC
LIMIT %(limit)s
"""

COMPOSITION_SQL = f"""
SELECT {SELECT_COLUMNS},
    GREATEST(
        {_TRGM_BEST}
    ) AS comp_similarity,
    85 AS comp_match_score
FROM med_details md
WHERE {ACTIVE_FILTER}
  AND ({_TRGM_ANY})
ORDER BY comp_similarity DESC, md.med_weightage DESC NULLS LAST, LENGTH(md.med_brand_name) ASC
LIMIT %(limit)s
"""

BY_ID_SQL = f"""
SELECT {SELECT_COLUMNS}
FROM med_details md
WHERE {ACTIVE_FILTER}
  AND md.med_id = %(med_id)s
"""

_STATEMENT_TIMEOUT_SQL = "SELECT set_config('statement_timeout', %(timeout)s, true)"


def record_from_row(row: dict[str, Any]) -> MedicineRecord:
    """Map a ``SELECT_COLUMNS`` row; empty composition slots are skipped but keep numbering."""
    compositions = tuple(
        Composition(
            id=row[f"composition{slot}_id"],
            name=row[f"composition{slot}_name"],
            strength_value=strength_text(row[f"composition{slot}_strength"]),
            strength_unit=row[f"composition{slot}_unit"],
            slot=slot,
        )
        for slot in range(1, MAX_COMPOSITIONS + 1)
        if row[f"composition{slot}_name"]
    )
    return MedicineRecord(
        id=row["id"],
        brand_name=row["brand_name"],
        compositions=compositions,
        weightage=optional_float(row["weightage"]),
        pack_size=row["pack_size"],
        manufacturer=row["manufacturer"],
        price=optional_float(row["price"]),
        med_type=row["med_type"],
        generic_id=row["generic_id"],
    )


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class PostgresMedicineStore:
    """MedicineStore backed by the ``med_details`` table."""

    def __init__(
        self,
        catalog_pool: pool.ThreadedConnectionPool,
        default_timeout_ms: int | None = None,
    ):
        self.pool = catalog_pool
        self.default_timeout_ms = default_timeout_ms

    def _fetch(
        self,
        sql: str,
        params: dict[str, Any],
        timeout_ms: int | None,
    ) -> list[dict[str, Any]]:
        timeout = timeout_ms if timeout_ms is not None else self.default_timeout_ms
        try:
            with db.get_conn(self.pool) as conn:
                with conn.cursor(cursor_factory=extras.RealDictCursor) as cur:
                    if timeout:
                        cur.execute(_STATEMENT_TIMEOUT_SQL, {"timeout": f"{int(timeout)}ms"})
                    cur.execute(sql, params)
                    return list(cur.fetchall())
        except (
            psycopg2.OperationalError,
            psycopg2.InterfaceError,
            pool.PoolError,
            RuntimeError,
        ) as e:
            raise StoreUnavailableError(str(e)) from e

    def find_exact_by_name(
        self, name: str, *, timeout_ms: int | None = None
    ) -> MedicineRecord | None:
        rows = self._fetch(EXACT_BY_NAME_SQL, {"name": name}, timeout_ms)
        return record_from_row(rows[0]) if rows else None

    def find_by_substring(
        self, fragment: str, limit: int, *, timeout_ms: int | None = None
    ) -> list[StoreHit]:
        rows = self._fetch(SUBSTRING_SQL, {"fragment": fragment, "limit": limit}, timeout_ms)
        return [
            StoreHit(record=record_from_row(row), rank_score=int(row["match_score"]))
            for row in rows
        ]

    def find_by_composition_fuzzy(
        self,
        fragment: str,
        strength: str | None = None,
        unit: str | None = None,
        limit: int = 5,
        *,
        timeout_ms: int | None = None,
    ) -> list[StoreHit]:
        if strength and unit:
            sql = COMPOSITION_WITH_STRENGTH_SQL
            params = {"fragment": fragment, "strength": strength, "unit": unit, "limit": limit}
        else:
            sql = COMPOSITION_SQL
            params = {"fragment": fragment, "limit": limit}

        rows = self._fetch(sql, params, timeout_ms)
        return [
            StoreHit(
                record=record_from_row(row),
                rank_score=int(row.get("comp_match_score") or 85),
                similarity=float(row.get("comp_similarity") or 0.0),
            )
            for row in rows
        ]

    def find_by_id(
        self, med_id: int, *, timeout_ms: int | None = None
    ) -> MedicineRecord | None:
        rows = self._fetch(BY_ID_SQL, {"med_id": med_id}, timeout_ms)
        return record_from_row(rows[0]) if rows else None

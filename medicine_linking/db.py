"""
Rx Medicine Linker — Database Connection Module

Creates a thread-safe psycopg2 connection pool for the reference medicine
catalog. Configuration via environment variables with local-dev defaults.

The pool is returned to the caller and injected into PostgresMedicineStore;
nothing here keeps process-wide state.

Usage:
    from medicine_linking import db

    catalog_pool = db.init_pool()
    if catalog_pool is not None:
        with db.get_conn(catalog_pool) as conn:
            with conn.cursor(cursor_factory=extras.RealDictCursor) as cur:
                cur.execute("SELECT count(*) FROM med_details")
                print(cur.fetchone()["count"])
"""

from __future__ import annotations

import logging
import os

import psycopg2
from psycopg2 import pool, extras  # noqa: F401  extras re-exported for callers

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Configuration (env vars with local-dev defaults)
# ---------------------------------------------------------------------------


def db_config_from_env() -> dict:
    return {
        "host": os.environ.get("RXL_DB_HOST", "localhost"),
        "port": int(os.environ.get("RXL_DB_PORT", "5432")),
        "dbname": os.environ.get("RXL_DB_NAME", "medicine_db"),
        "user": os.environ.get("RXL_DB_USER", "rx"),
        "password": os.environ.get("RXL_DB_PASSWORD", "rx_local_dev"),
    }


# ---------------------------------------------------------------------------
# Pool lifecycle
# ---------------------------------------------------------------------------


def init_pool(
    minconn: int = 2,
    maxconn: int = 10,
    config: dict | None = None,
) -> pool.ThreadedConnectionPool | None:
    """
    Create the catalog connection pool.

    Returns the pool if the database is reachable and the ``med_details``
    table exists, otherwise None so the caller can fall back to a JSON
    catalog.
    """
    config = config or db_config_from_env()
    catalog_pool = None
    try:
        catalog_pool = pool.ThreadedConnectionPool(minconn, maxconn, **config)
        # Quick connectivity + schema test
        conn = catalog_pool.getconn()
        cur = conn.cursor()
        cur.execute("SELECT count(*) FROM med_details")
        count = cur.fetchone()[0]
        cur.close()
        conn.rollback()
        catalog_pool.putconn(conn)
        logger.info(
            "Catalog pool initialized (%s@%s:%s/%s) — %d medicine records",
            config["user"],
            config["host"],
            config["port"],
            config["dbname"],
            count,
        )
        return catalog_pool
    except psycopg2.Error as e:
        logger.warning("Catalog database unavailable: %s", e)
        if catalog_pool is not None:
            catalog_pool.closeall()
        return None


def close_pool(catalog_pool: pool.ThreadedConnectionPool | None) -> None:
    """Close all pool connections."""
    if catalog_pool is not None and not catalog_pool.closed:
        catalog_pool.closeall()
        logger.info("Catalog pool closed.")


# ---------------------------------------------------------------------------
# Connection context manager
# ---------------------------------------------------------------------------


class get_conn:
    """
    Context manager that checks out a connection from the given pool.

    The catalog is read-only from here, so the transaction is always rolled
    back on exit; the connection always goes back to the pool.

    Usage::

        with db.get_conn(catalog_pool) as conn:
            with conn.cursor(cursor_factory=extras.RealDictCursor) as cur:
                cur.execute("SELECT ...", (param,))
                rows = cur.fetchall()
    """

    def __init__(self, catalog_pool: pool.ThreadedConnectionPool):
        self.pool = catalog_pool

    def __enter__(self):
        if self.pool is None or self.pool.closed:
            raise RuntimeError("Catalog pool not initialized")
        self.conn = self.pool.getconn()
        return self.conn

    def __exit__(self, exc_type, exc_val, exc_tb):
        try:
            if not self.conn.closed:
                self.conn.rollback()
        finally:
            self.pool.putconn(self.conn, close=bool(self.conn.closed))
        return False  # don't suppress exceptions

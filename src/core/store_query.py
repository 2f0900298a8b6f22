"""
Opaque queries against tabular data stores.

Browser-activity correlation needs a few numbers out of SQLite stores (history
databases and the like). The schemas are not interpreted here: callers pass a
query string and get back a scalar, or a row count when the query's first
column is not what they want.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Any, Optional, Sequence

from .exceptions import StoreQueryError
from .logging import get_logger

LOGGER = get_logger("core.store_query")


def _connect_read_only(db_path: Path, timeout: float) -> sqlite3.Connection:
    uri = f"{db_path.resolve().as_uri()}?mode=ro"
    return sqlite3.connect(uri, uri=True, timeout=timeout)


def query_store(
    db_path: Path,
    query: str,
    params: Sequence[Any] = (),
    *,
    timeout: float = 5.0,
    count_rows: bool = False,
) -> Optional[Any]:
    """
    Run an opaque query against a read-only SQLite store.

    Args:
        db_path: Path to the store
        query: SQL text, passed through unchanged
        params: Bound parameters
        timeout: Seconds to wait on a locked database
        count_rows: Return the number of rows instead of the first value

    Returns:
        First column of the first row (None when there are no rows), or the
        row count when ``count_rows`` is set

    Raises:
        StoreQueryError: the store is missing or the query fails
    """
    if not db_path.is_file():
        raise StoreQueryError(f"Data store not found: {db_path}")
    try:
        conn = _connect_read_only(db_path, timeout)
    except sqlite3.Error as exc:
        raise StoreQueryError(f"Cannot open {db_path}: {exc}") from exc
    try:
        cursor = conn.execute(query, tuple(params))
        if count_rows:
            return sum(1 for _ in cursor)
        row = cursor.fetchone()
        return row[0] if row else None
    except sqlite3.Error as exc:
        LOGGER.warning("Query against %s failed: %s", db_path.name, exc)
        raise StoreQueryError(f"Query failed on {db_path.name}: {exc}") from exc
    finally:
        conn.close()

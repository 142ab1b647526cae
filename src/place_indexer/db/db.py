from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator
import json
import logging

import duckdb
from shapely import wkt
from shapely.errors import ShapelyError
from shapely.geometry.base import BaseGeometry

from ..settings import settings
from ..utils.errors import SourceConnectionError

logger = logging.getLogger(__name__)

FETCH_SIZE = 10000


def get_duckdb_path() -> str:
    return str(settings.source_db_path)


@contextmanager
def duckdb_connection(path: Path | str | None = None, read_only: bool = False):
    db_path = str(path) if path is not None else get_duckdb_path()
    try:
        con = duckdb.connect(db_path, read_only=read_only)
    except (duckdb.IOException, duckdb.ConnectionException) as e:
        raise SourceConnectionError(db_path, e) from e
    try:
        yield con
    finally:
        con.close()


def _columns(cursor: duckdb.DuckDBPyConnection) -> list[str]:
    return [d[0] for d in cursor.description]


def fetch_dicts(con: duckdb.DuckDBPyConnection, sql: str, params: list | None = None) -> list[dict[str, Any]]:
    """Run a query and return every row as a column-name keyed dict."""
    cursor = con.execute(sql, params or [])
    columns = _columns(cursor)
    return [dict(zip(columns, row)) for row in cursor.fetchall()]


def iter_dicts(con: duckdb.DuckDBPyConnection, sql: str, params: list | None = None) -> Iterator[dict[str, Any]]:
    """Forward-only variant of `fetch_dicts` that pulls rows in chunks.

    The query runs on its own cursor so that the caller may issue further
    queries on `con` while iterating.
    """
    cursor = con.cursor()
    try:
        cursor.execute(sql, params or [])
        columns = _columns(cursor)
        while True:
            rows = cursor.fetchmany(FETCH_SIZE)
            if not rows:
                break
            for row in rows:
                yield dict(zip(columns, row))
    finally:
        cursor.close()


def get_map(value: Any) -> dict[str, str]:
    """Convert a JSON object column (text or native map) into a str→str dict."""
    if value is None:
        return {}
    if isinstance(value, dict):
        obj = value
    else:
        try:
            obj = json.loads(value)
        except (TypeError, ValueError):
            logger.debug(f"Ignoring unparsable map column: {value!r:.80}")
            return {}
        if not isinstance(obj, dict):
            return {}
    return {str(k): str(v) for k, v in obj.items() if v is not None}


def extract_geometry(value: Any) -> BaseGeometry | None:
    """Parse a WKT geometry column. Broken geometries are dropped, not raised."""
    if value is None:
        return None
    if isinstance(value, BaseGeometry):
        return value
    try:
        return wkt.loads(value)
    except (ShapelyError, TypeError, ValueError):
        logger.debug(f"Ignoring unparsable geometry: {value!r:.80}")
        return None


def has_column(con: duckdb.DuckDBPyConnection, table: str, column: str) -> bool:
    result = con.execute(
        """
        SELECT COUNT(*)
        FROM information_schema.columns
        WHERE table_name = ? AND column_name = ?
        """,
        [table, column],
    ).fetchone()
    return bool(result and result[0] > 0)


def has_table(con: duckdb.DuckDBPyConnection, table: str) -> bool:
    result = con.execute(
        "SELECT COUNT(*) FROM information_schema.tables WHERE table_name = ?",
        [table],
    ).fetchone()
    return bool(result and result[0] > 0)


@contextmanager
def translate_connection_errors(source: str):
    """Re-raise lost connections and I/O failures of the database as SourceConnectionError."""
    try:
        yield
    except (duckdb.ConnectionException, duckdb.IOException) as e:
        raise SourceConnectionError(source, e) from e

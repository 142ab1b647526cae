"""
DuckDB index backend.

Documents are stored serialized in a single table keyed by uid. Writes are
collected and flushed in batches through a registered DataFrame.
"""

import json
import logging
from pathlib import Path
from typing import Any, Iterable, Optional

import duckdb
import pandas as pd

from ..model.place import PlaceRecord
from ..settings import settings
from .base import IndexBackend
from .serializer import COUNTRYCODE, serialize_document

logger = logging.getLogger(__name__)

# Marker for a pending delete in the write buffer.
_DELETED = None


class DuckDBIndexBackend(IndexBackend):
    """
    Document store in a DuckDB table.

    Pending writes are kept per uid, the last operation on a uid wins. Reads
    (`get`, `exists`, `count`) see pending writes as if they were flushed.
    """

    BACKEND = "duckdb"

    DDL_DOCUMENTS = """
    CREATE TABLE IF NOT EXISTS documents (
        uid TEXT PRIMARY KEY,
        place_id BIGINT,
        object_id INTEGER,
        country_code TEXT,
        document TEXT,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    );
    """

    COLUMNS = ['uid', 'place_id', 'object_id', 'country_code', 'document']

    def __init__(
        self,
        db_path: Path | str | None = None,
        extra_tags: Optional[Iterable[str]] = None,
        batch_size: Optional[int] = None,
        con: Optional[duckdb.DuckDBPyConnection] = None,
    ):
        """
        Args:
            db_path: Path to the index database, defaults to settings.index_db_path
            extra_tags: Extra tags copied into the documents
            batch_size: Number of pending operations that triggers a flush
            con: Existing connection to use instead of opening db_path
        """
        if con is None:
            self.db_path = Path(db_path if db_path is not None else settings.index_db_path)
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self.con = duckdb.connect(str(self.db_path))
            self._owns_connection = True
        else:
            self.db_path = None
            self.con = con
            self._owns_connection = False

        self.extra_tags = list(settings.extra_tags if extra_tags is None else extra_tags)
        self.batch_size = batch_size or settings.batch_size
        self._pending: dict[str, Optional[tuple]] = {}

        self.con.execute(self.DDL_DOCUMENTS)
        logger.info(f"Initialized DuckDB index: {self.db_path or 'external connection'}")

    # --- Writes -------------------------------------------------------------------
    def add(self, doc: PlaceRecord, object_id: int) -> None:
        uid = doc.uid(object_id)
        document = serialize_document(doc, self.extra_tags)
        self._queue(uid, (uid, doc.place_id, object_id, doc.country_code, json.dumps(document)))

    def add_raw(self, document: dict[str, Any], uid: str) -> None:
        place_id, _, object_id = uid.partition(".")
        self._queue(uid, (uid, int(place_id), int(object_id or 0),
                          document.get(COUNTRYCODE), json.dumps(document)))

    def delete(self, place_id: int, object_id: int) -> None:
        self._queue(PlaceRecord.make_uid(place_id, object_id), _DELETED)

    def _queue(self, uid: str, row: Optional[tuple]) -> None:
        self._pending[uid] = row
        if len(self._pending) >= self.batch_size:
            self.flush()

    def flush(self) -> None:
        """Write all pending operations in one transaction."""
        if not self._pending:
            return

        deletes = [uid for uid, row in self._pending.items() if row is _DELETED]
        rows = [row for row in self._pending.values() if row is not _DELETED]

        self.con.begin()
        try:
            if deletes:
                self.con.execute("DELETE FROM documents WHERE list_contains(CAST(? AS VARCHAR[]), uid)", [deletes])
            if rows:
                df = pd.DataFrame(rows, columns=self.COLUMNS)
                self.con.register('batch_documents', df)
                try:
                    self.con.execute(
                        """
                        INSERT INTO documents (uid, place_id, object_id, country_code, document)
                        SELECT uid, place_id, object_id, country_code, document FROM batch_documents
                        ON CONFLICT(uid) DO UPDATE SET
                            place_id = excluded.place_id,
                            object_id = excluded.object_id,
                            country_code = excluded.country_code,
                            document = excluded.document,
                            updated_at = now()
                        """
                    )
                finally:
                    self.con.unregister('batch_documents')
            self.con.commit()
        except duckdb.Error:
            self.con.rollback()
            raise

        logger.debug(f"Flushed {len(rows)} documents and {len(deletes)} deletions")
        self._pending.clear()

    def finish(self) -> None:
        self.flush()

    def close(self) -> None:
        self.flush()
        if self._owns_connection:
            self.con.close()

    # --- Reads --------------------------------------------------------------------
    def get(self, uid: str) -> Optional[dict[str, Any]]:
        """Return the stored document for `uid` or None."""
        if uid in self._pending:
            row = self._pending[uid]
            return None if row is _DELETED else json.loads(row[-1])

        result = self.con.execute("SELECT document FROM documents WHERE uid = ?", [uid]).fetchone()
        return json.loads(result[0]) if result else None

    def exists(self, place_id: int, object_id: int) -> bool:
        uid = PlaceRecord.make_uid(place_id, object_id)
        if uid in self._pending:
            return self._pending[uid] is not _DELETED

        result = self.con.execute("SELECT COUNT(*) FROM documents WHERE uid = ?", [uid]).fetchone()
        return bool(result and result[0] > 0)

    def count(self) -> int:
        self.flush()
        result = self.con.execute("SELECT COUNT(*) FROM documents").fetchone()
        return int(result[0]) if result else 0

    def uids(self) -> list[str]:
        """All stored uids, mostly useful for inspection and tests."""
        self.flush()
        return [row[0] for row in self.con.execute("SELECT uid FROM documents ORDER BY place_id, object_id").fetchall()]
